"""Settings, logging, errors and metrics shared across the webhook."""

from .config import Settings, get_settings, settings
from .exceptions import RBACGuardError
from .logging import get_logger, log_event, setup_logging

__all__ = [
    "Settings",
    "settings",
    "get_settings",
    "RBACGuardError",
    "setup_logging",
    "get_logger",
    "log_event",
]
