"""FastAPI dependencies."""

from .admission import get_dispatcher, reset_dispatcher

__all__ = ["get_dispatcher", "reset_dispatcher"]
