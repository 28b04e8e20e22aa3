"""API routes package."""

from . import health, webhook

__all__ = ["health", "webhook"]
