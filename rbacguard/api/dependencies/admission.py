"""Admission dispatcher dependency."""

from typing import Optional

from rbacguard.admission.dispatch import AdmissionDispatcher
from rbacguard.admission.handlers import create_dispatcher
from rbacguard.core.config import settings
from rbacguard.db.redis import get_redis_client
from rbacguard.repositories.cache import ObjectCaches
from rbacguard.services.escalation import SubjectAccessReviewer

_dispatcher: Optional[AdmissionDispatcher] = None


def get_dispatcher() -> AdmissionDispatcher:
    """Get or create the AdmissionDispatcher singleton."""
    global _dispatcher
    if _dispatcher is None:
        caches = ObjectCaches.from_redis(get_redis_client(), settings.redis_key_prefix)
        caches.rebuild_indexes()
        _dispatcher = create_dispatcher(caches, SubjectAccessReviewer.from_settings())
    return _dispatcher


def reset_dispatcher() -> None:
    """Drop the singleton so the next request rebuilds it."""
    global _dispatcher
    _dispatcher = None
