"""Repositories package for data access layer."""

from .cache import ObjectCache, ObjectCaches, object_key
from .indexes import (BUILTIN_INDEXERS, CRTB_SUBJECT_INDEX, GRB_SUBJECT_INDEX,
                      PRTB_SUBJECT_INDEX)
from .redis_base import RedisRepository

__all__ = [
    "RedisRepository",
    "ObjectCache",
    "ObjectCaches",
    "object_key",
    "BUILTIN_INDEXERS",
    "CRTB_SUBJECT_INDEX",
    "PRTB_SUBJECT_INDEX",
    "GRB_SUBJECT_INDEX",
]
