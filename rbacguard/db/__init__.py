"""Redis client backing the object caches."""

from .redis import close_redis_connection, get_redis_client

__all__ = ["get_redis_client", "close_redis_connection"]
