"""Redis connection shared by the object caches."""

from functools import lru_cache

import redis

from rbacguard.core.config import settings
from rbacguard.core.logging import get_logger

logger = get_logger(__name__)


@lru_cache(maxsize=1)
def get_redis_pool() -> redis.ConnectionPool:
    """Connection pool shared by every request thread."""
    return redis.ConnectionPool.from_url(
        settings.redis_url,
        decode_responses=True,
        max_connections=settings.redis_max_connections,
        socket_connect_timeout=settings.redis_socket_timeout,
        socket_timeout=settings.redis_socket_timeout,
    )


@lru_cache(maxsize=1)
def get_redis_client() -> redis.Redis:
    """Client over the shared pool; raises if Redis does not answer a ping."""
    client = redis.Redis(connection_pool=get_redis_pool())
    try:
        client.ping()
    except redis.RedisError as e:
        logger.error(
            f"Cache Redis unreachable at {settings.redis_host}:{settings.redis_port}: {e}"
        )
        raise
    logger.info(f"Connected to cache Redis db {settings.redis_db}")
    return client


def close_redis_connection() -> None:
    """Disconnect the pool and forget the cached client."""
    if get_redis_pool.cache_info().currsize:
        try:
            get_redis_pool().disconnect()
        except redis.RedisError as e:
            logger.error(f"Error closing Redis pool: {e}")
    get_redis_pool.cache_clear()
    get_redis_client.cache_clear()
