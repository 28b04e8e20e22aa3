"""Base repository with common Redis patterns."""

import json
from typing import Any, Dict, List, Optional

from redis import Redis, RedisError

from rbacguard.core.exceptions import CacheError
from rbacguard.core.logging import get_logger

logger = get_logger(__name__)


class RedisRepository:
    """Base repository with common Redis operations.

    Read failures raise CacheError so that admission decisions fail closed
    instead of treating an unreachable cache as an empty one.
    """

    def __init__(self, redis_client: Redis):
        self.redis = redis_client

    def get_hash_json(self, key: str, field: str) -> Optional[Dict[str, Any]]:
        """Get and parse JSON from Redis hash field."""
        try:
            data = self.redis.hget(key, field)
        except RedisError as e:
            logger.error(f"Error reading {key}:{field}: {e}")
            raise CacheError(f"failed to read {key}:{field}") from e
        return self._decode(key, field, data)

    def get_hash_json_many(self, key: str, fields: List[str]) -> Dict[str, Optional[Dict]]:
        """Get and parse several hash fields in one round trip."""
        if not fields:
            return {}
        try:
            results = self.redis.hmget(key, fields)
        except RedisError as e:
            logger.error(f"Error reading {len(fields)} fields from {key}: {e}")
            raise CacheError(f"failed to read from {key}") from e

        return {
            field: self._decode(key, field, data)
            for field, data in zip(fields, results)
        }

    def get_hash_json_all(self, key: str) -> Dict[str, Dict[str, Any]]:
        """Get and parse every field of a hash."""
        try:
            raw = self.redis.hgetall(key)
        except RedisError as e:
            logger.error(f"Error reading {key}: {e}")
            raise CacheError(f"failed to read {key}") from e

        output = {}
        for field, data in raw.items():
            decoded = self._decode(key, field, data)
            if decoded is not None:
                output[field] = decoded
        return output

    def get_set_members(self, key: str) -> List[str]:
        """Get the members of a set, sorted for stable iteration."""
        try:
            return sorted(self.redis.smembers(key))
        except RedisError as e:
            logger.error(f"Error reading set {key}: {e}")
            raise CacheError(f"failed to read {key}") from e

    @staticmethod
    def _decode(key: str, field: str, data: Optional[str]) -> Optional[Dict[str, Any]]:
        if not data:
            return None
        try:
            return json.loads(data)
        except json.JSONDecodeError:
            logger.warning(f"Skipping undecodable value at {key}:{field}")
            return None
