"""Read-through object caches backed by Redis.

Every kind lives in one hash, ``{prefix}:{kind}``, keyed by ``namespace/name``
(or just ``name`` for cluster-scoped objects) with the object JSON as value.
Secondary indexes are Redis sets, ``{prefix}:index:{kind}:{index}:{key}``,
whose members are object keys. ``put`` and ``delete`` rewrite an object and its
index memberships in a single MULTI/EXEC transaction so readers never observe
an object without its index entries.
"""

import json
from dataclasses import dataclass
from typing import Callable, Dict, Generic, List, Optional, Type, TypeVar

from redis import Redis, RedisError
from redis.client import Pipeline

from rbacguard.core.config import settings
from rbacguard.core.exceptions import CacheError, NotFoundError
from rbacguard.core.logging import get_logger
from rbacguard.core.metrics import cache_errors
from rbacguard.models.management import (ClusterRoleTemplateBinding, Feature,
                                         GlobalRole, GlobalRoleBinding,
                                         ProjectRoleTemplateBinding,
                                         RoleTemplate)
from rbacguard.models.rbac import (ClusterRole, ClusterRoleBinding, Role,
                                   RoleBinding)
from rbacguard.repositories.indexes import BUILTIN_INDEXERS, IndexFunc
from rbacguard.repositories.redis_base import RedisRepository

logger = get_logger(__name__)

T = TypeVar("T")

def object_key(name: str, namespace: Optional[str] = None) -> str:
    return f"{namespace}/{name}" if namespace else name


class ObjectCache(RedisRepository, Generic[T]):
    """Cache of one object kind with Get / List / GetByIndex / AddIndexer."""

    def __init__(self, redis_client: Redis, model: Type[T], prefix: Optional[str] = None):
        super().__init__(redis_client)
        self.model = model
        self.kind = model.kind
        self.prefix = prefix or settings.redis_key_prefix
        self.objects_key = f"{self.prefix}:{self.kind.lower()}"
        self._indexers: Dict[str, IndexFunc] = dict(BUILTIN_INDEXERS.get(self.kind, {}))

    # ========================================================================
    # READ SIDE
    # ========================================================================

    def get(self, name: str, namespace: Optional[str] = None) -> T:
        """Return the object or raise NotFoundError."""
        data = self.get_hash_json(self.objects_key, object_key(name, namespace))
        if data is None:
            raise NotFoundError(self.kind, name, namespace)
        return self.model.from_dict(data)

    def list(
        self, namespace: Optional[str] = None, selector: Optional[Dict[str, str]] = None
    ) -> List[T]:
        """List objects, optionally restricted to a namespace and a label selector."""
        items = []
        for key, data in sorted(self.get_hash_json_all(self.objects_key).items()):
            obj = self.model.from_dict(data)
            if namespace is not None and obj.metadata.namespace != namespace:
                continue
            if selector and any(
                obj.metadata.labels.get(label) != value
                for label, value in selector.items()
            ):
                continue
            items.append(obj)
        return items

    def get_by_index(self, index_name: str, key: str) -> List[T]:
        """Return the objects whose indexer produced `key`."""
        if index_name not in self._indexers:
            raise CacheError(f"index {index_name} is not registered for {self.kind}")

        members = self.get_set_members(self._index_key(index_name, key))
        found = self.get_hash_json_many(self.objects_key, members)

        items = []
        for member in members:
            data = found.get(member)
            if data is None:
                # Object removed between the two reads
                continue
            items.append(self.model.from_dict(data))
        return items

    def has_index(self, index_name: str) -> bool:
        return index_name in self._indexers

    def add_indexer(self, index_name: str, func: IndexFunc) -> None:
        """Register an index function and build the index from current objects."""
        self._indexers[index_name] = func
        self.rebuild_index(index_name)
        logger.debug(f"Registered indexer {index_name} on {self.kind}")

    def rebuild_indexes(self) -> None:
        """Rebuild every registered index, e.g. after writes by an older syncer."""
        for index_name in list(self._indexers):
            self.rebuild_index(index_name)

    def rebuild_index(self, index_name: str) -> None:
        """Replace the sets of one index with the keys of the stored objects."""
        func = self._indexers[index_name]

        def rebuild(pipe: Pipeline) -> None:
            stale = list(pipe.scan_iter(match=self._index_key(index_name, "*")))
            raw = pipe.hgetall(self.objects_key)
            pipe.multi()
            if stale:
                pipe.delete(*stale)
            for member, data in raw.items():
                obj = self.model.from_dict(json.loads(data))
                for key in func(obj):
                    pipe.sadd(self._index_key(index_name, key), member)

        self._transaction(rebuild, "rebuild_index")

    # ========================================================================
    # WRITE SIDE (used by the cache syncer and by tests)
    # ========================================================================

    def put(self, obj: T) -> T:
        """Store an object and refresh its index memberships."""
        member = object_key(obj.metadata.name, obj.metadata.namespace)
        payload = json.dumps(obj.to_dict())

        def write(pipe: Pipeline) -> None:
            previous = pipe.hget(self.objects_key, member)
            old_keys = self._index_keys(previous)
            new_keys = self._index_keys_for(obj)
            pipe.multi()
            pipe.hset(self.objects_key, member, payload)
            for key in old_keys - new_keys:
                pipe.srem(key, member)
            for key in new_keys - old_keys:
                pipe.sadd(key, member)

        self._transaction(write, "put")
        return obj

    def delete(self, name: str, namespace: Optional[str] = None) -> None:
        """Remove an object and its index memberships; missing objects are ignored."""
        member = object_key(name, namespace)

        def remove(pipe: Pipeline) -> None:
            previous = pipe.hget(self.objects_key, member)
            old_keys = self._index_keys(previous)
            pipe.multi()
            pipe.hdel(self.objects_key, member)
            for key in old_keys:
                pipe.srem(key, member)

        self._transaction(remove, "delete")

    # ========================================================================
    # HELPERS
    # ========================================================================

    def _index_key(self, index_name: str, key: str) -> str:
        return f"{self.prefix}:index:{self.kind.lower()}:{index_name}:{key}"

    def _index_keys_for(self, obj: T) -> set:
        keys = set()
        for index_name, func in self._indexers.items():
            for key in func(obj):
                keys.add(self._index_key(index_name, key))
        return keys

    def _index_keys(self, raw: Optional[str]) -> set:
        if not raw:
            return set()
        return self._index_keys_for(self.model.from_dict(json.loads(raw)))

    def _transaction(self, func: Callable[[Pipeline], None], operation: str) -> None:
        try:
            self.redis.transaction(func, self.objects_key)
        except RedisError as e:
            cache_errors.labels(kind=self.kind, operation=operation).inc()
            logger.error(f"Cache {operation} failed for {self.kind}: {e}")
            raise CacheError(f"failed to {operation} {self.kind}") from e


@dataclass
class ObjectCaches:
    """All caches the resolvers and validators read from."""

    role_templates: ObjectCache[RoleTemplate]
    global_roles: ObjectCache[GlobalRole]
    global_role_bindings: ObjectCache[GlobalRoleBinding]
    cluster_role_template_bindings: ObjectCache[ClusterRoleTemplateBinding]
    project_role_template_bindings: ObjectCache[ProjectRoleTemplateBinding]
    features: ObjectCache[Feature]
    cluster_roles: ObjectCache[ClusterRole]
    roles: ObjectCache[Role]
    cluster_role_bindings: ObjectCache[ClusterRoleBinding]
    role_bindings: ObjectCache[RoleBinding]

    @classmethod
    def from_redis(cls, redis_client: Redis, prefix: Optional[str] = None) -> "ObjectCaches":
        def cache(model):
            return ObjectCache(redis_client, model, prefix)

        return cls(
            role_templates=cache(RoleTemplate),
            global_roles=cache(GlobalRole),
            global_role_bindings=cache(GlobalRoleBinding),
            cluster_role_template_bindings=cache(ClusterRoleTemplateBinding),
            project_role_template_bindings=cache(ProjectRoleTemplateBinding),
            features=cache(Feature),
            cluster_roles=cache(ClusterRole),
            roles=cache(Role),
            cluster_role_bindings=cache(ClusterRoleBinding),
            role_bindings=cache(RoleBinding),
        )

    def rebuild_indexes(self) -> None:
        """Backfill the subject indexes of the binding caches."""
        for cache in (
            self.cluster_role_template_bindings,
            self.project_role_template_bindings,
            self.global_role_bindings,
        ):
            cache.rebuild_indexes()
