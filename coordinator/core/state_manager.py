"""Hybrid document store with PostgreSQL persistence and Redis caching"""
import logging
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Optional, Type, TypeVar

from pydantic import BaseModel

from coordinator.db.postgres import PostgresDB
from coordinator.db.redis import RedisCache
from shared.errors import EntityNotFound
from shared.models import DOCUMENT_KINDS, Device

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


class StateManager:
    """Centralized document store with optional PostgreSQL + Redis backends

    Memory is the authoritative working set. PostgreSQL is written through on
    every save and replayed into memory on startup; Redis is a read cache.
    """

    def __init__(self,
                 postgres: Optional[PostgresDB] = None,
                 redis: Optional[RedisCache] = None):
        self.documents: Dict[Type[BaseModel], Dict[str, BaseModel]] = {
            kind: {}
            for kind in DOCUMENT_KINDS
        }
        self.metrics: Dict[str, int] = defaultdict(int)

        # Database backends (optional)
        self.postgres = postgres
        self.redis = redis

    # ========================================================================
    # Reads
    # ========================================================================

    async def get(self,
                  kind: Type[T],
                  entity_id: Optional[str],
                  include_deleted: bool = False) -> Optional[T]:
        """Get a document from memory, cache or DB"""
        if entity_id is None:
            return None

        entity = self.documents[kind].get(entity_id)

        if entity is None and self.redis:
            cached = await self.redis.get_cached_document(
                kind.__collection__, entity_id)
            if cached:
                entity = kind.model_validate(cached)
                self.documents[kind][entity_id] = entity

        if entity is None and self.postgres:
            entity = await self.postgres.get_document(kind, entity_id)
            if entity is not None:
                self.documents[kind][entity_id] = entity

        if entity is not None and _is_deleted(entity) and not include_deleted:
            return None
        return entity

    async def require(self,
                      kind: Type[T],
                      entity_id: Optional[str],
                      include_deleted: bool = False) -> T:
        """Get a document or raise EntityNotFound"""
        entity = await self.get(kind, entity_id, include_deleted=include_deleted)
        if entity is None:
            raise EntityNotFound(kind.__name__, entity_id)
        return entity

    def find(self,
             kind: Type[T],
             *,
             include_deleted: bool = False,
             order_by: Optional[str] = None,
             limit: Optional[int] = None,
             **filters: Any) -> List[T]:
        """Find documents matching equality/range filters

        Filter keys are field names, optionally suffixed with ``__in``,
        ``__ne``, ``__gte`` or ``__lte``. ``order_by`` takes a field name,
        prefixed with ``-`` for descending order.
        """
        results = [
            entity for entity in self.documents[kind].values()
            if (include_deleted or not _is_deleted(entity))
            and _matches(entity, filters)
        ]

        if order_by:
            field = order_by.lstrip("-")
            results.sort(key=lambda e: getattr(e, field),
                         reverse=order_by.startswith("-"))

        if limit is not None:
            results = results[:limit]
        return results

    def count(self,
              kind: Type[BaseModel],
              include_deleted: bool = False,
              **filters: Any) -> int:
        """Count documents matching filters"""
        return len(self.find(kind, include_deleted=include_deleted, **filters))

    async def get_device_type_of(self, device_id: str) -> str:
        """Device registry lookup used by the task state machine"""
        device = await self.require(Device, device_id)
        return device.device_type_id

    # ========================================================================
    # Writes
    # ========================================================================

    async def save(self, entity: BaseModel) -> None:
        """Add or replace a document in memory and persist it"""
        self.documents[type(entity)][entity.id] = entity

        if self.postgres:
            await self.postgres.save_document(entity)

        if self.redis:
            await self.redis.cache_document(entity.__collection__, entity.id,
                                            entity.model_dump_json())

    async def save_many(self, entities: Iterable[BaseModel]) -> None:
        """Persist several documents in a single DB transaction"""
        entities = list(entities)
        if not entities:
            return

        # DB first so a failed transaction leaves memory untouched
        if self.postgres:
            await self.postgres.save_documents(entities)

        for entity in entities:
            self.documents[type(entity)][entity.id] = entity

        if self.redis:
            for entity in entities:
                await self.redis.cache_document(entity.__collection__,
                                                entity.id,
                                                entity.model_dump_json())

    async def update_many(self, kind: Type[BaseModel], filters: Dict[str, Any],
                          changes: Dict[str, Any]) -> int:
        """Apply the same field changes to every matching document"""
        matched = self.find(kind, **filters)
        for entity in matched:
            for field, value in changes.items():
                setattr(entity, field, value)
        await self.save_many(matched)
        return len(matched)

    async def delete(self, kind: Type[BaseModel], entity_id: str) -> None:
        """Hard-delete a document from memory, DB and cache"""
        self.documents[kind].pop(entity_id, None)

        if self.postgres:
            await self.postgres.delete_documents(kind, [entity_id])

        if self.redis:
            await self.redis.invalidate_document(kind.__collection__, entity_id)

    async def delete_many(self, kind: Type[BaseModel], **filters: Any) -> int:
        """Hard-delete every document matching filters"""
        ids = [
            entity.id
            for entity in self.find(kind, include_deleted=True, **filters)
        ]
        for entity_id in ids:
            self.documents[kind].pop(entity_id, None)

        if self.postgres:
            await self.postgres.delete_documents(kind, ids)

        if self.redis:
            for entity_id in ids:
                await self.redis.invalidate_document(kind.__collection__,
                                                     entity_id)
        return len(ids)

    # ========================================================================
    # Metrics
    # ========================================================================

    async def increment_metric(self, metric: str, amount: int = 1) -> None:
        self.metrics[metric] += amount
        if self.redis:
            await self.redis.increment_metric(metric, amount)

    async def _rebuild_from_db(self) -> None:
        """Rebuild in-memory working set from PostgreSQL after restart"""
        if not self.postgres:
            return

        for kind in DOCUMENT_KINDS:
            for entity in await self.postgres.list_documents(kind):
                self.documents[kind][entity.id] = entity
            logger.info(
                f"Loaded {len(self.documents[kind])} {kind.__collection__} from PostgreSQL"
            )


def _is_deleted(entity: BaseModel) -> bool:
    return bool(getattr(entity, "is_deleted", False))


def _matches(entity: BaseModel, filters: Dict[str, Any]) -> bool:
    for key, expected in filters.items():
        field, _, op = key.partition("__")
        value = getattr(entity, field)
        if op == "":
            matched = value == expected
        elif op == "in":
            matched = value in expected
        elif op == "ne":
            matched = value != expected
        elif op == "gte":
            matched = value is not None and value >= expected
        elif op == "lte":
            matched = value is not None and value <= expected
        else:
            raise ValueError(f"Unsupported filter operator: {op}")
        if not matched:
            return False
    return True


async def init_state_manager(database_url: Optional[str] = None,
                             redis_url: Optional[str] = None) -> StateManager:
    """Create a state manager with database backends"""
    postgres = None
    redis_cache = None

    if database_url:
        postgres = PostgresDB(database_url)
        await postgres.init_db()

    if redis_url:
        redis_cache = RedisCache(redis_url)
        await redis_cache.connect()

    state = StateManager(postgres=postgres, redis=redis_cache)

    # Rebuild in-memory working set from database after restart
    if postgres:
        await state._rebuild_from_db()

    return state
