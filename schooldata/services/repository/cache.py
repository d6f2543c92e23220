"""Repository Caching Implementation.

Provides read-through caching in front of any repository:
- Cached repository wrapper, applied by composition
- Write invalidation of the entity's key family and the type's collections
- Isolation of a unit of work's uncommitted writes from the shared cache
"""

import builtins

import typing as t
from collections.abc import Sequence
from dataclasses import dataclass

from ...cache import RepositoryCache
from ...logger import logger
from ._base import EntityType, Filter, Include, RepositoryBase


@dataclass
class CacheMetrics:
    """Cache performance metrics."""

    hits: int = 0
    misses: int = 0
    writes: int = 0
    invalidations: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate."""
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0


def _include_names(include: Include) -> tuple[str, ...]:
    if not include:
        return ()
    if isinstance(include, str):
        return (include,)
    return tuple(include)


class CachedRepository(RepositoryBase[EntityType]):
    """Repository wrapper that adds a shared read-through cache.

    Single entities are cached under ``{T}_{id}`` (``{T}_{id}_{include}``
    with eager includes), collections under ``{T}_All`` and
    ``{T}_All_{include}``. Absent results are never cached.

    Ids written through this wrapper are *pending* until the owning unit of
    work commits or rolls back. Pending ids, and the type's collections
    while anything is pending, bypass the shared cache in both directions so
    uncommitted state is never published to other work units.
    """

    def __init__(
        self,
        wrapped_repository: RepositoryBase[EntityType],
        cache: RepositoryCache,
    ) -> None:
        super().__init__(wrapped_repository.entity_type)
        self.wrapped = wrapped_repository
        self.cache = cache
        self.metrics = CacheMetrics()
        self._pending_ids: set[int] = set()

    def entity_family(self, entity_id: int) -> str:
        return f"{self.entity_name}_{entity_id}"

    @property
    def collection_family(self) -> str:
        return f"{self.entity_name}_All"

    def entity_key(self, entity_id: int, include: Include = None) -> str:
        names = _include_names(include)
        key = self.entity_family(entity_id)
        return f"{key}_{'+'.join(names)}" if names else key

    def collection_key(self, include: Include = None) -> str:
        names = _include_names(include)
        key = self.collection_family
        return f"{key}_{'+'.join(names)}" if names else key

    @property
    def pending_ids(self) -> frozenset[int]:
        return frozenset(self._pending_ids)

    async def _read_through(
        self,
        key: str,
        family: str,
        load: t.Callable[[], t.Awaitable[t.Any]],
    ) -> t.Any:
        entry = await self.cache.get(key, family)
        if entry is not None:
            self.metrics.hits += 1
            logger.debug(f"Cache hit {key}")
            return entry.value

        self.metrics.misses += 1
        logger.debug(f"Cache miss {key}")
        generation = self.cache.generation(family)
        value = await load()
        if value and await self.cache.set(key, value, family, generation):
            self.metrics.writes += 1
        return value

    async def get_by_id(
        self,
        entity_id: int,
        include: Include = None,
        include_deleted: bool = False,
    ) -> EntityType | None:
        if include_deleted or entity_id in self._pending_ids:
            return await self.wrapped.get_by_id(entity_id, include, include_deleted)

        return await self._read_through(
            self.entity_key(entity_id, include),
            self.entity_family(entity_id),
            lambda: self.wrapped.get_by_id(entity_id, include),
        )

    async def get_all(
        self,
        filter: Filter = None,
        include: Include = None,
        *,
        entity_id: int | None = None,
        include_deleted: bool = False,
    ) -> builtins.list[EntityType]:
        if filter is not None or include_deleted:
            return await self.wrapped.get_all(
                filter,
                include,
                entity_id=entity_id,
                include_deleted=include_deleted,
            )

        if entity_id is not None:
            if entity_id in self._pending_ids:
                return await self.wrapped.get_all(include=include, entity_id=entity_id)
            # Scoped reads share the single-entity key, which always holds one entity.
            entity = await self.get_by_id(entity_id, include)
            return [entity] if entity is not None else []

        if self._pending_ids:
            return await self.wrapped.get_all(include=include)
        result = await self._read_through(
            self.collection_key(include),
            self.collection_family,
            lambda: self.wrapped.get_all(include=include),
        )
        return list(result)

    def _invalidate_after_write(self, entity_id: int) -> t.Awaitable[None]:
        # Pending is marked and the generations bumped before control
        # returns to the event loop.
        self._pending_ids.add(entity_id)
        self.metrics.invalidations += 1
        return self.cache.invalidate(self.entity_family(entity_id), self.collection_family)

    async def add(self, entity: EntityType) -> int:
        entity_id = await self.wrapped.add(entity)
        await self._invalidate_after_write(entity_id)
        return entity_id

    async def update(self, entity: EntityType) -> int:
        entity_id = await self.wrapped.update(entity)
        await self._invalidate_after_write(entity_id)
        return entity_id

    async def delete(self, entity: EntityType | int) -> int:
        entity_id = await self.wrapped.delete(entity)
        await self._invalidate_after_write(entity_id)
        return entity_id

    async def soft_delete(self, entity_id: int) -> int:
        entity_id = await self.wrapped.soft_delete(entity_id)
        await self._invalidate_after_write(entity_id)
        return entity_id

    async def count(self, filter: Filter = None, include_deleted: bool = False) -> int:
        return await self.wrapped.count(filter, include_deleted)

    async def exists(self, filter: Filter, include_deleted: bool = False) -> bool:
        return await self.wrapped.exists(filter, include_deleted)

    async def invalidate_pending(self) -> None:
        """Drop cache state for every pending id once its batch is settled."""
        if not self._pending_ids:
            return
        families: Sequence[str] = [
            *(self.entity_family(entity_id) for entity_id in self._pending_ids),
            self.collection_family,
        ]
        self._pending_ids.clear()
        await self.cache.invalidate(*families)
