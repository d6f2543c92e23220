"""Process-wide entity cache shared by every caching repository.

Entries live in an aiocache ``SimpleMemoryCache`` with a pickle serializer,
so each read hands back its own detached copy and concurrent requests
never share mutable entity instances.

Keys are grouped into *families*. A family is the unit of invalidation:
``Student_5`` covers ``Student_5`` and ``Student_5_school``, ``Student_All``
covers every collection key of the type. Each family carries a generation
counter. Invalidation bumps it synchronously, which makes every entry
written under an older generation unreadable at once, even before the
backing deletes have run. A populate that started before an invalidation
presents the generation it observed and is dropped if it no longer matches.
"""

import typing as t
from aiocache import SimpleMemoryCache
from aiocache.serializers import PickleSerializer
from dataclasses import dataclass

from .cleanup import CleanupMixin
from .config import DataAccessSettings, get_settings
from .depends import depends
from .logger import logger


@dataclass(frozen=True)
class CacheEntry:
    """A cached value tagged with the family generation it was read under."""

    key: str
    value: t.Any
    generation: int


class RepositoryCache(CleanupMixin):
    def __init__(
        self,
        settings: DataAccessSettings | None = None,
        max_tracked_families: int = 10_000,
    ) -> None:
        super().__init__()
        self.settings = settings or get_settings()
        self.max_tracked_families = max_tracked_families
        self._client: SimpleMemoryCache | None = None
        # Generations are drawn from one increasing epoch; untracked families
        # read as ``_floor``.
        self._epoch = 0
        self._floor = 0
        self._generations: dict[str, int] = {}
        self._family_keys: dict[str, set[str]] = {}

    @property
    def ttl(self) -> float:
        return self.settings.cache_ttl

    @property
    def client(self) -> SimpleMemoryCache:
        if self._client is None:
            cache = SimpleMemoryCache(
                serializer=PickleSerializer(),
                namespace=f"{self.settings.cache_namespace}:",
            )
            cache.timeout = 0.0
            self._client = cache
            self.register_resource(cache)
        return self._client

    @property
    def tracked_families(self) -> int:
        return len(self._generations)

    def tracked_keys(self, family: str) -> frozenset[str]:
        return frozenset(self._family_keys.get(family, ()))

    def generation(self, family: str) -> int:
        return self._generations.get(family, self._floor)

    def _forget(self, key: str, family: str) -> None:
        keys = self._family_keys.get(family)
        if keys is None:
            return
        keys.discard(key)
        if not keys:
            del self._family_keys[family]

    async def get(self, key: str, family: str) -> CacheEntry | None:
        """Return the live entry for ``key`` or None.

        A hit under sliding expiration pushes the entry's expiry out by a
        full TTL. Expired and stale keys stop being tracked.
        """
        entry = await self.client.get(key)
        if entry is None:
            self._forget(key, family)
            return None
        if entry.generation != self.generation(family):
            await self.client.delete(key)
            self._forget(key, family)
            return None
        if self.settings.sliding_expiration:
            await self.client.expire(key, self.ttl)
        return entry

    async def set(self, key: str, value: t.Any, family: str, generation: int) -> bool:
        """Store ``value`` unless ``family`` was invalidated since ``generation``.

        An existing entry under ``key`` is replaced.
        """
        if generation != self.generation(family):
            logger.debug(f"Dropped stale populate for {key}")
            return False
        await self.client.set(
            key,
            CacheEntry(key=key, value=value, generation=generation),
            ttl=self.ttl,
        )
        self._family_keys.setdefault(family, set()).add(key)
        return True

    def _bump(self, families: t.Iterable[str]) -> None:
        self._epoch += 1
        for family in families:
            self._generations[family] = self._epoch
        if len(self._generations) > self.max_tracked_families:
            self._prune_generations()

    def _prune_generations(self) -> None:
        """Stop tracking generations of families with no live keys.

        Raising the floor to the current epoch keeps every populate that
        started before a pruned family's last invalidation unacceptable.
        Families with live keys keep the generation their entries carry.
        """
        floor = self._floor
        self._generations = {
            family: self._generations.get(family, floor) for family in self._family_keys
        }
        self._floor = self._epoch
        logger.debug(f"Pruned family generations, {len(self._generations)} still tracked")

    async def invalidate(self, *families: str) -> None:
        """Remove every key in ``families``."""
        keys: list[str] = []
        for family in families:
            keys.extend(self._family_keys.pop(family, ()))
        self._bump(families)
        for key in keys:
            await self.client.delete(key)
        if keys:
            logger.debug(f"Invalidated {', '.join(sorted(keys))}")

    async def exists(self, key: str) -> bool:
        return bool(await self.client.exists(key))

    async def clear(self) -> None:
        families = list(self._family_keys)
        self._family_keys.clear()
        self._bump(families)
        if self._client is not None:
            await self._client.clear()

    async def _cleanup_resources(self) -> None:
        if self._client is not None:
            await self._client.clear()
        self._client = None
        self._family_keys.clear()
        self._generations.clear()


def get_repository_cache() -> RepositoryCache:
    """Return the process-wide repository cache."""
    cache: t.Any = None
    try:
        cache = depends.get_sync(RepositoryCache)
    except LookupError:
        logger.debug("No repository cache registered, creating one")
    if not isinstance(cache, RepositoryCache) or cache.is_cleaned_up:
        cache = depends.set(RepositoryCache, RepositoryCache(get_settings()))
    return cache
