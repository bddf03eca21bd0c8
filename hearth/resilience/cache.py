"""TTL cache-aside for read-heavy polling endpoints.

Device dashboards poll status endpoints far more often than the vendor
data changes. Reads check the shared store first and only call the vendor
when the entry is missing or older than the TTL. Failures are never
cached.

Store layout:
    cache/{key}   CacheEntry {data, timestamp}
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from pydantic import ValidationError

from hearth.kv.store import KeyValueStore, join_path
from hearth.observability.logging import get_logger
from hearth.observability.metrics import CACHE_HITS, CACHE_INVALIDATIONS, CACHE_MISSES
from hearth.resilience.models import CachedResult, CacheEntry
from hearth.utils.clock import Clock, SystemClock

logger = get_logger(__name__)

T = TypeVar("T")

CACHE_PATH = "cache"
DEFAULT_TTL_MS = 60_000


class CacheAside:
    """Read-through cache keyed by logical resource name.

    Concurrent misses for the same key within this process share one
    in-flight fetch.
    """

    def __init__(
        self,
        store: KeyValueStore,
        clock: Clock | None = None,
        ttl_ms: int = DEFAULT_TTL_MS,
    ) -> None:
        self._store = store
        self._clock = clock or SystemClock()
        self._ttl_ms = ttl_ms
        self._inflight: dict[str, asyncio.Task[Any]] = {}

    def _path(self, key: str) -> str:
        return join_path(CACHE_PATH, key)

    async def get_cached_data(self, key: str, fetch_fn: Callable[[], Awaitable[T]]) -> T:
        """Return fresh-enough data for key, fetching it on a miss."""
        result = await self.get_cached(key, fetch_fn)
        return result.data

    async def get_cached(
        self, key: str, fetch_fn: Callable[[], Awaitable[T]]
    ) -> CachedResult[T]:
        """Like get_cached_data, also reporting where the data came from."""
        inflight = self._inflight.get(key)
        if inflight is not None:
            return CachedResult(data=await asyncio.shield(inflight), source="api")

        entry = await self._read_entry(key)
        now = self._clock.now_ms()
        if entry is not None and now - entry.timestamp < self._ttl_ms:
            CACHE_HITS.inc()
            age_seconds = (now - entry.timestamp) / 1000
            logger.debug("cache_hit", key=key, age_seconds=age_seconds)
            return CachedResult(data=entry.data, source="cache", age_seconds=age_seconds)

        inflight = self._inflight.get(key)
        if inflight is None:
            CACHE_MISSES.inc()
            inflight = asyncio.ensure_future(self._fetch_and_store(key, fetch_fn))
            self._inflight[key] = inflight
            inflight.add_done_callback(lambda _task: self._inflight.pop(key, None))

        return CachedResult(data=await asyncio.shield(inflight), source="api")

    async def invalidate_cache(self, key: str) -> None:
        """Drop the entry for key, forcing the next read to fetch."""
        await self._store.remove(self._path(key))
        CACHE_INVALIDATIONS.inc()
        logger.info("cache_invalidated", key=key)

    async def _fetch_and_store(self, key: str, fetch_fn: Callable[[], Awaitable[T]]) -> T:
        data = await fetch_fn()
        entry = CacheEntry[Any](data=data, timestamp=self._clock.now_ms())
        await self._store.set(self._path(key), entry.to_store())
        logger.debug("cache_populated", key=key)
        return data

    async def _read_entry(self, key: str) -> CacheEntry[Any] | None:
        raw = await self._store.get(self._path(key))
        if raw is None:
            return None
        try:
            return CacheEntry[Any].model_validate(raw)
        except ValidationError:
            logger.warning("cache_entry_corrupted", key=key)
            return None
