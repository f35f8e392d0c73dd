"""Async TTL cache with per-key single-flight computation."""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    data: Any
    expires_at: float


@dataclass
class CacheStats:
    hits: int = 0
    misses: int = 0
    duplicates_avoided: int = 0
    evictions: int = 0


class CacheManager:
    """
    TTL cache shared by every component of the engine.

    Only one computation per key is ever in flight: callers that arrive while a
    key is being computed await the same task instead of starting their own.
    Failed computations are not cached. Keys never block each other.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._in_flight: Dict[str, "asyncio.Task[Any]"] = {}
        self._generation = 0
        self._stats = CacheStats()

    async def get_or_compute(
        self,
        key: str,
        ttl: float,
        compute_fn: Callable[[], Awaitable[Any]],
    ) -> Any:
        """
        Return the cached value for key, computing it with compute_fn if absent or expired.

        Args:
            key: Cache key.
            ttl: Seconds the computed value stays valid.
            compute_fn: Zero-argument coroutine function producing the value.

        Returns:
            The cached or freshly computed value.
        """
        entry = self._entries.get(key)
        if entry is not None:
            if self._clock() < entry.expires_at:
                self._stats.hits += 1
                logger.debug(f"Cache hit for {key}")
                return entry.data
            del self._entries[key]
            self._stats.evictions += 1

        task = self._in_flight.get(key)
        if task is None:
            self._stats.misses += 1
            task = asyncio.ensure_future(self._compute(key, ttl, compute_fn, self._generation))
            task.add_done_callback(_retrieve_exception)
            self._in_flight[key] = task
        else:
            self._stats.duplicates_avoided += 1
            logger.debug(f"Joining in-flight computation for {key}")

        # A caller that gives up must not cancel the shared computation
        return await asyncio.shield(task)

    async def _compute(
        self,
        key: str,
        ttl: float,
        compute_fn: Callable[[], Awaitable[Any]],
        generation: int,
    ) -> Any:
        try:
            data = await compute_fn()
            if generation == self._generation:
                self._entries[key] = CacheEntry(data=data, expires_at=self._clock() + ttl)
            return data
        finally:
            if self._in_flight.get(key) is asyncio.current_task():
                del self._in_flight[key]

    def invalidate(self, key: str) -> None:
        """Drop a single key."""
        self._entries.pop(key, None)

    def clear(self) -> None:
        """Flush all entries. Computations already in flight will not repopulate the cache."""
        self._entries.clear()
        self._in_flight.clear()
        self._generation += 1
        self._stats = CacheStats()
        logger.debug("Cache cleared")

    def cleanup(self) -> int:
        """Evict expired entries. Returns the number evicted."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if now >= entry.expires_at]
        for key in expired:
            del self._entries[key]
        self._stats.evictions += len(expired)
        if expired:
            logger.debug(f"Evicted {len(expired)} expired cache entries")
        return len(expired)

    def stats(self) -> Dict[str, int]:
        return {
            "hits": self._stats.hits,
            "misses": self._stats.misses,
            "duplicates_avoided": self._stats.duplicates_avoided,
            "evictions": self._stats.evictions,
            "entries": len(self._entries),
            "in_flight": len(self._in_flight),
        }

    def __contains__(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and self._clock() < entry.expires_at


def _retrieve_exception(task: "asyncio.Task[Any]") -> None:
    # Marks the exception as retrieved when every waiter has gone away
    if not task.cancelled():
        task.exception()
