"""Base cache interface and in-memory implementation."""

import asyncio
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

K = TypeVar("K")  # Key type
V = TypeVar("V")  # Value type


@dataclass
class CacheEntry(Generic[V]):
    """Cache entry with value and metadata."""

    value: V
    created_at: float
    ttl_seconds: float

    # Hey future me, expiry is measured on a MONOTONIC clock (see InMemoryCache), so NTP
    # jumps can't suddenly expire or resurrect entries. A read exactly at the boundary
    # still counts as a hit; one tick later it's a miss.
    def is_expired(self, now: float) -> bool:
        """Check if cache entry is expired."""
        return now > (self.created_at + self.ttl_seconds)


class BaseCache(ABC, Generic[K, V]):
    """Base cache interface for all cache implementations."""

    @abstractmethod
    async def get(self, key: K) -> V | None:
        """Get value from cache.

        Returns:
            Cached value if found and not expired, None otherwise
        """
        pass

    @abstractmethod
    async def set(self, key: K, value: V, ttl_seconds: float = 3600) -> None:
        """Set value in cache with a fresh TTL."""
        pass

    @abstractmethod
    async def invalidate(self, key: K) -> bool:
        """Remove one key.

        Returns:
            True if deleted, False if not found
        """
        pass

    @abstractmethod
    async def invalidate_pattern(self, prefix: str) -> int:
        """Remove every key starting with `prefix`.

        Returns:
            Number of entries removed
        """
        pass

    @abstractmethod
    async def clear(self) -> None:
        """Clear all entries from cache."""
        pass

    async def close(self) -> None:
        """Release connections held by the cache (nothing to do in-process)."""
        return None


class InMemoryCache(BaseCache[str, V]):
    """In-memory TTL cache keyed by strings.

    Listen up future me, this is PER PROCESS! Run several app instances and each has its
    own copy - fine for idempotent Spotify reads (worst case we fetch twice), but if you
    scale out, put a shared store behind BaseCache instead.

    Size is bounded by max_entries: when full we first drop expired entries, then the
    OLDEST inserted one (dicts keep insertion order).
    """

    def __init__(
        self,
        max_entries: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize in-memory cache."""
        self._cache: dict[str, CacheEntry[V]] = {}
        self._lock = asyncio.Lock()
        self._max_entries = max_entries
        self._clock = clock

    # get() has a side effect: an expired entry is deleted on read. Returns None for both
    # "not found" and "expired" - to the caller both are simply a miss.
    async def get(self, key: str) -> V | None:
        """Get value from cache."""
        async with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                return None

            if entry.is_expired(self._clock()):
                del self._cache[key]
                return None

            return entry.value

    # set() ALWAYS overwrites (last write wins) and always starts a fresh TTL.
    async def set(self, key: str, value: V, ttl_seconds: float = 3600) -> None:
        """Set value in cache."""
        async with self._lock:
            now = self._clock()
            # Re-insert so an overwritten key moves to the "newest" end
            self._cache.pop(key, None)
            if len(self._cache) >= self._max_entries:
                self._evict(now)
            self._cache[key] = CacheEntry(
                value=value,
                created_at=now,
                ttl_seconds=ttl_seconds,
            )

    def _evict(self, now: float) -> None:
        expired_keys = [k for k, entry in self._cache.items() if entry.is_expired(now)]
        for k in expired_keys:
            del self._cache[k]
        while len(self._cache) >= self._max_entries:
            oldest_key = next(iter(self._cache))
            del self._cache[oldest_key]

    async def invalidate(self, key: str) -> bool:
        """Delete value from cache, expired or not."""
        async with self._lock:
            if key in self._cache:
                del self._cache[key]
                return True
            return False

    async def invalidate_pattern(self, prefix: str) -> int:
        """Delete every key starting with prefix."""
        async with self._lock:
            matching = [key for key in self._cache if key.startswith(prefix)]
            for key in matching:
                del self._cache[key]
            return len(matching)

    async def clear(self) -> None:
        """Clear all entries from cache."""
        async with self._lock:
            self._cache.clear()

    async def cleanup_expired(self) -> int:
        """Remove expired entries from cache.

        Returns:
            Number of entries removed
        """
        async with self._lock:
            now = self._clock()
            expired_keys = [key for key, entry in self._cache.items() if entry.is_expired(now)]
            for key in expired_keys:
                del self._cache[key]
            return len(expired_keys)

    # Not locked on purpose - stats are for monitoring, a slightly stale count is fine.
    def get_stats(self) -> dict[str, Any]:
        """Get cache statistics."""
        now = self._clock()
        total_entries = len(self._cache)
        expired_entries = sum(1 for entry in self._cache.values() if entry.is_expired(now))

        return {
            "total_entries": total_entries,
            "active_entries": total_entries - expired_entries,
            "expired_entries": expired_entries,
            "max_entries": self._max_entries,
        }
