"""Two-tier cache: in-memory first, Redis second."""

import logging
from typing import Any

from songpool.application.cache.base_cache import BaseCache, InMemoryCache
from songpool.application.cache.redis_cache import RedisCache

logger = logging.getLogger(__name__)


class TieredCache(BaseCache[str, Any]):
    """In-memory L1 in front of a shared Redis L2.

    Hey future me - reads try memory, then Redis (a Redis hit is copied into memory).
    Writes and invalidations go to both tiers. The memory copy never lives longer than
    `local_ttl`, so an invalidation done by ANOTHER process reaches this one within
    that window at the latest.

    With `remote=None` (no Redis configured, or Redis unreachable at startup) this is
    just the in-memory cache.
    """

    def __init__(
        self,
        local: InMemoryCache[Any],
        remote: RedisCache | None = None,
        local_ttl: float = 300,
    ) -> None:
        self.local = local
        self.remote = remote
        self.local_ttl = local_ttl

    async def check_remote(self) -> bool:
        """Ping Redis once and fall back to memory only if it doesn't answer.

        Returns:
            True if the Redis tier is in use
        """
        if self.remote is None:
            return False
        if await self.remote.ping():
            logger.info("Redis cache tier connected")
            return True
        logger.warning("Redis unavailable, using in-memory cache only")
        await self.remote.close()
        self.remote = None
        return False

    async def get(self, key: str) -> Any | None:
        value = await self.local.get(key)
        if value is not None:
            logger.debug("Memory cache HIT: %s", key)
            return value
        if self.remote is None:
            return None

        value = await self.remote.get(key)
        if value is not None:
            logger.debug("Redis cache HIT: %s", key)
            await self.local.set(key, value, self.local_ttl)
        return value

    async def set(self, key: str, value: Any, ttl_seconds: float = 3600) -> None:
        await self.local.set(key, value, min(ttl_seconds, self.local_ttl))
        if self.remote is not None:
            await self.remote.set(key, value, ttl_seconds)

    async def invalidate(self, key: str) -> bool:
        removed = await self.local.invalidate(key)
        if self.remote is not None:
            removed = await self.remote.invalidate(key) or removed
        return removed

    # The same key usually sits in both tiers, so the larger count is the real one
    async def invalidate_pattern(self, prefix: str) -> int:
        removed = await self.local.invalidate_pattern(prefix)
        if self.remote is not None:
            removed = max(removed, await self.remote.invalidate_pattern(prefix))
        return removed

    async def clear(self) -> None:
        await self.local.clear()
        if self.remote is not None:
            await self.remote.clear()

    async def close(self) -> None:
        if self.remote is not None:
            await self.remote.close()
