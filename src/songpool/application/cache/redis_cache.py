"""Redis cache - the shared tier behind the per-process InMemoryCache.

Hey future me - InMemoryCache lives in ONE process. Run the host with several workers
and each of them would fetch (and pay rate limit tokens for) the same Spotify listings.
RedisCache is the second tier all processes share; TieredCache puts it behind the
in-memory one.

Values go in as JSON (pydantic serializes the DTO dataclasses) and come back as plain
lists/dicts. SpotifyLibraryCache turns them back into DTOs.

Redis being down is NOT an error here: every failed command is logged and treated as a
miss or a no-op, and the caller simply fetches from Spotify again.
"""

import logging
import math
from typing import Any

import redis.asyncio as aioredis
from pydantic import TypeAdapter
from redis.exceptions import RedisError

from songpool.application.cache.base_cache import BaseCache

logger = logging.getLogger(__name__)

_JSON: TypeAdapter[Any] = TypeAdapter(Any)

# SCAN MATCH is a glob: ids containing * ? [ ] must match literally
_GLOB_ESCAPES = str.maketrans({char: f"\\{char}" for char in "\\*?[]"})


class RedisCache(BaseCache[str, Any]):
    """TTL cache stored in Redis (GET, SETEX, SCAN + DEL).

    All keys are namespaced with `key_prefix`, so clear() only touches songpool's keys
    and never flushes a shared database.
    """

    def __init__(
        self,
        client: aioredis.Redis,
        key_prefix: str = "songpool:",
        scan_count: int = 500,
    ) -> None:
        self.client = client
        self.key_prefix = key_prefix
        self.scan_count = scan_count

    @classmethod
    def from_url(cls, url: str, key_prefix: str = "songpool:") -> "RedisCache":
        """Create a cache with its own connection pool. Connects lazily (no I/O here)."""
        return cls(aioredis.from_url(url, socket_connect_timeout=2), key_prefix=key_prefix)

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    async def ping(self) -> bool:
        """Check that Redis answers."""
        try:
            return bool(await self.client.ping())
        except RedisError as e:
            logger.warning("Redis unavailable: %s", e)
            return False

    async def get(self, key: str) -> Any | None:
        """Get a decoded JSON value, None on miss or Redis failure."""
        try:
            raw = await self.client.get(self._key(key))
        except RedisError as e:
            logger.warning("Redis GET %s failed, treating as miss: %s", key, e)
            return None
        if raw is None:
            return None
        try:
            return _JSON.validate_json(raw)
        except ValueError as e:
            logger.warning("Ignoring undecodable Redis entry %s: %s", key, e)
            return None

    async def set(self, key: str, value: Any, ttl_seconds: float = 3600) -> None:
        """Store value as JSON with SETEX."""
        # SETEX takes whole seconds and rejects 0
        ttl = max(1, math.ceil(ttl_seconds))
        try:
            await self.client.setex(self._key(key), ttl, _JSON.dump_json(value))
        except RedisError as e:
            logger.warning("Redis SETEX %s failed: %s", key, e)

    async def invalidate(self, key: str) -> bool:
        try:
            return bool(await self.client.delete(self._key(key)))
        except RedisError as e:
            logger.warning("Redis DEL %s failed: %s", key, e)
            return False

    async def invalidate_pattern(self, prefix: str) -> int:
        """Delete every key starting with prefix, in SCAN-sized chunks."""
        match = f"{self._key(prefix).translate(_GLOB_ESCAPES)}*"
        removed = 0
        batch: list[Any] = []
        try:
            async for redis_key in self.client.scan_iter(match=match, count=self.scan_count):
                batch.append(redis_key)
                if len(batch) >= self.scan_count:
                    removed += await self.client.delete(*batch)
                    batch = []
            if batch:
                removed += await self.client.delete(*batch)
        except RedisError as e:
            logger.warning("Redis invalidation of %s* failed: %s", prefix, e)
        return removed

    async def clear(self) -> None:
        """Delete every songpool key."""
        await self.invalidate_pattern("")

    async def close(self) -> None:
        await self.client.aclose()
