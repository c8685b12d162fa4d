"""Tests for the Redis cache tier."""

from unittest.mock import AsyncMock

import fakeredis
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from songpool.application.cache.redis_cache import RedisCache
from songpool.domain.dtos import TrackDTO


@pytest.fixture
def server() -> fakeredis.FakeServer:
    return fakeredis.FakeServer()


@pytest.fixture
async def redis_client(server: fakeredis.FakeServer):
    client = fakeredis.FakeAsyncRedis(server=server)
    yield client
    await client.aclose()


@pytest.fixture
def cache(redis_client) -> RedisCache:
    return RedisCache(redis_client, key_prefix="test:")


@pytest.fixture
def broken_client() -> AsyncMock:
    """Redis client whose every command fails with a connection error."""
    client = AsyncMock()
    error = RedisConnectionError("Connection refused")
    client.ping.side_effect = error
    client.get.side_effect = error
    client.setex.side_effect = error
    client.delete.side_effect = error
    return client


class TestRedisCache:
    """Test GET / SETEX / DEL against a fake Redis server."""

    async def test_set_and_get(self, cache: RedisCache):
        """Test JSON values come back equal."""
        await cache.set("k", {"items": [1, 2], "next": None}, ttl_seconds=60)

        assert await cache.get("k") == {"items": [1, 2], "next": None}

    async def test_miss_returns_none(self, cache: RedisCache):
        """Test a missing key is a miss."""
        assert await cache.get("nope") is None

    async def test_dataclasses_stored_as_json(self, cache: RedisCache, redis_client):
        """Test DTOs are serialized to plain JSON objects."""
        await cache.set("tracks", [TrackDTO(id="t1", name="Song", artists=["A"])], 60)

        assert await cache.get("tracks") == [
            {
                "id": "t1",
                "name": "Song",
                "artists": ["A"],
                "album_name": None,
                "album_id": None,
                "duration_ms": 0,
            }
        ]
        assert await redis_client.exists("test:tracks") == 1

    async def test_setex_applies_ttl(self, cache: RedisCache, redis_client):
        """Test entries get a Redis expiry, rounded up to whole seconds."""
        await cache.set("long", [1], ttl_seconds=600)
        await cache.set("short", [1], ttl_seconds=0.2)

        assert 0 < await redis_client.ttl("test:long") <= 600
        assert await redis_client.ttl("test:short") == 1

    async def test_undecodable_entry_is_a_miss(self, cache: RedisCache, redis_client):
        """Test garbage written by someone else doesn't break reads."""
        await redis_client.set("test:k", b"{not json")

        assert await cache.get("k") is None

    async def test_invalidate(self, cache: RedisCache):
        """Test single-key delete reports whether something was removed."""
        await cache.set("k", [1], 60)

        assert await cache.invalidate("k") is True
        assert await cache.invalidate("k") is False
        assert await cache.get("k") is None

    async def test_invalidate_pattern_by_prefix(self, cache: RedisCache):
        """Test prefix eviction leaves other users alone."""
        await cache.set("spotify:user:u1:playlists", [1], 60)
        await cache.set("spotify:user:u1:liked-songs", [1], 60)
        await cache.set("spotify:user:u10:playlists", [1], 60)

        removed = await cache.invalidate_pattern("spotify:user:u1:")

        assert removed == 2
        assert await cache.get("spotify:user:u10:playlists") == [1]

    async def test_invalidate_pattern_in_chunks(self, redis_client):
        """Test more keys than one SCAN chunk are all removed."""
        cache = RedisCache(redis_client, key_prefix="test:", scan_count=2)
        for i in range(5):
            await cache.set(f"spotify:user:u1:k{i}", [i], 60)

        assert await cache.invalidate_pattern("spotify:user:u1:") == 5

    async def test_invalidate_pattern_matches_glob_characters_literally(
        self, cache: RedisCache
    ):
        """Test ids with * or ? don't widen the match."""
        await cache.set("spotify:user:a*:playlists", [1], 60)
        await cache.set("spotify:user:ab:playlists", [2], 60)

        removed = await cache.invalidate_pattern("spotify:user:a*:")

        assert removed == 1
        assert await cache.get("spotify:user:ab:playlists") == [2]

    async def test_clear_only_touches_own_prefix(self, cache: RedisCache, redis_client):
        """Test clear() never removes keys outside the namespace."""
        await cache.set("k1", [1], 60)
        await cache.set("k2", [2], 60)
        await redis_client.set("other-app:key", b"keep")

        await cache.clear()

        assert await cache.get("k1") is None
        assert await redis_client.get("other-app:key") == b"keep"

    async def test_ping(self, cache: RedisCache):
        """Test a reachable server answers the ping."""
        assert await cache.ping() is True


class TestRedisUnavailable:
    """Test Redis failures degrade to misses and no-ops."""

    async def test_get_is_a_miss(self, broken_client: AsyncMock, caplog):
        """Test a failed GET is logged and returns None."""
        cache = RedisCache(broken_client)

        assert await cache.get("k") is None
        assert "Redis GET k failed" in caplog.text

    async def test_set_does_not_raise(self, broken_client: AsyncMock):
        """Test a failed SETEX is swallowed."""
        cache = RedisCache(broken_client)

        await cache.set("k", [1], 60)

        broken_client.setex.assert_awaited_once()

    async def test_invalidate_reports_nothing_removed(self, broken_client: AsyncMock):
        """Test a failed DEL reports False."""
        assert await RedisCache(broken_client).invalidate("k") is False

    async def test_ping_false(self, broken_client: AsyncMock):
        """Test an unreachable server fails the ping."""
        assert await RedisCache(broken_client).ping() is False
