"""Service lifecycle management for songpool.

The host app enters songpool_lifespan() once at startup (e.g. from its own FastAPI
lifespan) and keeps the yielded SongPoolServices for the whole process lifetime.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

from songpool.application.cache import (
    BaseCache,
    InMemoryCache,
    RedisCache,
    SpotifyLibraryCache,
    TieredCache,
)
from songpool.application.services.library_aggregator import LibraryAggregator
from songpool.application.services.song_loading_service import SongLoadingService
from songpool.config import CacheSettings, Settings, get_settings
from songpool.domain.ports import IBroadcaster, ISongPoolRepository
from songpool.infrastructure.integrations.request_executor import (
    RequestExecutor,
    RetryPolicy,
)
from songpool.infrastructure.integrations.spotify_client import SpotifyClient
from songpool.infrastructure.observability import configure_logging
from songpool.infrastructure.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


@dataclass
class SongPoolServices:
    """Everything the host needs, wired together once."""

    settings: Settings
    limiter: RateLimiter
    executor: RequestExecutor
    client: SpotifyClient
    cache_backend: BaseCache[str, Any]
    cache: SpotifyLibraryCache
    aggregator: LibraryAggregator
    loading: SongLoadingService


def build_cache_backend(settings: CacheSettings) -> BaseCache[str, Any]:
    """In-memory cache, with Redis behind it when `redis_url` is set."""
    local = InMemoryCache(max_entries=settings.max_entries)
    if not settings.redis_url:
        return local
    remote = RedisCache.from_url(settings.redis_url, key_prefix=settings.redis_key_prefix)
    return TieredCache(local, remote, local_ttl=settings.redis_local_ttl)


def build_services(
    settings: Settings,
    repository: ISongPoolRepository | None = None,
    broadcaster: IBroadcaster | None = None,
) -> SongPoolServices:
    """Construct the service graph from settings (no I/O)."""
    limiter = RateLimiter.from_settings(settings.rate_limit)
    executor = RequestExecutor(
        limiter,
        policy=RetryPolicy.from_settings(settings.retry),
        timeout=settings.spotify.request_timeout,
    )
    client = SpotifyClient(
        executor,
        settings=settings.spotify,
        max_items_per_source=settings.aggregation.max_items_per_source,
    )
    cache_backend = build_cache_backend(settings.cache)
    cache = SpotifyLibraryCache(client, settings=settings.cache, cache=cache_backend)
    aggregator = LibraryAggregator(cache, settings=settings.aggregation)
    loading = SongLoadingService(aggregator, repository=repository, broadcaster=broadcaster)
    return SongPoolServices(
        settings=settings,
        limiter=limiter,
        executor=executor,
        client=client,
        cache_backend=cache_backend,
        cache=cache,
        aggregator=aggregator,
        loading=loading,
    )


# Listen future me, everything before `yield` runs at STARTUP, everything after at
# SHUTDOWN. Cleanup errors are logged, never raised - a failing close() must not mask
# the exception that is already unwinding through the context manager.
@asynccontextmanager
async def songpool_lifespan(
    settings: Settings | None = None,
    repository: ISongPoolRepository | None = None,
    broadcaster: IBroadcaster | None = None,
) -> AsyncGenerator[SongPoolServices, None]:
    """Set up logging and the songpool services, tear them down on exit."""
    settings = settings or get_settings()

    configure_logging(
        log_level=settings.log_level,
        json_format=settings.observability.log_json_format,
        app_name=settings.app_name,
    )
    logger.info("Starting %s", settings.app_name)

    services = build_services(settings, repository=repository, broadcaster=broadcaster)
    if isinstance(services.cache_backend, TieredCache):
        await services.cache_backend.check_remote()

    try:
        yield services
    finally:
        logger.info("Shutting down %s", settings.app_name)
        try:
            await services.client.close()
            logger.info("Spotify HTTP client closed")
        except Exception as e:
            logger.exception("Error closing Spotify HTTP client: %s", e)

        try:
            await services.cache_backend.close()
        except Exception as e:
            logger.exception("Error closing cache backend: %s", e)
