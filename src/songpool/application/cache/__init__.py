"""Caching layer - TTL caches in front of the Spotify API."""

from songpool.application.cache.base_cache import BaseCache, CacheEntry, InMemoryCache
from songpool.application.cache.library_cache import SpotifyLibraryCache
from songpool.application.cache.redis_cache import RedisCache
from songpool.application.cache.tiered_cache import TieredCache

__all__ = [
    "BaseCache",
    "CacheEntry",
    "InMemoryCache",
    "RedisCache",
    "SpotifyLibraryCache",
    "TieredCache",
]
