"""Spotify library cache.

Hey future me - this sits IN FRONT of SpotifyClient! Each category wrapper does the same
dance: derive key → cache hit? return → miss? full paginated fetch through the client
(rate limiter + retries) → store with the category's TTL → return.

TTLs follow how volatile each category is:
- liked songs change all the time → short
- playlists / playlist tracks change occasionally → medium
- saved albums rarely change → long
- album track lists are immutable → very long

Key layout:
    spotify:user:{user_id}:playlists
    spotify:user:{user_id}:liked-songs
    spotify:user:{user_id}:saved-albums
    spotify:playlist:{playlist_id}:tracks
    spotify:album:{album_id}:tracks

Everything that belongs to ONE user lives under spotify:user:{user_id}, so
invalidate_user_cache() is a single prefix eviction. Playlist and album track lists
are keyed by the collection itself: the same playlist loaded by two players is one entry.

The backing cache may be Redis (see TieredCache), where entries come back as plain
JSON. Every hit goes through a pydantic TypeAdapter so callers always get DTOs.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from pydantic import TypeAdapter

from songpool.application.cache.base_cache import BaseCache, InMemoryCache
from songpool.config import CacheSettings
from songpool.domain.dtos import AlbumDTO, PlaylistSummaryDTO, TrackDTO
from songpool.domain.exceptions import ValidationError
from songpool.infrastructure.integrations.spotify_client import SpotifyClient

logger = logging.getLogger(__name__)

T = TypeVar("T")

_PLAYLISTS = TypeAdapter(list[PlaylistSummaryDTO])
_TRACKS = TypeAdapter(list[TrackDTO])
_ALBUMS = TypeAdapter(list[AlbumDTO])


class SpotifyLibraryCache:
    """Cached, category-specific fetchers for a user's Spotify library."""

    def __init__(
        self,
        client: SpotifyClient,
        settings: CacheSettings | None = None,
        cache: BaseCache[str, Any] | None = None,
    ) -> None:
        self.client = client
        self.settings = settings or CacheSettings()
        self._cache: BaseCache[str, Any] = cache or InMemoryCache(
            max_entries=self.settings.max_entries
        )

    @staticmethod
    def user_prefix(user_id: str) -> str:
        return f"spotify:user:{user_id}"

    def _make_playlists_key(self, user_id: str) -> str:
        return f"{self.user_prefix(user_id)}:playlists"

    def _make_liked_songs_key(self, user_id: str) -> str:
        return f"{self.user_prefix(user_id)}:liked-songs"

    def _make_saved_albums_key(self, user_id: str) -> str:
        return f"{self.user_prefix(user_id)}:saved-albums"

    def _make_playlist_tracks_key(self, playlist_id: str) -> str:
        return f"spotify:playlist:{playlist_id}:tracks"

    def _make_album_tracks_key(self, album_id: str) -> str:
        return f"spotify:album:{album_id}:tracks"

    async def _get_or_fetch(
        self,
        key: str,
        ttl_seconds: int,
        fetch: Callable[[], Awaitable[list[T]]],
        adapter: TypeAdapter[list[T]],
    ) -> list[T]:
        cached = await self._cache.get(key)
        if cached is not None:
            try:
                result = adapter.validate_python(cached)
            except (ValueError, ValidationError) as e:
                logger.warning("Discarding malformed cache entry %s: %s", key, e)
                await self._cache.invalidate(key)
            else:
                logger.debug("Cache HIT: %s", key)
                return list(result)

        logger.debug("Cache MISS: %s", key)
        result = await fetch()
        await self._cache.set(key, result, ttl_seconds)
        return list(result)

    async def get_user_playlists(
        self, user_id: str, credential: str
    ) -> list[PlaylistSummaryDTO]:
        """All of the user's playlists."""
        return await self._get_or_fetch(
            self._make_playlists_key(user_id),
            self.settings.playlists_ttl,
            lambda: self.client.get_user_playlists(user_id, credential),
            _PLAYLISTS,
        )

    async def get_user_liked_songs(self, user_id: str, credential: str) -> list[TrackDTO]:
        """All of the user's Liked Songs."""
        return await self._get_or_fetch(
            self._make_liked_songs_key(user_id),
            self.settings.liked_songs_ttl,
            lambda: self.client.get_liked_tracks(user_id, credential),
            _TRACKS,
        )

    async def get_user_saved_albums(self, user_id: str, credential: str) -> list[AlbumDTO]:
        """All of the user's saved albums."""
        return await self._get_or_fetch(
            self._make_saved_albums_key(user_id),
            self.settings.saved_albums_ttl,
            lambda: self.client.get_saved_albums(user_id, credential),
            _ALBUMS,
        )

    async def get_playlist_tracks(
        self, playlist_id: str, user_id: str, credential: str
    ) -> list[TrackDTO]:
        """All tracks of a playlist (fetched with `user_id`'s rate limit budget)."""
        return await self._get_or_fetch(
            self._make_playlist_tracks_key(playlist_id),
            self.settings.playlist_tracks_ttl,
            lambda: self.client.get_playlist_tracks(playlist_id, user_id, credential),
            _TRACKS,
        )

    async def get_album_tracks(
        self,
        album_id: str,
        user_id: str,
        credential: str,
        album_name: str | None = None,
    ) -> list[TrackDTO]:
        """All tracks of an album (fetched with `user_id`'s rate limit budget)."""
        return await self._get_or_fetch(
            self._make_album_tracks_key(album_id),
            self.settings.album_tracks_ttl,
            lambda: self.client.get_album_tracks(
                album_id, user_id, credential, album_name=album_name
            ),
            _TRACKS,
        )

    async def invalidate_user_cache(self, user_id: str) -> int:
        """Drop everything cached for one user (forced refresh).

        Returns:
            Number of entries removed
        """
        removed = await self._cache.invalidate_pattern(f"{self.user_prefix(user_id)}:")
        logger.info("Invalidated %d cache entries for user %s", removed, user_id)
        return removed

    async def invalidate_playlist_cache(self, playlist_id: str) -> bool:
        """Drop one playlist's cached track list."""
        return await self._cache.invalidate(self._make_playlist_tracks_key(playlist_id))

    # Hey future me - warm_up is best effort! It runs when a player joins a lobby so the
    # three big listings are already cached by the time the game starts. A failure here
    # just means the real aggregation fetches it again, so we log and move on.
    async def warm_up(self, user_id: str, credential: str) -> bool:
        """Preload playlists, liked songs and saved albums concurrently.

        Returns:
            True if all three listings were cached
        """
        logger.info("Warming up cache for user %s", user_id)
        results = await asyncio.gather(
            self.get_user_playlists(user_id, credential),
            self.get_user_liked_songs(user_id, credential),
            self.get_user_saved_albums(user_id, credential),
            return_exceptions=True,
        )
        failures = [result for result in results if isinstance(result, BaseException)]
        for failure in failures:
            logger.error("Cache warm-up failed for user %s: %s", user_id, failure)
        if not failures:
            logger.info("Cache warmed up for user %s", user_id)
        return not failures
