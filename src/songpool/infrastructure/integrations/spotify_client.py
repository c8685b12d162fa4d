"""Spotify Web API client for library reads."""

import logging
from collections.abc import Callable
from typing import Any, TypeVar
from urllib.parse import quote

from songpool.config import SpotifySettings
from songpool.domain.dtos import (
    AlbumDTO,
    PageDTO,
    PlaylistSummaryDTO,
    TrackDTO,
    UserProfileDTO,
)
from songpool.domain.exceptions import ValidationError
from songpool.infrastructure.integrations.pagination import PaginationWalker
from songpool.infrastructure.integrations.request_executor import RequestExecutor
from songpool.infrastructure.rate_limiter import Priority

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _convert_items(
    raw_items: list[dict[str, Any]],
    converter: Callable[[dict[str, Any]], T],
    label: str,
) -> list[T]:
    # Yo, playlists happily contain local files and region-locked tracks with id=None, and
    # saved-item wrappers can hold null tracks. Those can't take part in the game - skip
    # them, don't fail the whole list.
    converted: list[T] = []
    skipped = 0
    for item in raw_items:
        try:
            converted.append(converter(item))
        except ValidationError:
            skipped += 1
    if skipped:
        logger.debug("Skipped %d unusable %s entries", skipped, label)
    return converted


class SpotifyClient:
    """Typed access to the Spotify endpoints songpool needs.

    Every call is paid for by `user_id`'s rate limit bucket. Raw JSON never leaves
    this class - everything comes back as DTOs.
    """

    def __init__(
        self,
        executor: RequestExecutor,
        settings: SpotifySettings | None = None,
        max_items_per_source: int | None = None,
    ) -> None:
        self.executor = executor
        self.settings = settings or SpotifySettings()
        self.walker = PaginationWalker(executor)
        self.max_items_per_source = max_items_per_source

    @property
    def api_base_url(self) -> str:
        return self.settings.api_base_url.rstrip("/")

    def _url(self, path: str, limit: int | None = None) -> str:
        page_size = self.settings.page_size if limit is None else limit
        return f"{self.api_base_url}{path}?limit={page_size}"

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self.executor.close()

    async def get_current_user(self, user_id: str, credential: str) -> UserProfileDTO:
        """Fetch the profile of the token's owner (interactive, HIGH priority)."""
        payload = await self.executor.execute_high_priority(
            f"{self.api_base_url}/me", credential, user_id
        )
        return UserProfileDTO.from_spotify(payload)

    async def get_user_playlists(
        self, user_id: str, credential: str
    ) -> list[PlaylistSummaryDTO]:
        """Fetch every playlist the user owns or follows."""
        items = await self.walker.fetch_all_pages(
            self._url("/me/playlists"),
            user_id,
            credential,
            max_items=self.max_items_per_source,
        )
        return _convert_items(items, PlaylistSummaryDTO.from_spotify, "playlist")

    async def get_liked_tracks(self, user_id: str, credential: str) -> list[TrackDTO]:
        """Fetch every track in the user's Liked Songs."""
        items = await self.walker.fetch_all_pages(
            self._url("/me/tracks"),
            user_id,
            credential,
            max_items=self.max_items_per_source,
        )
        return _convert_items(
            [item.get("track") for item in items if isinstance(item, dict)],
            TrackDTO.from_spotify,
            "liked track",
        )

    async def get_saved_albums(self, user_id: str, credential: str) -> list[AlbumDTO]:
        """Fetch every album the user saved to their library."""
        items = await self.walker.fetch_all_pages(
            self._url("/me/albums"),
            user_id,
            credential,
            max_items=self.max_items_per_source,
        )
        return _convert_items(
            [item.get("album") for item in items if isinstance(item, dict)],
            AlbumDTO.from_spotify,
            "saved album",
        )

    async def get_playlist_tracks(
        self, playlist_id: str, user_id: str, credential: str
    ) -> list[TrackDTO]:
        """Fetch every track of one playlist."""
        items = await self.walker.fetch_all_pages(
            self._url(f"/playlists/{quote(playlist_id, safe='')}/tracks"),
            user_id,
            credential,
            max_items=self.max_items_per_source,
        )
        return _convert_items(
            [item.get("track") for item in items if isinstance(item, dict)],
            TrackDTO.from_spotify,
            "playlist track",
        )

    # Hey future me - album track lists are supplementary (LOW priority) and come back as
    # simplified tracks WITHOUT album info. album_name fills that gap.
    async def get_album_tracks(
        self,
        album_id: str,
        user_id: str,
        credential: str,
        album_name: str | None = None,
    ) -> list[TrackDTO]:
        """Fetch every track of one album."""
        items = await self.walker.fetch_all_pages(
            self._url(f"/albums/{quote(album_id, safe='')}/tracks"),
            user_id,
            credential,
            priority=Priority.LOW,
            max_items=self.max_items_per_source,
        )
        return _convert_items(
            items,
            lambda item: TrackDTO.from_spotify(item, album_name=album_name, album_id=album_id),
            "album track",
        )

    async def get_liked_songs_count(self, user_id: str, credential: str) -> int:
        """Number of Liked Songs, read from a single one-item page."""
        return await self._get_total("/me/tracks", user_id, credential)

    async def get_saved_albums_count(self, user_id: str, credential: str) -> int:
        """Number of saved albums, read from a single one-item page."""
        return await self._get_total("/me/albums", user_id, credential)

    async def _get_total(self, path: str, user_id: str, credential: str) -> int:
        payload = await self.executor.execute(self._url(path, limit=1), credential, user_id)
        return PageDTO.from_spotify(payload).total or 0
