"""Library aggregator - turns one player's Spotify library into a deduplicated song list.

Hey future me - this is the heart of song loading! Flow for one player:

    1. Liked Songs (all of them, always)         → cache → SpotifyClient
    2. Playlists (all, or only the selected ones) → batches of 5 in parallel
    3. Saved albums (all of them, always)         → batches of 3 in parallel

Every track id lands in the result ONCE. The first source that brings a track decides
its name/artists/album; every later source of the same player only adds an Owner.

Selective mode is deliberately lopsided: the player picks which playlists take part,
but liked songs and saved albums are ALWAYS included. Don't "fix" that into a uniform
filter - the lobby UI only offers a playlist picker.

Failure rules:
- liked songs / playlist listing fail → the whole run fails
- saved album listing fails → logged, run finishes with no albums
- one playlist or one album fails → logged, skipped, run continues
- UpstreamAuthError ANYWHERE → run fails, so the host can ask for a re-login
"""

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import TypeVar

from songpool.application.cache.library_cache import SpotifyLibraryCache
from songpool.application.services.progress import AggregationPhase, AggregationProgress
from songpool.config import AggregationSettings
from songpool.domain.dtos import AlbumDTO, PlaylistSummaryDTO, TrackDTO
from songpool.domain.entities import Owner, Song, SongSource, SourceType
from songpool.domain.exceptions import UpstreamAuthError, UpstreamError
from songpool.domain.ports import ProgressCallback

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _batches(items: Sequence[T], size: int) -> list[Sequence[T]]:
    return [items[i : i + size] for i in range(0, len(items), size)]


@dataclass
class _LibraryRun:
    """Mutable state of one aggregation run (one player)."""

    user_id: str
    display_name: str
    songs: dict[str, Song] = field(default_factory=dict)

    def add_tracks(self, tracks: list[TrackDTO], source: SongSource) -> int:
        """Fold tracks from one source into the result.

        Returns:
            Number of NEW songs this source contributed
        """
        added = 0
        for track in tracks:
            song = self.songs.get(track.id)
            if song is None:
                album = track.album_name
                if album is None and source.type is SourceType.ALBUM:
                    album = source.name
                self.songs[track.id] = Song(
                    id=track.id,
                    name=track.name,
                    artists=list(track.artists),
                    album=album,
                    owners=[self._owner(source)],
                )
                added += 1
            elif not song.has_source(self.user_id, source):
                song.owners.append(self._owner(source))
        return added

    def _owner(self, source: SongSource) -> Owner:
        return Owner(player_id=self.user_id, player_name=self.display_name, source=source)


class LibraryAggregator:
    """Aggregates a player's liked songs, playlists and saved albums."""

    def __init__(
        self,
        cache: SpotifyLibraryCache,
        settings: AggregationSettings | None = None,
    ) -> None:
        self.cache = cache
        self.settings = settings or AggregationSettings()

    async def fetch_library(
        self,
        user_id: str,
        display_name: str,
        credential: str,
        selected_playlist_ids: list[str] | None = None,
        progress: ProgressCallback | None = None,
    ) -> list[Song]:
        """Fetch and deduplicate a player's library.

        Args:
            user_id: Spotify user id (also the rate limit identity)
            display_name: Player name recorded on every Owner
            credential: OAuth bearer token
            selected_playlist_ids: None = all playlists; a list = only these playlists
                (liked songs and saved albums are included either way)
            progress: Optional callback receiving whole-number percentages

        Returns:
            Songs in first-seen order, one per track id

        Raises:
            UpstreamAuthError: Spotify rejected the token
            UpstreamError: A core listing (liked songs, playlists) failed
        """
        run = _LibraryRun(user_id=user_id, display_name=display_name)
        tracker = AggregationProgress(self.settings, progress)
        mode = "full" if selected_playlist_ids is None else "selective"
        logger.info("Aggregating %s library for user %s", mode, user_id)

        await self._add_liked_songs(run, credential, tracker)

        playlists = await self._resolve_playlists(run, credential, selected_playlist_ids)
        await self._add_playlists(run, credential, playlists, tracker)

        await self._add_saved_albums(run, credential, tracker)

        songs = list(run.songs.values())
        await tracker.complete(f"Loaded {len(songs)} songs")
        logger.info(
            "Aggregated %d unique songs for user %s (%d playlists)",
            len(songs),
            user_id,
            len(playlists),
        )
        return songs

    async def _add_liked_songs(
        self, run: _LibraryRun, credential: str, tracker: AggregationProgress
    ) -> None:
        await tracker.start_phase(AggregationPhase.LIKED, "Loading liked songs...")
        liked = await self.cache.get_user_liked_songs(run.user_id, credential)
        added = run.add_tracks(liked, SongSource.liked())
        logger.debug("Liked songs: %d tracks, %d new", len(liked), added)
        await tracker.report(
            AggregationPhase.LIKED, len(liked), f"Loaded {len(liked)} liked songs"
        )

    async def _resolve_playlists(
        self,
        run: _LibraryRun,
        credential: str,
        selected_playlist_ids: list[str] | None,
    ) -> list[PlaylistSummaryDTO]:
        if selected_playlist_ids is not None and not selected_playlist_ids:
            return []

        playlists = await self.cache.get_user_playlists(run.user_id, credential)
        if selected_playlist_ids is None:
            return playlists

        # Selective mode: keep the caller's order, recover names from the full listing
        by_id = {playlist.id: playlist for playlist in playlists}
        resolved: list[PlaylistSummaryDTO] = []
        for playlist_id in dict.fromkeys(selected_playlist_ids):
            playlist = by_id.get(playlist_id)
            if playlist is None:
                logger.warning(
                    "Selected playlist %s not found for user %s, skipping",
                    playlist_id,
                    run.user_id,
                )
                continue
            resolved.append(playlist)
        return resolved

    async def _add_playlists(
        self,
        run: _LibraryRun,
        credential: str,
        playlists: list[PlaylistSummaryDTO],
        tracker: AggregationProgress,
    ) -> None:
        await tracker.start_phase(
            AggregationPhase.PLAYLISTS, f"Loading {len(playlists)} playlists..."
        )
        processed = 0
        for batch in _batches(playlists, self.settings.playlist_batch_size):
            results = await asyncio.gather(
                *(
                    self.cache.get_playlist_tracks(playlist.id, run.user_id, credential)
                    for playlist in batch
                ),
                return_exceptions=True,
            )
            for playlist, result in zip(batch, results, strict=True):
                tracks = self._unwrap(result, "playlist", playlist.id, playlist.name)
                if tracks is None:
                    continue
                run.add_tracks(tracks, SongSource.playlist(playlist.name, playlist.id))
                processed += len(tracks)
            await tracker.report(
                AggregationPhase.PLAYLISTS,
                processed,
                f"Loaded {processed} playlist tracks",
            )

    async def _add_saved_albums(
        self, run: _LibraryRun, credential: str, tracker: AggregationProgress
    ) -> None:
        await tracker.start_phase(AggregationPhase.ALBUMS, "Loading saved albums...")
        try:
            albums: list[AlbumDTO] = await self.cache.get_user_saved_albums(
                run.user_id, credential
            )
        except UpstreamError as e:
            logger.error(
                "Failed to list saved albums for user %s, continuing without albums: %s",
                run.user_id,
                e,
            )
            albums = []
        processed = 0
        for batch in _batches(albums, self.settings.album_batch_size):
            results = await asyncio.gather(
                *(
                    self.cache.get_album_tracks(
                        album.id, run.user_id, credential, album_name=album.name
                    )
                    for album in batch
                ),
                return_exceptions=True,
            )
            for album, result in zip(batch, results, strict=True):
                tracks = self._unwrap(result, "album", album.id, album.name)
                if tracks is None:
                    continue
                run.add_tracks(tracks, SongSource.album(album.name, album.id))
                processed += len(tracks)
            await tracker.report(
                AggregationPhase.ALBUMS, processed, f"Loaded {processed} album tracks"
            )

    # gather(return_exceptions=True) lets the whole batch settle before we look at
    # anything. Auth errors and non-Exception BaseExceptions (cancellation) still escape.
    @staticmethod
    def _unwrap(
        result: list[TrackDTO] | BaseException,
        kind: str,
        source_id: str,
        source_name: str,
    ) -> list[TrackDTO] | None:
        if isinstance(result, UpstreamAuthError):
            raise result
        if isinstance(result, Exception):
            logger.error(
                "Failed to load %s %s (%s), skipping: %s", kind, source_name, source_id, result
            )
            return None
        if isinstance(result, BaseException):
            raise result
        return result


def source_breakdown(songs: list[Song]) -> dict[str, int]:
    """Count songs by the source type of their FIRST owner."""
    breakdown = {source_type.value: 0 for source_type in SourceType}
    for song in songs:
        if song.owners:
            breakdown[song.owners[0].source.type.value] += 1
    return breakdown
