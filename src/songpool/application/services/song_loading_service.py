"""Song loading service - what the host web app calls to load and mix songs.

Hey future me - this is the glue between the aggregation core and the host's
collaborators (see domain/ports):

    load_player_songs(): one player's library → progress to DB + room → store songs
    mix_songs():         every player's library → merge → shuffle → pool + stats

Broadcast events (room-scoped, fire-and-forget):
    game-updated          action=player-loading-progress, progress=<0..100>
    player-songs-ready    songCount, totalSongs, breakdown
    player-loading-error  error, requiresReauth

On failure the persisted progress stays wherever it got to (no reset to 0). The error
event tells the room to offer a retry.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from songpool.application.services.library_aggregator import (
    LibraryAggregator,
    source_breakdown,
)
from songpool.application.services.pool_merger import (
    PoolStats,
    merge_song_pools,
    pool_stats,
    shuffle_songs,
)
from songpool.domain.entities import Song
from songpool.domain.exceptions import UpstreamAuthError
from songpool.domain.ports import IBroadcaster, ISongPoolRepository
from songpool.infrastructure.observability import correlation_scope

logger = logging.getLogger(__name__)

GAME_UPDATED_EVENT = "game-updated"
PLAYER_LOADING_PROGRESS_ACTION = "player-loading-progress"
PLAYER_SONGS_READY_EVENT = "player-songs-ready"
PLAYER_LOADING_ERROR_EVENT = "player-loading-error"


@dataclass
class LoadSongsResult:
    """Outcome of loading one player's songs."""

    user_id: str
    song_count: int
    total_songs: int
    breakdown: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "songCount": self.song_count,
            "totalSongs": self.total_songs,
            "breakdown": dict(self.breakdown),
        }


@dataclass
class PlayerRequest:
    """One player taking part in a mix."""

    user_id: str
    display_name: str
    credential: str
    selected_playlist_ids: list[str] | None = None


@dataclass
class MixResult:
    """Shuffled shared pool plus its statistics."""

    songs: list[Song]
    stats: PoolStats


class SongLoadingService:
    """Loads player libraries and builds the shared song pool."""

    def __init__(
        self,
        aggregator: LibraryAggregator,
        repository: ISongPoolRepository | None = None,
        broadcaster: IBroadcaster | None = None,
    ) -> None:
        self.aggregator = aggregator
        self.repository = repository
        self.broadcaster = broadcaster

    async def load_player_songs(
        self,
        game_id: str,
        room_id: str,
        user_id: str,
        display_name: str,
        credential: str,
        selected_playlist_ids: list[str] | None = None,
    ) -> LoadSongsResult:
        """Aggregate one player's library and store it for the game.

        Raises:
            UpstreamAuthError: Spotify rejected the player's token
            UpstreamError: A core listing could not be fetched
            RuntimeError: No repository configured
        """
        if self.repository is None:
            raise RuntimeError("SongLoadingService needs a repository to store songs")

        with correlation_scope() as correlation_id:
            logger.info(
                "Loading songs for user %s in game %s (correlation %s)",
                user_id,
                game_id,
                correlation_id,
            )
            return await self._load_player_songs(
                self.repository,
                game_id,
                room_id,
                user_id,
                display_name,
                credential,
                selected_playlist_ids,
            )

    async def _load_player_songs(
        self,
        repository: ISongPoolRepository,
        game_id: str,
        room_id: str,
        user_id: str,
        display_name: str,
        credential: str,
        selected_playlist_ids: list[str] | None,
    ) -> LoadSongsResult:

        async def on_progress(progress: int, message: str) -> None:
            try:
                await repository.update_loading_progress(game_id, user_id, progress)
            except Exception as e:
                logger.warning("Failed to persist progress for user %s: %s", user_id, e)
            await self._broadcast(
                room_id,
                GAME_UPDATED_EVENT,
                {
                    "action": PLAYER_LOADING_PROGRESS_ACTION,
                    "userId": user_id,
                    "progress": progress,
                    "message": message,
                },
            )

        try:
            songs = await self.aggregator.fetch_library(
                user_id,
                display_name,
                credential,
                selected_playlist_ids=selected_playlist_ids,
                progress=on_progress,
            )
            total_songs = await repository.save_player_songs(
                game_id, user_id, songs, selected_playlist_ids
            )
        except Exception as e:
            logger.error("Loading songs failed for user %s: %s", user_id, e)
            await self._broadcast(
                room_id,
                PLAYER_LOADING_ERROR_EVENT,
                {
                    "userId": user_id,
                    "error": str(e),
                    "requiresReauth": isinstance(e, UpstreamAuthError),
                },
            )
            raise

        result = LoadSongsResult(
            user_id=user_id,
            song_count=len(songs),
            total_songs=total_songs,
            breakdown=source_breakdown(songs),
        )
        await self._broadcast(room_id, PLAYER_SONGS_READY_EVENT, result.to_dict())
        logger.info(
            "Loaded %d songs for user %s (%d in game)", len(songs), user_id, total_songs
        )
        return result

    async def mix_songs(self, players: list[PlayerRequest]) -> MixResult:
        """Aggregate every player concurrently, merge and shuffle the pool.

        Any player's failure fails the whole mix.
        """
        with correlation_scope():
            logger.info("Mixing songs for %d players", len(players))

            player_songs = await asyncio.gather(
                *(
                    self.aggregator.fetch_library(
                        player.user_id,
                        player.display_name,
                        player.credential,
                        selected_playlist_ids=player.selected_playlist_ids,
                    )
                    for player in players
                )
            )

            pool = shuffle_songs(merge_song_pools(list(player_songs)))
            stats = pool_stats(pool)
            logger.info(
                "Mixed pool: %d songs, %d shared between players",
                stats.total_songs,
                stats.songs_with_multiple_owners,
            )
            return MixResult(songs=pool, stats=stats)

    async def _broadcast(self, room_id: str, event: str, payload: dict[str, Any]) -> None:
        if self.broadcaster is None:
            return
        try:
            await self.broadcaster.broadcast(room_id, event, payload)
        except Exception as e:
            logger.warning("Broadcast of %s to room %s failed: %s", event, room_id, e)
