"""Domain ports (interfaces) for the host application's collaborators.

Hey future me - songpool does NOT own persistence or the realtime transport!
The host (web app) implements these ports and hands them to SongLoadingService:

- ISongPoolRepository → stores per-player song lists + loading progress
- IBroadcaster        → fire-and-forget publish to everyone in a game room

This follows the Hexagonal Architecture pattern for dependency inversion.
"""

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from typing import Any

from songpool.domain.entities import Song

# Progress callback injected into the aggregator: (percent 0-100, human message)
ProgressCallback = Callable[[int, str], Awaitable[None]]


class ISongPoolRepository(ABC):
    """Persistence collaborator for per-player song lists."""

    @abstractmethod
    async def update_loading_progress(
        self, game_id: str, user_id: str, progress: int
    ) -> None:
        """Persist a player's loading progress.

        Args:
            game_id: Game identifier
            user_id: Player's user id
            progress: Whole-number percentage, non-decreasing within one run
        """
        pass

    @abstractmethod
    async def save_player_songs(
        self,
        game_id: str,
        user_id: str,
        songs: list[Song],
        selected_playlist_ids: list[str] | None = None,
    ) -> int:
        """Store a player's finished song list and mark them as loaded.

        Returns:
            Total number of songs stored for the game across all players
        """
        pass


class IBroadcaster(ABC):
    """Realtime fan-out collaborator (e.g. a socket room)."""

    # Hey future me, this is fire-and-forget from our side! We don't care whether anyone
    # is listening or whether delivery worked - a failed broadcast gets logged by the
    # caller and the aggregation carries on.
    @abstractmethod
    async def broadcast(self, room_id: str, event: str, payload: dict[str, Any]) -> None:
        """Publish an event to every participant in a room."""
        pass


__all__ = [
    "IBroadcaster",
    "ISongPoolRepository",
    "ProgressCallback",
]
