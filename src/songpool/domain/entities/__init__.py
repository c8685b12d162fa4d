"""Domain entities."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class SourceType(str, Enum):
    """Kind of library collection a song was found in."""

    PLAYLIST = "playlist"
    LIKED = "liked"
    ALBUM = "album"


LIKED_SONGS_NAME = "Liked Songs"


# Hey future me, SongSource is a VALUE OBJECT - frozen, so two sources with the same
# type/name/id compare equal and hash the same. The aggregator relies on that to avoid
# attaching the same playlist twice to one song. id is None for liked songs (there's
# only one "Liked Songs" collection per user, it has no Spotify id).
@dataclass(frozen=True)
class SongSource:
    """Where a song came from within one user's library."""

    type: SourceType
    name: str
    id: str | None = None

    @classmethod
    def liked(cls) -> "SongSource":
        """The user's Liked Songs collection."""
        return cls(type=SourceType.LIKED, name=LIKED_SONGS_NAME)

    @classmethod
    def playlist(cls, name: str, playlist_id: str) -> "SongSource":
        return cls(type=SourceType.PLAYLIST, name=name, id=playlist_id)

    @classmethod
    def album(cls, name: str, album_id: str) -> "SongSource":
        return cls(type=SourceType.ALBUM, name=name, id=album_id)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type.value, "name": self.name}
        if self.id is not None:
            data["id"] = self.id
        return data


@dataclass(frozen=True)
class Owner:
    """Attribution record: which player owns a song, and through which source."""

    player_id: str
    player_name: str
    source: SongSource

    def to_dict(self) -> dict[str, Any]:
        return {
            "playerId": self.player_id,
            "playerName": self.player_name,
            "source": self.source.to_dict(),
        }


# Yo, Song is the aggregation unit! One Song per distinct track id - all the places the
# track showed up are folded into owners instead of producing duplicate Songs. The
# first source that introduced the track wins name/artists/album; later sources only
# add owners. owners is the ONLY field that ever changes after construction, and only
# while the aggregation / merge that owns the Song is still running.
@dataclass
class Song:
    """A track in a player's library or the shared game pool."""

    id: str
    name: str
    artists: list[str] = field(default_factory=list)
    album: str | None = None
    owners: list[Owner] = field(default_factory=list)

    @property
    def artist_names(self) -> str:
        """Comma-separated artist names for display."""
        return ", ".join(self.artists)

    @property
    def has_multiple_owners(self) -> bool:
        return len({owner.player_id for owner in self.owners}) > 1

    def has_source(self, player_id: str, source: SongSource) -> bool:
        """Check if this song is already attributed to the given player's source."""
        return any(
            owner.player_id == player_id and owner.source == source
            for owner in self.owners
        )

    def copy(self) -> "Song":
        """Shallow copy with independent artists/owners lists."""
        return Song(
            id=self.id,
            name=self.name,
            artists=list(self.artists),
            album=self.album,
            owners=list(self.owners),
        )

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly representation for persistence and broadcast."""
        return {
            "id": self.id,
            "name": self.name,
            "artists": list(self.artists),
            "album": self.album,
            "owners": [owner.to_dict() for owner in self.owners],
        }


__all__ = [
    "LIKED_SONGS_NAME",
    "Owner",
    "Song",
    "SongSource",
    "SourceType",
]
