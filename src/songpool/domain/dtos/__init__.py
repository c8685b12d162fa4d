"""
Data Transfer Objects for Spotify Web API payloads.

Hey future me – these DTOs are the boundary between loosely-typed Spotify JSON and the
rest of songpool. Every payload gets converted RIGHT when it comes off the wire (in
SpotifyClient), so the cache, aggregator and merger only ever see typed objects.

Flow: Spotify JSON → from_spotify() → DTO → (cache) → LibraryAggregator → Song entities
"""

from dataclasses import dataclass, field
from typing import Any

from songpool.domain.exceptions import ValidationError


def _artist_names(payload: dict[str, Any]) -> list[str]:
    return [
        artist["name"]
        for artist in payload.get("artists") or []
        if isinstance(artist, dict) and artist.get("name")
    ]


# Hey future me – Spotify's paging object has more fields (limit, offset, previous, href)
# but we only need items + next for walking, and total for the count endpoints.
# `next` is a fully-formed URL, we call it as-is.
@dataclass
class PageDTO:
    """One page of a paginated Spotify list response."""

    items: list[dict[str, Any]] = field(default_factory=list)
    next: str | None = None
    total: int | None = None

    @classmethod
    def from_spotify(cls, payload: Any) -> "PageDTO":
        """Convert a raw paging object.

        Raises:
            ValidationError: If the payload is not a JSON object
        """
        if not isinstance(payload, dict):
            raise ValidationError(f"Expected paging object, got {type(payload).__name__}")
        items = payload.get("items") or []
        if not isinstance(items, list):
            raise ValidationError("Paging object 'items' must be a list")
        next_url = payload.get("next") or None
        total = payload.get("total")
        return cls(
            items=items,
            next=next_url,
            total=total if isinstance(total, int) else None,
        )


@dataclass
class TrackDTO:
    """A playable track."""

    id: str
    name: str
    artists: list[str] = field(default_factory=list)
    album_name: str | None = None
    album_id: str | None = None
    duration_ms: int = 0

    def __post_init__(self) -> None:
        """Validate essential fields."""
        if not self.id:
            raise ValidationError("Track id cannot be empty")
        if self.duration_ms < 0:
            raise ValidationError("Duration cannot be negative")

    # Yo, album tracks (/albums/{id}/tracks) come back as SIMPLIFIED tracks without an
    # album object! Pass album_name/album_id as fallback so songs from saved albums still
    # know which album they belong to.
    @classmethod
    def from_spotify(
        cls,
        payload: dict[str, Any],
        album_name: str | None = None,
        album_id: str | None = None,
    ) -> "TrackDTO":
        """Convert a full or simplified Spotify track object.

        Raises:
            ValidationError: If the track has no id (local files, unavailable tracks)
        """
        if not isinstance(payload, dict) or not payload.get("id"):
            raise ValidationError("Track payload is missing 'id'")
        album = payload.get("album") if isinstance(payload.get("album"), dict) else None
        return cls(
            id=payload["id"],
            name=payload.get("name") or "",
            artists=_artist_names(payload),
            album_name=(album or {}).get("name") or album_name,
            album_id=(album or {}).get("id") or album_id,
            duration_ms=payload.get("duration_ms") or 0,
        )


@dataclass
class PlaylistSummaryDTO:
    """Playlist as listed by /me/playlists (no tracks)."""

    id: str
    name: str
    owner_id: str | None = None
    total_tracks: int | None = None

    def __post_init__(self) -> None:
        """Validate essential fields."""
        if not self.id:
            raise ValidationError("Playlist id cannot be empty")

    @classmethod
    def from_spotify(cls, payload: dict[str, Any]) -> "PlaylistSummaryDTO":
        if not isinstance(payload, dict) or not payload.get("id"):
            raise ValidationError("Playlist payload is missing 'id'")
        owner = payload.get("owner") or {}
        tracks = payload.get("tracks") or {}
        return cls(
            id=payload["id"],
            name=payload.get("name") or "",
            owner_id=owner.get("id"),
            total_tracks=tracks.get("total"),
        )


@dataclass
class AlbumDTO:
    """Album as listed by /me/albums (tracks fetched separately)."""

    id: str
    name: str
    artists: list[str] = field(default_factory=list)
    total_tracks: int | None = None

    def __post_init__(self) -> None:
        """Validate essential fields."""
        if not self.id:
            raise ValidationError("Album id cannot be empty")

    @classmethod
    def from_spotify(cls, payload: dict[str, Any]) -> "AlbumDTO":
        if not isinstance(payload, dict) or not payload.get("id"):
            raise ValidationError("Album payload is missing 'id'")
        return cls(
            id=payload["id"],
            name=payload.get("name") or "",
            artists=_artist_names(payload),
            total_tracks=payload.get("total_tracks"),
        )


@dataclass
class UserProfileDTO:
    """Current user's profile (/me)."""

    id: str
    display_name: str | None = None

    @classmethod
    def from_spotify(cls, payload: dict[str, Any]) -> "UserProfileDTO":
        if not isinstance(payload, dict) or not payload.get("id"):
            raise ValidationError("User profile payload is missing 'id'")
        return cls(id=payload["id"], display_name=payload.get("display_name"))


__all__ = [
    "AlbumDTO",
    "PageDTO",
    "PlaylistSummaryDTO",
    "TrackDTO",
    "UserProfileDTO",
]
