"""Tests for the library aggregator."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from songpool.application.cache.library_cache import SpotifyLibraryCache
from songpool.application.services.library_aggregator import (
    LibraryAggregator,
    source_breakdown,
)
from songpool.config import AggregationSettings
from songpool.domain.dtos import AlbumDTO, PlaylistSummaryDTO, TrackDTO
from songpool.domain.entities import Song, SongSource, SourceType
from songpool.domain.exceptions import UpstreamAuthError, UpstreamError


def _tracks(*ids: str) -> list[TrackDTO]:
    return [TrackDTO(id=track_id, name=f"Song {track_id}", artists=["Artist"]) for track_id in ids]


class FakeSpotify:
    """In-memory stand-in for SpotifyClient."""

    def __init__(
        self,
        liked: list[str] | None = None,
        playlists: dict[str, tuple[str, list[str]]] | None = None,
        albums: dict[str, tuple[str, list[str]]] | None = None,
    ) -> None:
        self.playlists = playlists or {}
        self.albums = albums or {}
        self.get_liked_tracks = AsyncMock(return_value=_tracks(*(liked or [])))
        self.get_user_playlists = AsyncMock(
            return_value=[
                PlaylistSummaryDTO(id=pid, name=name) for pid, (name, _) in self.playlists.items()
            ]
        )
        self.get_saved_albums = AsyncMock(
            return_value=[AlbumDTO(id=aid, name=name) for aid, (name, _) in self.albums.items()]
        )
        self.get_playlist_tracks = AsyncMock(side_effect=self._playlist_tracks)
        self.get_album_tracks = AsyncMock(side_effect=self._album_tracks)

    async def _playlist_tracks(self, playlist_id: str, user_id: str, credential: str):
        return _tracks(*self.playlists[playlist_id][1])

    async def _album_tracks(self, album_id, user_id, credential, album_name=None):
        return [
            TrackDTO(id=track.id, name=track.name, artists=track.artists, album_name=album_name)
            for track in _tracks(*self.albums[album_id][1])
        ]


def _aggregator(spotify: FakeSpotify, **settings) -> LibraryAggregator:
    return LibraryAggregator(
        SpotifyLibraryCache(spotify),  # type: ignore[arg-type]
        AggregationSettings(**settings),
    )


def _owner_sources(song: Song) -> list[tuple[str, str, str | None]]:
    return [(o.source.type.value, o.source.name, o.source.id) for o in song.owners]


@pytest.fixture
def library() -> FakeSpotify:
    """Two liked songs, playlist P [L1, P1], album ALB [P1, A1]."""
    return FakeSpotify(
        liked=["L1", "L2"],
        playlists={"P": ("Party", ["L1", "P1"])},
        albums={"ALB": ("Album", ["P1", "A1"])},
    )


class TestFullLibrary:
    """Test full-library aggregation."""

    async def test_owner_sets_end_to_end(self, library: FakeSpotify):
        """Test each song carries exactly the sources it appeared in."""
        songs = await _aggregator(library).fetch_library("u1", "Ana", "token")

        by_id = {song.id: song for song in songs}
        assert [song.id for song in songs] == ["L1", "L2", "P1", "A1"]
        assert _owner_sources(by_id["L1"]) == [
            ("liked", "Liked Songs", None),
            ("playlist", "Party", "P"),
        ]
        assert _owner_sources(by_id["L2"]) == [("liked", "Liked Songs", None)]
        assert _owner_sources(by_id["P1"]) == [
            ("playlist", "Party", "P"),
            ("album", "Album", "ALB"),
        ]
        assert _owner_sources(by_id["A1"]) == [("album", "Album", "ALB")]
        assert {o.player_name for song in songs for o in song.owners} == {"Ana"}

    async def test_duplicate_track_across_sources_is_one_song(self):
        """Test two playlists with the same track yield one Song."""
        spotify = FakeSpotify(
            playlists={"p1": ("One", ["X"]), "p2": ("Two", ["X"])},
        )

        songs = await _aggregator(spotify).fetch_library("u1", "Ana", "token")

        assert len(songs) == 1
        assert len(songs[0].owners) == 2

    async def test_track_repeated_in_one_source_has_one_owner(self):
        """Test a playlist listing a track twice adds one owner."""
        spotify = FakeSpotify(playlists={"p1": ("One", ["X", "X"])})

        songs = await _aggregator(spotify).fetch_library("u1", "Ana", "token")

        assert len(songs) == 1
        assert songs[0].owners[0].source == SongSource.playlist("One", "p1")
        assert len(songs[0].owners) == 1

    async def test_first_source_wins_metadata(self, library: FakeSpotify):
        """Test album name comes from the album for album-only songs."""
        songs = await _aggregator(library).fetch_library("u1", "Ana", "token")

        by_id = {song.id: song for song in songs}
        assert by_id["A1"].album == "Album"
        assert by_id["P1"].album is None

    async def test_playlists_processed_in_bounded_batches(self):
        """Test no more than playlist_batch_size playlist fetches run at once."""
        spotify = FakeSpotify(playlists={f"p{i}": (f"P{i}", [f"t{i}"]) for i in range(7)})
        in_flight = 0
        peak = 0

        async def slow_tracks(playlist_id, user_id, credential):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return _tracks(*spotify.playlists[playlist_id][1])

        spotify.get_playlist_tracks.side_effect = slow_tracks

        songs = await _aggregator(spotify, playlist_batch_size=5).fetch_library(
            "u1", "Ana", "token"
        )

        assert peak == 5
        assert [song.id for song in songs] == [f"t{i}" for i in range(7)]

    async def test_albums_processed_in_bounded_batches(self):
        """Test no more than album_batch_size album fetches run at once."""
        spotify = FakeSpotify(albums={f"a{i}": (f"A{i}", [f"t{i}"]) for i in range(7)})
        in_flight = 0
        peak = 0

        async def slow_tracks(album_id, user_id, credential, album_name=None):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return _tracks(*spotify.albums[album_id][1])

        spotify.get_album_tracks.side_effect = slow_tracks

        songs = await _aggregator(spotify, album_batch_size=3).fetch_library(
            "u1", "Ana", "token"
        )

        assert peak == 3
        assert [song.id for song in songs] == [f"t{i}" for i in range(7)]


class TestSelectiveMode:
    """Test selected-playlist aggregation."""

    async def test_only_selected_playlists_but_all_liked_and_albums(self):
        """Test playlists are filtered while liked songs and albums stay."""
        spotify = FakeSpotify(
            liked=["L1"],
            playlists={"p1": ("One", ["X1"]), "p2": ("Two", ["X2"])},
            albums={"a1": ("Album", ["A1"])},
        )

        songs = await _aggregator(spotify).fetch_library(
            "u1", "Ana", "token", selected_playlist_ids=["p2"]
        )

        assert [song.id for song in songs] == ["L1", "X2", "A1"]
        spotify.get_playlist_tracks.assert_awaited_once_with("p2", "u1", "token")

    async def test_unknown_selected_playlist_skipped(self, caplog):
        """Test ids missing from the listing are warned about and skipped."""
        spotify = FakeSpotify(playlists={"p1": ("One", ["X1"])})

        songs = await _aggregator(spotify).fetch_library(
            "u1", "Ana", "token", selected_playlist_ids=["gone", "p1"]
        )

        assert [song.id for song in songs] == ["X1"]
        assert "gone" in caplog.text

    async def test_empty_selection_skips_playlist_listing(self):
        """Test an empty selection loads no playlists at all."""
        spotify = FakeSpotify(liked=["L1"], playlists={"p1": ("One", ["X1"])})

        songs = await _aggregator(spotify).fetch_library(
            "u1", "Ana", "token", selected_playlist_ids=[]
        )

        assert [song.id for song in songs] == ["L1"]
        spotify.get_user_playlists.assert_not_awaited()


class TestFailureHandling:
    """Test partial results and fatal errors."""

    async def test_failed_playlist_skipped(self):
        """Test one playlist's failure doesn't abort the run."""
        spotify = FakeSpotify(playlists={"bad": ("Bad", ["B"]), "good": ("Good", ["G"])})
        original = spotify._playlist_tracks

        async def flaky(playlist_id, user_id, credential):
            if playlist_id == "bad":
                raise UpstreamError("Spotify API error 500 after 4 attempts", status_code=500)
            return await original(playlist_id, user_id, credential)

        spotify.get_playlist_tracks.side_effect = flaky

        songs = await _aggregator(spotify).fetch_library("u1", "Ana", "token")

        assert [song.id for song in songs] == ["G"]

    async def test_failed_album_skipped(self):
        """Test one album's failure doesn't abort the run."""
        spotify = FakeSpotify(albums={"a1": ("A", ["X"]), "a2": ("B", ["Y"])})
        spotify.get_album_tracks.side_effect = [UpstreamError("boom"), _tracks("Y")]

        songs = await _aggregator(spotify).fetch_library("u1", "Ana", "token")

        assert [song.id for song in songs] == ["Y"]

    async def test_auth_error_in_playlist_propagates(self):
        """Test an auth failure anywhere fails the run."""
        spotify = FakeSpotify(playlists={"p1": ("One", ["X"])})
        spotify.get_playlist_tracks.side_effect = UpstreamAuthError()

        with pytest.raises(UpstreamAuthError):
            await _aggregator(spotify).fetch_library("u1", "Ana", "token")

    async def test_liked_songs_failure_propagates(self):
        """Test a core listing failure fails the run."""
        spotify = FakeSpotify()
        spotify.get_liked_tracks.side_effect = UpstreamError("down")

        with pytest.raises(UpstreamError):
            await _aggregator(spotify).fetch_library("u1", "Ana", "token")

    async def test_playlist_listing_failure_propagates(self):
        """Test a failed playlist listing fails the run."""
        spotify = FakeSpotify(liked=["L1"], playlists={"p1": ("One", ["X"])})
        spotify.get_user_playlists.side_effect = UpstreamError(
            "Spotify API error 503 after 4 attempts", status_code=503
        )

        with pytest.raises(UpstreamError) as exc_info:
            await _aggregator(spotify).fetch_library("u1", "Ana", "token")

        assert exc_info.value.status_code == 503
        spotify.get_playlist_tracks.assert_not_awaited()

    async def test_saved_album_listing_failure_keeps_partial_result(self, caplog):
        """Test a failed album listing leaves liked songs and playlists in place."""
        spotify = FakeSpotify(
            liked=["L1"],
            playlists={"p1": ("One", ["X1"])},
            albums={"a1": ("Album", ["A1"])},
        )
        spotify.get_saved_albums.side_effect = UpstreamError("down")

        songs = await _aggregator(spotify).fetch_library("u1", "Ana", "token")

        assert [song.id for song in songs] == ["L1", "X1"]
        spotify.get_album_tracks.assert_not_awaited()
        assert "saved albums" in caplog.text

    async def test_saved_album_listing_auth_error_propagates(self):
        """Test an auth failure while listing albums still fails the run."""
        spotify = FakeSpotify(albums={"a1": ("Album", ["A1"])})
        spotify.get_saved_albums.side_effect = UpstreamAuthError()

        with pytest.raises(UpstreamAuthError):
            await _aggregator(spotify).fetch_library("u1", "Ana", "token")


class TestProgress:
    """Test progress reported during aggregation."""

    async def test_progress_non_decreasing_and_ends_at_100(self, library: FakeSpotify):
        """Test the reported sequence only moves forward and finishes at 100."""
        values: list[int] = []

        async def on_progress(percent: int, message: str) -> None:
            values.append(percent)

        await _aggregator(library).fetch_library("u1", "Ana", "token", progress=on_progress)

        assert values
        assert values == sorted(values)
        assert values[-1] == 100
        assert all(isinstance(v, int) and 0 <= v <= 100 for v in values)

    async def test_progress_with_large_library(self):
        """Test window wrap-around on big phases never reports backwards."""
        spotify = FakeSpotify(
            liked=[f"L{i}" for i in range(1200)],
            playlists={f"p{i}": (f"P{i}", [f"T{i}-{j}" for j in range(300)]) for i in range(6)},
        )
        values: list[int] = []

        async def on_progress(percent: int, message: str) -> None:
            values.append(percent)

        await _aggregator(spotify).fetch_library("u1", "Ana", "token", progress=on_progress)

        assert values == sorted(values)
        assert values[-1] == 100


class TestSourceBreakdown:
    """Test per-source counts."""

    async def test_breakdown_by_first_owner(self, library: FakeSpotify):
        """Test counts use each song's first source."""
        songs = await _aggregator(library).fetch_library("u1", "Ana", "token")

        assert source_breakdown(songs) == {
            SourceType.PLAYLIST.value: 1,
            SourceType.LIKED.value: 2,
            SourceType.ALBUM.value: 1,
        }

    def test_breakdown_empty(self):
        """Test empty input gives zero counts."""
        assert source_breakdown([]) == {"playlist": 0, "liked": 0, "album": 0}


def test_aggregator_accepts_mock_cache():
    """Test the aggregator only needs the cache's fetch methods."""
    cache = MagicMock(spec=SpotifyLibraryCache)
    aggregator = LibraryAggregator(cache)
    assert aggregator.settings.playlist_batch_size == 5
