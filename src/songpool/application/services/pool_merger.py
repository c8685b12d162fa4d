"""Pool merger - combines every player's songs into one shared game pool."""

import random
from dataclasses import dataclass

from songpool.domain.entities import Song


def merge_song_pools(player_songs: list[list[Song]]) -> list[Song]:
    """Merge per-player song lists into one pool, one Song per track id.

    The first occurrence of a track keeps its metadata; owners of later occurrences are
    appended in order. Input songs are never mutated - the pool holds copies.

    Returns:
        Songs in first-seen order
    """
    pool: dict[str, Song] = {}
    for songs in player_songs:
        for song in songs:
            existing = pool.get(song.id)
            if existing is None:
                pool[song.id] = song.copy()
            else:
                existing.owners.extend(song.owners)
    return list(pool.values())


# Hey future me - Fisher-Yates on a COPY, the caller's list stays in merge order.
def shuffle_songs(songs: list[Song], rng: random.Random | None = None) -> list[Song]:
    """Return a uniformly shuffled copy of `songs`."""
    rng = rng or random.Random()
    shuffled = list(songs)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randint(0, i)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


@dataclass(frozen=True)
class PoolStats:
    """Summary numbers for a merged pool."""

    total_songs: int
    songs_with_multiple_owners: int
    players: int

    def to_dict(self) -> dict[str, int]:
        return {
            "totalSongs": self.total_songs,
            "songsWithMultipleOwners": self.songs_with_multiple_owners,
            "players": self.players,
        }


def pool_stats(pool: list[Song]) -> PoolStats:
    players = {owner.player_id for song in pool for owner in song.owners}
    return PoolStats(
        total_songs=len(pool),
        songs_with_multiple_owners=sum(1 for song in pool if song.has_multiple_owners),
        players=len(players),
    )
