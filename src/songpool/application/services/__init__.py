"""Application services - library aggregation, pool merging and song loading."""

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
from songpool.application.services.progress import AggregationPhase, AggregationProgress
from songpool.application.services.song_loading_service import (
    LoadSongsResult,
    MixResult,
    PlayerRequest,
    SongLoadingService,
)

__all__ = [
    "AggregationPhase",
    "AggregationProgress",
    "LibraryAggregator",
    "LoadSongsResult",
    "MixResult",
    "PlayerRequest",
    "PoolStats",
    "SongLoadingService",
    "merge_song_pools",
    "pool_stats",
    "shuffle_songs",
    "source_breakdown",
]
