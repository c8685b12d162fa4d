"""Application settings loaded from environment variables.

Hey future me - every tunable of the API access layer lives here! Nothing in
the limiter, executor, cache or aggregator hardcodes a number; they all get
one of these groups injected. Override via env vars, nested with "__":

    SONGPOOL_RATE_LIMIT__CAPACITY=20
    SONGPOOL_CACHE__LIKED_SONGS_TTL=120
    SONGPOOL_CACHE__REDIS_URL=redis://localhost:6379/0
    SONGPOOL_AGGREGATION__PLAYLIST_BATCH_SIZE=3
"""

from functools import lru_cache

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class SpotifySettings(BaseModel):
    """Spotify Web API settings."""

    api_base_url: str = "https://api.spotify.com/v1"
    request_timeout: float = Field(default=30.0, gt=0)
    # Spotify caps list endpoints at 50 items per page
    page_size: int = Field(default=50, ge=1, le=50)


class RateLimitSettings(BaseModel):
    """Per-user token bucket settings.

    Defaults are conservative: ~90 requests / minute sustained with a burst of 50.
    """

    capacity: int = Field(default=50, ge=1)
    refill_rate: float = Field(default=1.5, gt=0)
    poll_interval: float = Field(default=0.05, gt=0)


class RetrySettings(BaseModel):
    """Retry policy for outbound Spotify requests."""

    max_retries: int = Field(default=3, ge=0)
    base_delay: float = Field(default=1.0, ge=0)
    default_retry_after: float = Field(default=5.0, ge=0)
    # Spotify can send Retry-After of several minutes under heavy usage
    max_retry_after: float = Field(default=600.0, gt=0)


class CacheSettings(BaseModel):
    """Per-category TTLs (seconds), in-memory size bound and the optional Redis tier."""

    playlists_ttl: int = Field(default=1800, ge=1)
    liked_songs_ttl: int = Field(default=600, ge=1)
    saved_albums_ttl: int = Field(default=3600, ge=1)
    playlist_tracks_ttl: int = Field(default=2700, ge=1)
    album_tracks_ttl: int = Field(default=86400, ge=1)
    max_entries: int = Field(default=1000, ge=1)
    # Optional shared second tier, e.g. redis://localhost:6379/0 (unset = memory only)
    redis_url: str | None = None
    redis_key_prefix: str = "songpool:"
    # Upper bound for the in-memory copy of an entry while Redis is in use
    redis_local_ttl: int = Field(default=300, ge=1)


class AggregationSettings(BaseModel):
    """Library aggregation batching and progress mapping."""

    playlist_batch_size: int = Field(default=5, ge=1)
    album_batch_size: int = Field(default=3, ge=1)
    max_items_per_source: int = Field(default=10000, ge=1)
    progress_window: int = Field(default=500, ge=1)
    liked_progress: tuple[int, int] = (10, 30)
    playlists_progress: tuple[int, int] = (30, 60)
    albums_progress: tuple[int, int] = (60, 95)

    @field_validator("liked_progress", "playlists_progress", "albums_progress")
    @classmethod
    def _validate_range(cls, value: tuple[int, int]) -> tuple[int, int]:
        start, end = value
        if not 0 <= start <= end <= 100:
            raise ValueError(f"progress range must satisfy 0 <= start <= end <= 100, got {value}")
        return value

    # Phases run liked -> playlists -> albums, so their ranges must not go backwards
    @model_validator(mode="after")
    def _validate_phase_order(self) -> "AggregationSettings":
        if not (
            self.liked_progress[1] <= self.playlists_progress[0]
            and self.playlists_progress[1] <= self.albums_progress[0]
        ):
            raise ValueError("progress phase ranges must be ordered liked <= playlists <= albums")
        return self


class ObservabilitySettings(BaseModel):
    """Logging output settings."""

    log_json_format: bool = False


class Settings(BaseSettings):
    """Root settings object."""

    model_config = SettingsConfigDict(
        env_prefix="SONGPOOL_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
    )

    app_name: str = "songpool"
    log_level: str = "INFO"

    spotify: SpotifySettings = Field(default_factory=SpotifySettings)
    rate_limit: RateLimitSettings = Field(default_factory=RateLimitSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    aggregation: AggregationSettings = Field(default_factory=AggregationSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"invalid log level: {value}")
        return level


@lru_cache
def get_settings() -> Settings:
    """Get the process-wide settings instance."""
    return Settings()
