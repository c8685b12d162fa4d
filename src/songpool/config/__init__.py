"""Configuration module for songpool."""

from .settings import (
    AggregationSettings,
    CacheSettings,
    ObservabilitySettings,
    RateLimitSettings,
    RetrySettings,
    Settings,
    SpotifySettings,
    get_settings,
)

__all__ = [
    "AggregationSettings",
    "CacheSettings",
    "ObservabilitySettings",
    "RateLimitSettings",
    "RetrySettings",
    "Settings",
    "SpotifySettings",
    "get_settings",
]
