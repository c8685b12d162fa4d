"""Spotify Web API integration - request execution, pagination and typed endpoints."""

from songpool.infrastructure.integrations.pagination import PaginationWalker
from songpool.infrastructure.integrations.request_executor import (
    AttemptOutcome,
    RequestExecutor,
    RetryPolicy,
    classify_status,
)
from songpool.infrastructure.integrations.spotify_client import SpotifyClient

__all__ = [
    "AttemptOutcome",
    "PaginationWalker",
    "RequestExecutor",
    "RetryPolicy",
    "SpotifyClient",
    "classify_status",
]
