"""Infrastructure layer - rate limiting, Spotify integration, observability."""
