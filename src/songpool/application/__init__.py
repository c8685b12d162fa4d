"""Application layer - caching, library aggregation and pool merging."""
