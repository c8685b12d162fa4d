"""Domain layer - entities, DTOs, exceptions and ports."""
