"""songpool - shared song pool aggregation for multiplayer music guessing games."""

__version__ = "0.1.0"
