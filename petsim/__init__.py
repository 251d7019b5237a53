"""Effect engine and effect-aware rate limiting for a pet-collecting game server."""

__version__ = "1.0.0"
