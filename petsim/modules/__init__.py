"""Domain modules: effects, rate limiting, sessions and profile persistence."""
