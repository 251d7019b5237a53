"""Player session registry."""

from .service import PlayerSessionService

__all__ = ["PlayerSessionService"]
