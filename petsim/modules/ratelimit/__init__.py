"""Effect-aware rate limiting."""

from .limiter import (
    PunishmentTier,
    RateDecision,
    RateLimiter,
    RateWindow,
    ViolationKind,
    ViolationRecord,
)
from .service import BAN_REASON, KICK_REASON, RateLimitService

__all__ = [
    "BAN_REASON",
    "KICK_REASON",
    "PunishmentTier",
    "RateDecision",
    "RateLimitService",
    "RateLimiter",
    "RateWindow",
    "ViolationKind",
    "ViolationRecord",
]
