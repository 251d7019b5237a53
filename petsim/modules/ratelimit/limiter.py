"""
RateLimiter: fixed-window admission with burst protection and escalation.

For each subject and action two counters are kept: a long rate window
(`ratelimits.rate_window_seconds`, 60 by default) and a short burst window.
A check runs, in order:

1. Burst: skipped when the action has no burst limit. The window restarts
   once `now - start > window_size`; `count >= max` denies.
2. Rate: `effective = min(base * multiplier, absolute_max)`. Actions without
   a base rate are unlimited; `count >= effective` denies.
3. Admit: both counters are incremented.

Every denial appends a violation, violations older than the escalation
window are pruned, and the remaining count selects a punishment tier.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Generic, Hashable, List, Optional, TypeVar

from petsim.core.clock import ClockSource
from petsim.core.logging.logger import get_logger
from petsim.modules.effects.catalog import EffectCatalog

logger = get_logger(__name__)

K = TypeVar("K", bound=Hashable)


class ViolationKind(str, Enum):
    BURST = "burst"
    RATE = "rate"


class PunishmentTier(str, Enum):
    NONE = "none"
    WARN = "warn"
    KICK = "kick"
    BAN = "ban"


@dataclass
class RateWindow:
    count: int = 0
    window_start: int = 0

    def roll(self, now: int, size: float) -> None:
        if now - self.window_start > size:
            self.count = 0
            self.window_start = now


@dataclass(frozen=True)
class ViolationRecord:
    timestamp: int
    action_type: str
    kind: ViolationKind


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    action_type: str
    effective_rate: Optional[float] = None
    violation: Optional[ViolationKind] = None
    punishment: PunishmentTier = PunishmentTier.NONE
    violation_count: int = 0


@dataclass
class _SubjectLimits:
    rate_windows: Dict[str, RateWindow] = field(default_factory=dict)
    burst_windows: Dict[str, RateWindow] = field(default_factory=dict)
    violations: List[ViolationRecord] = field(default_factory=list)


class RateLimiter(Generic[K]):
    def __init__(self, catalog: EffectCatalog, clock: ClockSource) -> None:
        self._catalog = catalog
        self._clock = clock
        self._subjects: Dict[K, _SubjectLimits] = {}

    def effective_rate(self, action_type: str, multiplier: float = 1.0) -> Optional[float]:
        """Allowed actions per rate window, or None when the action is unlimited."""
        base = self._catalog.get_base_rate(action_type)
        if base is None:
            return None
        rate = base * multiplier
        ceiling = self._catalog.get_absolute_max_rate(action_type)
        if ceiling is not None:
            rate = min(rate, ceiling)
        return rate

    def check(self, subject: K, action_type: str, multiplier: float = 1.0) -> RateDecision:
        now = self._clock.now()
        limits = self._subjects.get(subject)
        if limits is None:
            limits = self._subjects[subject] = _SubjectLimits()

        burst = self._catalog.get_burst_config()
        max_burst = burst.max_for(action_type)
        burst_window: Optional[RateWindow] = None
        if max_burst is not None:
            burst_window = limits.burst_windows.get(action_type)
            if burst_window is None:
                burst_window = limits.burst_windows[action_type] = RateWindow(window_start=now)
            burst_window.roll(now, burst.window_size)
            if burst_window.count >= max_burst:
                return self._deny(subject, limits, action_type, ViolationKind.BURST, now, None)

        effective = self.effective_rate(action_type, multiplier)
        rate_window: Optional[RateWindow] = None
        if effective is not None:
            rate_window = limits.rate_windows.get(action_type)
            if rate_window is None:
                rate_window = limits.rate_windows[action_type] = RateWindow(window_start=now)
            rate_window.roll(now, self._catalog.rate_window_seconds)
            if rate_window.count >= effective:
                return self._deny(subject, limits, action_type, ViolationKind.RATE, now, effective)

        if rate_window is not None:
            rate_window.count += 1
        if burst_window is not None:
            burst_window.count += 1

        return RateDecision(allowed=True, action_type=action_type, effective_rate=effective)

    def _deny(
        self,
        subject: K,
        limits: _SubjectLimits,
        action_type: str,
        kind: ViolationKind,
        now: int,
        effective: Optional[float],
    ) -> RateDecision:
        punishment = self._catalog.get_punishment_config()
        limits.violations = [
            v for v in limits.violations if now - v.timestamp <= punishment.escalation_window
        ]
        limits.violations.append(ViolationRecord(timestamp=now, action_type=action_type, kind=kind))
        count = len(limits.violations)

        if count >= punishment.ban_threshold:
            tier = PunishmentTier.BAN
        elif count >= punishment.kick_threshold:
            tier = PunishmentTier.KICK
        elif count >= punishment.warning_threshold:
            tier = PunishmentTier.WARN
        else:
            tier = PunishmentTier.NONE

        logger.warning(
            "Rate limit violation",
            extra={
                "subject_id": subject,
                "action_type": action_type,
                "violation": kind.value,
                "violation_count": count,
                "punishment": tier.value,
            },
        )
        return RateDecision(
            allowed=False,
            action_type=action_type,
            effective_rate=effective,
            violation=kind,
            punishment=tier,
            violation_count=count,
        )

    def clear(self, subject: K) -> bool:
        return self._subjects.pop(subject, None) is not None

    def has_subject(self, subject: K) -> bool:
        return subject in self._subjects

    def violation_count(self, subject: K) -> int:
        limits = self._subjects.get(subject)
        return len(limits.violations) if limits else 0

    def get_status(self, subject: K) -> Dict[str, Any]:
        limits = self._subjects.get(subject)
        if limits is None:
            return {"rate_windows": {}, "burst_windows": {}, "violations": 0}
        return {
            "rate_windows": {
                action: {"count": w.count, "window_start": w.window_start}
                for action, w in limits.rate_windows.items()
            },
            "burst_windows": {
                action: {"count": w.count, "window_start": w.window_start}
                for action, w in limits.burst_windows.items()
            },
            "violations": len(limits.violations),
        }
