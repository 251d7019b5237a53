"""
In-memory effect state for one subject.

- EffectInstance: one applied effect (remaining time, uses, rebase point)
- EffectSet: one instance per effect id
- AggregateTable: `stat -> baseline + sum of active deltas`
- EffectSnapshot: read-only projection pushed to observers
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional

from petsim.modules.effects.catalog import PERMANENT, UNLIMITED, EffectConfig


class GlobalSubject(Enum):
    """Key of the single server-wide subject."""

    GLOBAL = "global"


GLOBAL_SUBJECT = GlobalSubject.GLOBAL


@dataclass
class EffectInstance:
    effect_id: str
    config: EffectConfig
    remaining: int
    applied_at: int
    uses_remaining: int = UNLIMITED
    reason: Optional[str] = None

    @property
    def is_permanent(self) -> bool:
        return self.remaining == PERMANENT

    def live_remaining(self, now: int) -> int:
        """Remaining seconds at `now` without rebasing."""
        if self.is_permanent:
            return PERMANENT
        elapsed = max(0, math.floor(now - self.applied_at))
        return max(0, self.remaining - elapsed)

    def is_active(self, now: int) -> bool:
        return self.is_permanent or self.live_remaining(now) > 0

    def to_persisted(self, now: int) -> Dict[str, int]:
        return {
            "timeRemaining": self.live_remaining(now),
            "usesRemaining": self.uses_remaining,
            "appliedAt": self.applied_at,
        }


class EffectSet:
    """Active effect instances of one subject, keyed by effect id."""

    def __init__(self) -> None:
        self._instances: Dict[str, EffectInstance] = {}

    def get(self, effect_id: str) -> Optional[EffectInstance]:
        return self._instances.get(effect_id)

    def add(self, instance: EffectInstance) -> None:
        self._instances[instance.effect_id] = instance

    def pop(self, effect_id: str) -> Optional[EffectInstance]:
        return self._instances.pop(effect_id, None)

    def clear(self) -> int:
        count = len(self._instances)
        self._instances.clear()
        return count

    def ids(self) -> List[str]:
        return list(self._instances.keys())

    def __contains__(self, effect_id: object) -> bool:
        return effect_id in self._instances

    def __iter__(self) -> Iterator[EffectInstance]:
        return iter(list(self._instances.values()))

    def __len__(self) -> int:
        return len(self._instances)


class AggregateTable:
    """
    Per-subject stat totals.

    Every mutation recomputes the touched stats from the baseline with
    `math.fsum`, so apply followed by remove restores the exact prior value.
    """

    def __init__(self, seed: Mapping[str, float], baseline_of: Callable[[str], float]) -> None:
        self._seed: Dict[str, float] = dict(seed)
        self._baseline_of = baseline_of
        self._totals: Dict[str, float] = dict(seed)

    def get(self, stat: str) -> float:
        if stat in self._totals:
            return self._totals[stat]
        return self._baseline_of(stat)

    def recompute(self, stats: Iterable[str], instances: Iterable[EffectInstance]) -> None:
        active = list(instances)
        for stat in stats:
            deltas = [
                inst.config.stat_modifiers[stat]
                for inst in active
                if stat in inst.config.stat_modifiers
            ]
            if not deltas and stat not in self._seed:
                self._totals.pop(stat, None)
                continue
            self._totals[stat] = math.fsum([self._baseline_of(stat), *deltas])

    def rebuild(self, instances: Iterable[EffectInstance]) -> None:
        """Full recompute from the seed."""
        active = list(instances)
        self._totals = dict(self._seed)
        touched = {stat for inst in active for stat in inst.config.stat_modifiers}
        self.recompute(touched, active)

    def as_dict(self) -> Dict[str, float]:
        return dict(self._totals)


@dataclass
class EffectSnapshot:
    multiplier: float
    time_remaining: int
    description: str
    display_name: str
    icon: str
    uses_remaining: int = UNLIMITED
    reason: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "multiplier": self.multiplier,
            "timeRemaining": self.time_remaining,
            "description": self.description,
            "displayName": self.display_name,
            "icon": self.icon,
            "usesRemaining": self.uses_remaining,
        }
        if self.reason is not None:
            payload["reason"] = self.reason
        return payload


@dataclass
class SubjectState:
    effects: EffectSet
    aggregates: AggregateTable
    created_at: int = 0
