"""Rate multiplier stacking with diminishing returns.

Several active effects can cover the same action. Their multipliers are
combined in one of three modes:

- multiply: product of multipliers, largest first; every later multiplier
  keeps only `(m - 1) * factor^(rank - 1)` of its excess over 1.0
- add: the same scaled excesses are summed into one bonus,
  `base * (1 + bonus)`
- best: only the largest multiplier counts

The absolute-max clamp is the caller's job.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable


class StackingMode(str, Enum):
    MULTIPLY = "multiply"
    ADD = "add"
    BEST = "best"


@dataclass(frozen=True)
class StackingConfig:
    max_stacked_effects: int = 3
    stacking_mode: StackingMode = StackingMode.MULTIPLY
    diminishing_returns: bool = True
    diminishing_factor: float = 0.8


def _scaled_excess(multiplier: float, rank: int, config: StackingConfig) -> float:
    excess = multiplier - 1.0
    if rank == 0 or not config.diminishing_returns:
        return excess
    return excess * (config.diminishing_factor ** rank)


def stacked_rate(base: float, multipliers: Iterable[float], config: StackingConfig) -> float:
    """Combine `multipliers` onto `base` according to `config.stacking_mode`."""
    ordered = sorted(multipliers, reverse=True)
    if not ordered:
        return base

    if config.stacking_mode is StackingMode.BEST:
        return base * ordered[0]

    if config.stacking_mode is StackingMode.ADD:
        bonus = sum(_scaled_excess(m, rank, config) for rank, m in enumerate(ordered))
        return base * (1.0 + bonus)

    rate = base
    for rank, m in enumerate(ordered):
        rate *= 1.0 + _scaled_excess(m, rank, config)
    return rate


def stacked_multiplier(multipliers: Iterable[float], config: StackingConfig) -> float:
    return stacked_rate(1.0, multipliers, config)
