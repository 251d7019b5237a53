"""
Unit tests for multiplier stacking.

Covers the three stacking modes and diminishing returns.
"""

import pytest

from petsim.modules.effects.catalog import StackingPolicy
from petsim.modules.effects.stacking import (
    StackingConfig,
    StackingMode,
    stacked_multiplier,
    stacked_rate,
)

MULTIPLY = StackingConfig(stacking_mode=StackingMode.MULTIPLY)
ADD = StackingConfig(stacking_mode=StackingMode.ADD)
BEST = StackingConfig(stacking_mode=StackingMode.BEST)


class TestMultiplyMode:
    """Test the default multiplicative mode."""

    def test_no_multipliers_returns_base(self):
        assert stacked_rate(10, [], MULTIPLY) == 10

    def test_single_multiplier_is_undiminished(self):
        assert stacked_rate(10, [1.5], MULTIPLY) == pytest.approx(15.0)

    def test_second_multiplier_is_diminished(self):
        """The second-largest keeps 80% of its excess over 1.0."""
        assert stacked_multiplier([2.0, 1.5], MULTIPLY) == pytest.approx(2.8)

    def test_input_order_does_not_matter(self):
        assert stacked_multiplier([1.5, 2.0], MULTIPLY) == stacked_multiplier([2.0, 1.5], MULTIPLY)

    def test_diminishing_compounds_by_rank(self):
        # 2.0 * (1 + 0.5 * 0.8) * (1 + 0.25 * 0.64)
        assert stacked_multiplier([1.25, 2.0, 1.5], MULTIPLY) == pytest.approx(3.248)

    def test_without_diminishing_returns(self):
        config = StackingConfig(diminishing_returns=False)

        assert stacked_multiplier([2.0, 1.5], config) == pytest.approx(3.0)

    def test_debuff_multiplier(self):
        assert stacked_rate(10, [0.5], MULTIPLY) == pytest.approx(5.0)


class TestAddAndBestModes:
    def test_add_sums_scaled_bonuses(self):
        # 10 * (1 + 1.0 + 0.5 * 0.8)
        assert stacked_rate(10, [2.0, 1.5], ADD) == pytest.approx(24.0)

    def test_best_keeps_only_largest(self):
        assert stacked_rate(10, [1.2, 3.0, 2.0], BEST) == pytest.approx(30.0)

    def test_stacked_multiplier_is_rate_on_unit_base(self):
        for config in (MULTIPLY, ADD, BEST):
            assert stacked_multiplier([1.4, 1.1], config) == stacked_rate(1.0, [1.4, 1.1], config)


class TestStackingPolicyParsing:
    """Test parsing of per-effect re-application policies."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            (None, StackingPolicy.RESET_IF_LONGER),
            ("reset_if_longer", StackingPolicy.RESET_IF_LONGER),
            ("reset-if-longer", StackingPolicy.RESET_IF_LONGER),
            ("extend", StackingPolicy.EXTEND_DURATION),
            ("Extend_Duration", StackingPolicy.EXTEND_DURATION),
            ("none", StackingPolicy.NONE),
        ],
    )
    def test_parse(self, raw, expected):
        assert StackingPolicy.parse(raw) is expected

    def test_unknown_policy(self):
        with pytest.raises(ValueError):
            StackingPolicy.parse("forever")
