"""
Unit tests for the effect state containers and the in-memory profile store.
"""

import pytest

from petsim.core.exceptions import PersistenceUnavailableError
from petsim.modules.effects.catalog import PERMANENT, EffectConfig
from petsim.modules.effects.models import AggregateTable, EffectInstance, EffectSet
from petsim.modules.profile.store import InMemoryProfileStore

BASELINES = {"speedMultiplier": 1.0, "luckBoost": 0.0}


def _instance(effect_id, remaining=100, applied_at=0, **modifiers):
    return EffectInstance(
        effect_id=effect_id,
        config=EffectConfig(effect_id=effect_id, stat_modifiers=modifiers),
        remaining=remaining,
        applied_at=applied_at,
    )


def _table(seed=None):
    return AggregateTable(seed if seed is not None else BASELINES, lambda stat: BASELINES.get(stat, 0.0))


class TestEffectInstance:
    def test_live_remaining_counts_whole_seconds(self):
        instance = _instance("speed_boost", remaining=100, applied_at=1000)

        assert instance.live_remaining(1000) == 100
        assert instance.live_remaining(1042.9) == 58
        assert instance.live_remaining(5000) == 0

    def test_clock_going_backwards(self):
        assert _instance("speed_boost", applied_at=1000).live_remaining(900) == 100

    def test_permanent(self):
        instance = _instance("vip_pass", remaining=PERMANENT)

        assert instance.is_permanent
        assert instance.live_remaining(10**9) == PERMANENT
        assert instance.is_active(10**9)


class TestEffectSet:
    def test_one_instance_per_id(self):
        effects = EffectSet()
        effects.add(_instance("speed_boost", remaining=10))
        effects.add(_instance("speed_boost", remaining=20))

        assert len(effects) == 1
        assert effects.get("speed_boost").remaining == 20

    def test_iteration_tolerates_removal(self):
        effects = EffectSet()
        for effect_id in ("a", "b", "c"):
            effects.add(_instance(effect_id))

        for instance in effects:
            effects.pop(instance.effect_id)

        assert len(effects) == 0


class TestAggregateTable:
    """Aggregates are always recomputed from the baseline."""

    def test_seeded_stats(self):
        assert _table().as_dict() == BASELINES

    def test_unseeded_stat_reads_baseline(self):
        assert _table().get("rareLuckBoost") == 0.0

    def test_recompute_sums_deltas(self):
        table = _table()
        instances = [_instance("a", speedMultiplier=0.5), _instance("b", speedMultiplier=0.25)]

        table.recompute(["speedMultiplier"], instances)

        assert table.get("speedMultiplier") == 1.75

    def test_no_drift_after_many_changes(self):
        """Repeated add/remove of awkward floats returns the exact baseline."""
        table = _table()
        instances = []
        for i in range(50):
            instances.append(_instance(f"e{i}", luckBoost=0.1))
            table.recompute(["luckBoost"], instances)
        while instances:
            instances.pop()
            table.recompute(["luckBoost"], instances)

        assert table.get("luckBoost") == 0.0

    def test_unseeded_stat_is_dropped_when_unused(self):
        table = _table(seed={})
        instance = _instance("a", globalXPMultiplier=1.0)

        table.recompute(["globalXPMultiplier"], [instance])
        assert table.as_dict() == {"globalXPMultiplier": 1.0}

        table.recompute(["globalXPMultiplier"], [])
        assert table.as_dict() == {}

    def test_rebuild(self):
        table = _table()
        table.recompute(["speedMultiplier"], [_instance("a", speedMultiplier=2.0)])

        table.rebuild([_instance("b", luckBoost=0.3)])

        assert table.as_dict() == {"speedMultiplier": 1.0, "luckBoost": pytest.approx(0.3)}


class TestInMemoryProfileStore:
    def test_requires_loaded_profile(self):
        store = InMemoryProfileStore()

        with pytest.raises(PersistenceUnavailableError):
            store.get_active_effects(7)
        with pytest.raises(PersistenceUnavailableError):
            store.set_active_effects(7, {})

    def test_release_keeps_data(self):
        store = InMemoryProfileStore()
        store.load_profile(7)
        store.set_active_effects(7, {"vip_pass": {"timeRemaining": -1, "usesRemaining": -1, "appliedAt": 0}})

        assert store.release_profile(7) is True
        assert store.release_profile(7) is False
        assert store.is_loaded(7) is False

        store.load_profile(7)
        assert list(store.get_active_effects(7)) == ["vip_pass"]

    def test_load_with_data_replaces_profile(self):
        store = InMemoryProfileStore()
        store.load_profile(7)
        store.set_active_effects(7, {"vip_pass": {"timeRemaining": -1, "usesRemaining": -1, "appliedAt": 0}})

        store.load_profile(7, {"coins": 10})

        assert store.get_active_effects(7) == {}
        assert store.get_profile(7)["coins"] == 10

    def test_returns_copies(self):
        store = InMemoryProfileStore()
        store.load_profile(7)
        effects = {"vip_pass": {"timeRemaining": -1, "usesRemaining": -1, "appliedAt": 0}}
        store.set_active_effects(7, effects)

        effects["vip_pass"]["timeRemaining"] = 5
        store.get_active_effects(7)["vip_pass"]["timeRemaining"] = 9

        assert store.get_active_effects(7)["vip_pass"]["timeRemaining"] == -1
        assert store.loaded_subjects() == [7]
