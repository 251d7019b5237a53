"""
Unit tests for PlayerEffectsService and GlobalEffectsService.

Tests session restore, permanent grants, snapshot publication and the
server-wide aggregates.
"""

import pytest

from petsim.modules.effects.catalog import PERMANENT, EffectConfig
from tests.conftest import PLAYER_ID


def _snapshots(mock_event_bus, event_name):
    return [c.args[1] for c in mock_event_bus.publish.call_args_list if c.args[0] == event_name]


@pytest.mark.asyncio
class TestPlayerSession:
    """Test connect and disconnect."""

    async def test_connect_restores_saved_effects(self, player_effects, profile_store, mock_event_bus):
        profile_store.set_active_effects(
            PLAYER_ID, {"speed_boost": {"timeRemaining": 120, "usesRemaining": -1, "appliedAt": 0}}
        )

        assert await player_effects.player_connected(PLAYER_ID) == 1

        snapshot = _snapshots(mock_event_bus, "effects.player.snapshot")[-1]
        assert snapshot["player_id"] == PLAYER_ID
        assert snapshot["effects"]["speed_boost"]["timeRemaining"] == 120
        assert snapshot["aggregates"]["speedMultiplier"] == pytest.approx(1.5)

    async def test_connect_without_effects_still_publishes(self, player_effects, mock_event_bus):
        assert await player_effects.player_connected(PLAYER_ID) == 0

        assert _snapshots(mock_event_bus, "effects.player.snapshot") == [
            {
                "player_id": PLAYER_ID,
                "effects": {},
                "aggregates": {"speedMultiplier": 1.0, "luckBoost": 0.0, "rareLuckBoost": 0.0},
            }
        ]

    async def test_disconnect_saves_remaining_time(self, player_effects, profile_store, clock):
        await player_effects.player_connected(PLAYER_ID)
        await player_effects.apply_effect(PLAYER_ID, "speed_boost")
        clock.advance(100)

        assert await player_effects.player_disconnected(PLAYER_ID) is True

        assert profile_store.get_active_effects(PLAYER_ID)["speed_boost"]["timeRemaining"] == 200
        assert player_effects.is_connected(PLAYER_ID) is False
        assert await player_effects.player_disconnected(PLAYER_ID) is False

    async def test_save_all(self, player_effects):
        await player_effects.player_connected(PLAYER_ID)

        assert await player_effects.save_all() == 1


@pytest.mark.asyncio
class TestPlayerMutations:
    """Test mutations and the snapshots they publish."""

    async def test_apply_publishes_full_state(self, player_effects, mock_event_bus):
        await player_effects.player_connected(PLAYER_ID)
        await player_effects.apply_effect(PLAYER_ID, "speed_boost")
        await player_effects.apply_effect(PLAYER_ID, "lucky_clover")

        snapshot = _snapshots(mock_event_bus, "effects.player.snapshot")[-1]
        assert set(snapshot["effects"]) == {"speed_boost", "lucky_clover"}

    async def test_rejected_apply_publishes_nothing(self, player_effects, mock_event_bus):
        await player_effects.player_connected(PLAYER_ID)
        await player_effects.apply_effect(PLAYER_ID, "speed_boost", 100)
        mock_event_bus.publish.reset_mock()

        assert await player_effects.apply_effect(PLAYER_ID, "speed_boost", 50) is False
        mock_event_bus.publish.assert_not_awaited()

    async def test_remove_and_clear(self, player_effects):
        await player_effects.player_connected(PLAYER_ID)
        await player_effects.apply_effect(PLAYER_ID, "speed_boost")
        await player_effects.apply_effect(PLAYER_ID, "lucky_clover")

        assert await player_effects.remove_effect(PLAYER_ID, "speed_boost") is True
        assert await player_effects.clear_all_effects(PLAYER_ID) == 1
        assert player_effects.get_active_effects(PLAYER_ID) == {}

    async def test_consume_use(self, player_effects):
        await player_effects.player_connected(PLAYER_ID)
        await player_effects.apply_effect(PLAYER_ID, "trade_token")

        for _ in range(2):
            assert await player_effects.consume_use(PLAYER_ID, "PurchaseItem") == []
        assert await player_effects.consume_use(PLAYER_ID, "PurchaseItem") == ["trade_token"]

    async def test_tick_publishes_expiry(self, player_effects, mock_event_bus):
        await player_effects.player_connected(PLAYER_ID)
        await player_effects.apply_effect(PLAYER_ID, "speed_boost")
        mock_event_bus.publish.reset_mock()

        assert await player_effects.tick(1300) == {PLAYER_ID: ["speed_boost"]}

        mock_event_bus.publish.assert_awaited_once()
        assert _snapshots(mock_event_bus, "effects.player.snapshot")[0]["effects"] == {}

    async def test_tick_without_changes_publishes_nothing(self, player_effects, mock_event_bus):
        await player_effects.player_connected(PLAYER_ID)
        await player_effects.apply_effect(PLAYER_ID, "speed_boost")
        mock_event_bus.publish.reset_mock()

        assert await player_effects.tick(1100) == {}
        mock_event_bus.publish.assert_not_awaited()


@pytest.mark.asyncio
class TestPermanentEffects:
    """Test permanent grants stored as permanent_<id>."""

    async def test_catalog_effect_becomes_permanent(self, player_effects, clock):
        await player_effects.player_connected(PLAYER_ID)

        assert await player_effects.apply_permanent_effect(PLAYER_ID, "speed_boost") is True

        effects = player_effects.get_active_effects(PLAYER_ID)
        assert effects["permanent_speed_boost"]["timeRemaining"] == PERMANENT
        assert effects["permanent_speed_boost"]["icon"] == "⚡"
        assert player_effects.get_effective_stat(PLAYER_ID, "speedMultiplier") == pytest.approx(1.5)

        clock.advance(10**6)
        await player_effects.tick(clock.now())
        assert "permanent_speed_boost" in player_effects.get_active_effects(PLAYER_ID)

    async def test_permanent_grant_never_consumes(self, player_effects):
        await player_effects.player_connected(PLAYER_ID)
        await player_effects.apply_permanent_effect(PLAYER_ID, "trade_token")

        for _ in range(5):
            await player_effects.consume_use(PLAYER_ID, "PurchaseItem")

        assert player_effects.get_action_multipliers(PLAYER_ID, "PurchaseItem") == [2.0]

    async def test_unknown_id_gets_display_defaults(self, player_effects):
        await player_effects.player_connected(PLAYER_ID)

        assert await player_effects.apply_permanent_effect(PLAYER_ID, "early_supporter") is True

        effect = player_effects.get_active_effects(PLAYER_ID)["permanent_early_supporter"]
        assert effect["description"] == "Permanent effect from game pass"
        assert effect["icon"] == "⭐"
        assert effect["displayName"] == "early_supporter"

    async def test_explicit_config(self, player_effects):
        await player_effects.player_connected(PLAYER_ID)
        config = EffectConfig(effect_id="pet_luck", stat_modifiers={"luckBoost": 0.5})

        await player_effects.apply_permanent_effect(PLAYER_ID, "pet_luck", config)

        assert player_effects.get_effective_stat(PLAYER_ID, "luckBoost") == pytest.approx(0.5)

    async def test_bypasses_stack_limit(self, player_effects):
        await player_effects.player_connected(PLAYER_ID)
        for effect_id in ("speed_boost", "lucky_clover", "trade_token"):
            await player_effects.apply_effect(PLAYER_ID, effect_id)

        assert await player_effects.apply_permanent_effect(PLAYER_ID, "vip_pass") is True

    async def test_survives_reconnect(self, player_effects):
        await player_effects.player_connected(PLAYER_ID)
        await player_effects.apply_permanent_effect(PLAYER_ID, "speed_boost")
        await player_effects.player_disconnected(PLAYER_ID)

        assert await player_effects.player_connected(PLAYER_ID) == 1
        assert player_effects.get_effective_stat(PLAYER_ID, "speedMultiplier") == pytest.approx(1.5)


@pytest.mark.asyncio
class TestGlobalEffects:
    """Test server-wide effects."""

    async def test_apply_and_clear(self, global_effects):
        assert await global_effects.apply_global_effect("double_xp") is True
        assert global_effects.get_global_aggregate("globalXPMultiplier") == pytest.approx(2.0)

        assert await global_effects.clear_all_global_effects() == 1
        assert global_effects.get_global_aggregate("globalXPMultiplier") == 1.0

    async def test_reason_and_defaults(self, global_effects):
        await global_effects.apply_global_effect("double_xp", 100, reason="Weekend event")
        await global_effects.apply_global_effect("global_rush")

        effects = global_effects.get_active_global_effects()
        assert effects["double_xp"]["reason"] == "Weekend event"
        assert effects["double_xp"]["icon"] == "🌟"
        assert effects["double_xp"]["description"] == "Double XP for everyone"
        assert effects["global_rush"]["reason"] == "Server event"

    async def test_no_stacking_limit(self, global_effects):
        for effect_id in ("double_xp", "global_rush", "speed_boost", "lucky_clover", "vip_pass"):
            assert await global_effects.apply_global_effect(effect_id) is True

    async def test_extend_duration(self, global_effects):
        await global_effects.apply_global_effect("double_xp")
        await global_effects.apply_global_effect("double_xp")

        assert global_effects.get_active_global_effects()["double_xp"]["timeRemaining"] == 7200

    async def test_publishes_global_snapshot(self, global_effects, mock_event_bus):
        await global_effects.apply_global_effect("global_rush")

        snapshot = _snapshots(mock_event_bus, "effects.global.snapshot")[-1]
        assert set(snapshot) == {"effects", "aggregates"}
        assert snapshot["aggregates"]["globalSpeedMultiplier"] == pytest.approx(2.0)

    async def test_remove_and_action_multipliers(self, global_effects):
        await global_effects.apply_global_effect("global_rush")
        assert global_effects.get_action_multipliers("CollectResource") == [2.0]

        assert await global_effects.remove_global_effect("global_rush") is True
        assert global_effects.get_action_multipliers("CollectResource") == []
        assert global_effects.get_all_global_aggregates() == {
            "globalXPMultiplier": 1.0,
            "globalSpeedMultiplier": 1.0,
        }

    async def test_global_tick_expires(self, global_effects, clock):
        await global_effects.apply_global_effect("global_rush")
        clock.advance(600)

        expired = await global_effects.tick(clock.now())

        assert list(expired.values()) == [["global_rush"]]
