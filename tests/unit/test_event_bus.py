"""
Unit tests for EventBus.

Tests subscription, wildcard routing, priority tiers and error isolation.
"""

import asyncio

import pytest

from petsim.core.config.manager import ConfigManager
from petsim.core.event.bus import EventBus
from petsim.core.event.router import EventRouter
from petsim.core.event.types import ListenerPriority


class TestEventRouter:
    @pytest.mark.parametrize(
        "event_name,pattern,expected",
        [
            ("effects.player.snapshot", "effects.*", True),
            ("effects.global.snapshot", "*.snapshot", True),
            ("effects.player.snapshot", "effects.player.snapshot", True),
            ("ratelimit.warning", "effects.*", False),
            ("ratelimit.warning", "*", True),
            ("effects.player.snapshot", "effects.*.snapshot", True),
            ("effects.snapshot", "effects.*.snapshot", False),
        ],
    )
    def test_matches(self, event_name, pattern, expected):
        assert EventRouter().matches(event_name, pattern) is expected


class TestSubscription:
    """Test listener registration."""

    def test_rejects_callbacks_with_wrong_arity(self, event_bus):
        with pytest.raises(ValueError):
            event_bus.subscribe("ratelimit.warning", lambda a, b: None)

    def test_duplicate_identifier_prevented(self, event_bus):
        event_bus.subscribe("ratelimit.warning", lambda payload: None, identifier="moderation")
        event_bus.subscribe("ratelimit.warning", lambda payload: None, identifier="moderation")

        assert event_bus.get_listener_count("ratelimit.warning") == 1

    def test_unsubscribe(self, event_bus):
        event_bus.subscribe("ratelimit.warning", lambda payload: None, identifier="moderation")

        assert event_bus.unsubscribe("ratelimit.warning", "moderation") is True
        assert event_bus.get_listener_count() == 0


@pytest.mark.asyncio
class TestPublish:
    """Test delivery."""

    async def test_exact_and_wildcard_listeners(self, event_bus):
        received = []
        event_bus.subscribe("effects.player.snapshot", lambda p: received.append(("exact", p)))
        event_bus.subscribe("effects.*", lambda p: received.append(("wildcard", p)))

        await event_bus.publish("effects.player.snapshot", {"player_id": 1})

        assert sorted(tag for tag, _ in received) == ["exact", "wildcard"]

    async def test_no_listeners(self, event_bus):
        assert await event_bus.publish("player.connected", {"player_id": 1}) == []

    async def test_priority_order(self, event_bus):
        order = []
        event_bus.subscribe("player.connected", lambda p: order.append("normal"), identifier="normal")
        event_bus.subscribe(
            "player.connected",
            lambda p: order.append("critical"),
            priority=ListenerPriority.CRITICAL,
            identifier="critical",
        )
        event_bus.subscribe(
            "player.connected",
            lambda p: order.append("high"),
            priority=ListenerPriority.HIGH,
            identifier="high",
        )

        await event_bus.publish("player.connected", {})

        assert order == ["critical", "high", "normal"]

    async def test_async_listener_result(self, event_bus):
        async def listener(payload):
            return payload["player_id"] * 2

        event_bus.subscribe("player.connected", listener)

        assert await event_bus.publish("player.connected", {"player_id": 21}) == [42]

    async def test_failing_listener_is_isolated(self, event_bus):
        received = []

        def broken(payload):
            raise RuntimeError("replication offline")

        event_bus.subscribe("player.connected", broken, identifier="broken")
        event_bus.subscribe("player.connected", received.append, identifier="healthy")

        await event_bus.publish("player.connected", {"player_id": 1})

        assert received == [{"player_id": 1}]
        assert event_bus.get_metrics_summary()["total_errors"] == 1

    async def test_once_listener_fires_once(self, event_bus):
        received = []
        event_bus.subscribe("player.connected", received.append, once=True)

        await event_bus.publish("player.connected", {"n": 1})
        await event_bus.publish("player.connected", {"n": 2})

        assert received == [{"n": 1}]

    async def test_low_priority_runs_in_background(self, event_bus):
        received = []

        async def slow(payload):
            await asyncio.sleep(0.01)
            received.append(payload)

        event_bus.subscribe("player.disconnected", slow, priority=ListenerPriority.LOW)

        assert await event_bus.publish("player.disconnected", {"player_id": 1}) == []
        await event_bus.drain()

        assert received == [{"player_id": 1}]

    async def test_high_listener_timeout(self):
        bus = EventBus(high_timeout_seconds=0.01)

        async def stuck(payload):
            await asyncio.sleep(1)

        bus.subscribe("player.connected", stuck, priority=ListenerPriority.HIGH)

        assert await bus.publish("player.connected", {}) == [None]
        assert bus.get_metrics_summary()["errors_by_event"] == {"player.connected": 1}


@pytest.mark.asyncio
async def test_timeouts_read_from_config(config_data):
    """Listener timeouts come from effects.events when a ConfigManager is supplied."""
    config_data["effects"]["events"] = {"critical_timeout_seconds": 5.0, "high_timeout_seconds": 0.01}
    bus = EventBus(config_manager=ConfigManager.from_dict(config_data))

    async def stuck(payload):
        await asyncio.sleep(1)

    bus.subscribe("player.connected", stuck, priority=ListenerPriority.HIGH)

    assert await bus.publish("player.connected", {}) == [None]
