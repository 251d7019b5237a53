"""
Pytest Configuration and Fixtures for the Petsim Effects Test Suite
===================================================================

Purpose
-------
Centralized fixtures for the effect engine, rate limiter and services.

Responsibilities
----------------
- Manual clock so every countdown is deterministic
- In-memory configuration tree and the catalog built from it
- Engines, limiter and services wired the way the container wires them
- Event bus doubles (real bus for integration, AsyncMock for unit tests)

Architecture Notes
------------------
- Unit tests use a mocked event bus (fast, isolated)
- Integration tests use the real EventBus and capture published snapshots
- All fixtures are function-scoped; nothing leaks between tests
"""

from __future__ import annotations

import copy
import os
from typing import Any, Dict, List, Tuple

import pytest

from petsim.core.config.manager import ConfigManager
from petsim.core.event.bus import EventBus
from petsim.core.logging.logger import get_logger
from petsim.modules.effects.catalog import EffectCatalog
from petsim.modules.effects.engine import EffectEngine
from petsim.modules.effects.global_service import GlobalEffectsService
from petsim.modules.effects.models import GLOBAL_SUBJECT
from petsim.modules.effects.player_service import PlayerEffectsService
from petsim.modules.profile.store import InMemoryProfileStore
from petsim.modules.ratelimit.limiter import RateLimiter
from petsim.modules.ratelimit.service import RateLimitService
from petsim.modules.session.service import PlayerSessionService

PLAYER_ID = 1001
OTHER_PLAYER_ID = 1002

CAPTURED_EVENTS = (
    "effects.player.snapshot",
    "effects.global.snapshot",
    "ratelimit.violation",
    "ratelimit.warning",
    "player.connected",
    "player.disconnected",
)

# ============================================================================
# PYTEST CONFIGURATION
# ============================================================================


def pytest_configure(config):
    """Configure pytest environment."""
    os.environ["ENVIRONMENT"] = "testing"
    os.environ["LOG_LEVEL"] = "DEBUG"


# ============================================================================
# CLOCK
# ============================================================================


class ManualClock:
    """ClockSource whose time only moves when a test says so."""

    def __init__(self, start: int = 1000) -> None:
        self._now = start

    def now(self) -> int:
        return self._now

    def advance(self, seconds: int) -> int:
        self._now += seconds
        return self._now

    def set(self, now: int) -> None:
        self._now = now


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(start=1000)


# ============================================================================
# CONFIGURATION
# ============================================================================


TEST_CONFIG: Dict[str, Any] = {
    "ratelimits": {
        "rate_window_seconds": 60,
        "base_rates": {
            "PurchaseItem": 10,
            "CollectResource": 20,
            "Chat": 5,
        },
        "effect_modifiers": {
            "speed_boost": {
                "actions": ["CollectResource"],
                "multiplier": 1.5,
                "duration": 300,
                "stacking": "reset_if_longer",
                "description": "50% faster collection",
                "display_name": "Speed Boost",
                "icon": "⚡",
                "stat_modifiers": {"speedMultiplier": 0.5},
            },
            "speed_surge": {
                "actions": ["CollectResource"],
                "multiplier": 1.25,
                "duration": 300,
                "stacking": "extend_duration",
                "stat_modifiers": {"speedMultiplier": 0.5},
            },
            "lucky_clover": {
                "duration": 600,
                "stacking": "none",
                "stat_modifiers": {"luckBoost": 0.1, "rareLuckBoost": 0.3},
            },
            "trade_token": {
                "actions": ["PurchaseItem"],
                "multiplier": 2.0,
                "duration": 600,
                "max_uses": 3,
                "consume_on_use": True,
            },
            "vip_pass": {
                "actions": ["PurchaseItem", "Chat"],
                "multiplier": 1.5,
                "duration": -1,
                "description": "VIP privileges",
                "display_name": "VIP Pass",
                "icon": "👑",
            },
            "double_xp": {
                "duration": 3600,
                "stacking": "extend_duration",
                "description": "Double XP for everyone",
                "stat_modifiers": {"globalXPMultiplier": 1.0},
            },
            "global_rush": {
                "actions": ["CollectResource"],
                "multiplier": 2.0,
                "duration": 600,
                "stat_modifiers": {"globalSpeedMultiplier": 1.0},
            },
        },
        "anti_exploit": {
            "absolute_max_rates": {
                "PurchaseItem": 20,
                "CollectResource": 40,
            },
            "burst_protection": {
                "window_size": 10,
                "max_burst_rates": {
                    "CollectResource": 5,
                    "Chat": 3,
                },
            },
            "punishment": {
                "warning_threshold": 2,
                "kick_threshold": 4,
                "ban_threshold": 6,
                "escalation_window": 300,
            },
        },
        "effect_stacking": {
            "max_stacked_effects": 3,
            "stacking_mode": "multiply",
            "diminishing_returns": True,
            "diminishing_factor": 0.8,
        },
    },
    "effects": {
        "tick_interval_seconds": 1,
        "save_interval_seconds": 30,
        "stat_baselines": {
            "speedMultiplier": 1.0,
            "luckBoost": 0.0,
            "rareLuckBoost": 0.0,
            "globalXPMultiplier": 1.0,
            "globalSpeedMultiplier": 1.0,
        },
        "player_stats": ["speedMultiplier", "luckBoost", "rareLuckBoost"],
        "global_stats": ["globalXPMultiplier", "globalSpeedMultiplier"],
        "display": {
            "default_icon": "✨",
            "default_description": "Effect active",
            "global_icon": "🌟",
            "global_reason": "Server event",
            "permanent_icon": "⭐",
            "permanent_description": "Permanent effect from game pass",
        },
    },
}


@pytest.fixture
def config_data() -> Dict[str, Any]:
    """Mutable copy of the test configuration tree."""
    return copy.deepcopy(TEST_CONFIG)


@pytest.fixture
def config_manager(config_data) -> ConfigManager:
    return ConfigManager.from_dict(config_data)


@pytest.fixture
def catalog(config_manager) -> EffectCatalog:
    return EffectCatalog.from_config(config_manager)


# ============================================================================
# PERSISTENCE
# ============================================================================


@pytest.fixture
def profile_store() -> InMemoryProfileStore:
    store = InMemoryProfileStore()
    store.load_profile(PLAYER_ID)
    return store


# ============================================================================
# ENGINES
# ============================================================================


@pytest.fixture
def player_engine(catalog, clock, profile_store) -> EffectEngine[int]:
    engine: EffectEngine[int] = EffectEngine(
        catalog,
        clock,
        profile_store,
        name="player",
        stat_names=catalog.player_stats,
    )
    engine.register_subject(PLAYER_ID)
    return engine


@pytest.fixture
def global_engine(catalog, clock) -> EffectEngine:
    engine = EffectEngine(
        catalog,
        clock,
        None,
        name="global",
        stat_names=catalog.global_stats,
        enforce_stack_limit=False,
        default_icon=catalog.display.global_icon,
        default_reason=catalog.display.global_reason,
    )
    engine.register_subject(GLOBAL_SUBJECT)
    return engine


@pytest.fixture
def rate_limiter(catalog, clock) -> RateLimiter[int]:
    return RateLimiter(catalog, clock)


# ============================================================================
# EVENT BUS
# ============================================================================


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus(enable_metrics=True)


@pytest.fixture
def published(event_bus) -> List[Tuple[str, Dict[str, Any]]]:
    """Every event published on the real bus, in order."""
    captured: List[Tuple[str, Dict[str, Any]]] = []

    for name in CAPTURED_EVENTS:
        event_bus.subscribe(
            name,
            lambda payload, event_name=name: captured.append((event_name, payload)),
            identifier=f"capture:{name}",
        )
    return captured


@pytest.fixture
def mock_event_bus(mocker):
    bus = mocker.MagicMock(spec=EventBus)
    bus.publish = mocker.AsyncMock(return_value=[])
    return bus


# ============================================================================
# SERVICES
# ============================================================================


@pytest.fixture
def player_effects(catalog, clock, profile_store, config_manager, mock_event_bus) -> PlayerEffectsService:
    return PlayerEffectsService(
        catalog=catalog,
        clock=clock,
        store=profile_store,
        config_manager=config_manager,
        event_bus=mock_event_bus,
        logger=get_logger("tests.player_effects"),
    )


@pytest.fixture
def global_effects(catalog, clock, config_manager, mock_event_bus) -> GlobalEffectsService:
    return GlobalEffectsService(
        catalog=catalog,
        clock=clock,
        config_manager=config_manager,
        event_bus=mock_event_bus,
        logger=get_logger("tests.global_effects"),
    )


@pytest.fixture
def disconnect_handler(mocker):
    return mocker.AsyncMock(return_value=True)


@pytest.fixture
def rate_limits(
    rate_limiter,
    catalog,
    player_effects,
    global_effects,
    config_manager,
    mock_event_bus,
    disconnect_handler,
) -> RateLimitService:
    return RateLimitService(
        limiter=rate_limiter,
        catalog=catalog,
        player_effects=player_effects,
        global_effects=global_effects,
        config_manager=config_manager,
        event_bus=mock_event_bus,
        logger=get_logger("tests.rate_limits"),
        disconnect_handler=disconnect_handler,
    )


@pytest.fixture
def sessions(player_effects, rate_limits, profile_store, config_manager, mock_event_bus) -> PlayerSessionService:
    return PlayerSessionService(
        player_effects=player_effects,
        rate_limits=rate_limits,
        profiles=profile_store,
        config_manager=config_manager,
        event_bus=mock_event_bus,
        logger=get_logger("tests.sessions"),
    )
