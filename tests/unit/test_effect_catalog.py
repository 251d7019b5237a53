"""
Unit tests for EffectCatalog.

Tests construction from configuration and the fail-fast checks.
"""

import pytest

from petsim.core.config.config import Config
from petsim.core.config.manager import ConfigManager
from petsim.core.exceptions import ConfigurationError
from petsim.modules.effects.catalog import (
    UNLIMITED,
    EffectCatalog,
    StackingPolicy,
)
from petsim.modules.effects.stacking import StackingMode


class TestEffectDefinitions:
    """Test effect definitions loaded from ratelimits.effect_modifiers."""

    def test_effect_fields(self, catalog):
        config = catalog.get_effect_config("speed_boost")

        assert config.multiplier == 1.5
        assert config.actions == ("CollectResource",)
        assert config.duration == 300
        assert config.stacking is StackingPolicy.RESET_IF_LONGER
        assert dict(config.stat_modifiers) == {"speedMultiplier": 0.5}

    def test_consumable_effect(self, catalog):
        config = catalog.get_effect_config("trade_token")

        assert config.max_uses == 3
        assert config.consume_on_use is True
        assert config.covers("PurchaseItem")
        assert not config.covers("Chat")

    def test_defaults_for_omitted_fields(self, catalog):
        config = catalog.get_effect_config("lucky_clover")

        assert config.multiplier == 1.0
        assert config.actions == ()
        assert config.max_uses == UNLIMITED
        assert config.consume_on_use is False
        assert config.description is None

    def test_unknown_effect(self, catalog):
        assert catalog.get_effect_config("moon_shoes") is None

    def test_effect_ids(self, catalog):
        assert set(catalog.effect_ids()) == {
            "speed_boost",
            "speed_surge",
            "lucky_clover",
            "trade_token",
            "vip_pass",
            "double_xp",
            "global_rush",
        }


class TestRateSettings:
    def test_base_and_max_rates(self, catalog):
        assert catalog.get_base_rate("PurchaseItem") == 10
        assert catalog.get_base_rate("Trade") is None
        assert catalog.get_absolute_max_rate("CollectResource") == 40
        assert catalog.get_absolute_max_rate("Chat") is None

    def test_burst_and_punishment(self, catalog):
        burst = catalog.get_burst_config()
        punishment = catalog.get_punishment_config()

        assert burst.window_size == 10
        assert burst.max_for("Chat") == 3
        assert burst.max_for("PurchaseItem") is None
        assert (punishment.warning_threshold, punishment.kick_threshold, punishment.ban_threshold) == (2, 4, 6)
        assert punishment.escalation_window == 300

    def test_stacking_config(self, catalog):
        stacking = catalog.get_stacking_config()

        assert stacking.max_stacked_effects == 3
        assert stacking.stacking_mode is StackingMode.MULTIPLY
        assert stacking.diminishing_factor == 0.8

    def test_rate_window(self, catalog):
        assert catalog.rate_window_seconds == 60


class TestStatsAndDisplay:
    def test_baselines(self, catalog):
        assert catalog.get_stat_baseline("speedMultiplier") == 1.0
        assert catalog.get_stat_baseline("unknownStat") == 0.0
        assert catalog.stat_baselines(["luckBoost", "unknownStat"]) == {"luckBoost": 0.0, "unknownStat": 0.0}

    def test_subject_stat_lists(self, catalog):
        assert catalog.player_stats == ("speedMultiplier", "luckBoost", "rareLuckBoost")
        assert catalog.global_stats == ("globalXPMultiplier", "globalSpeedMultiplier")

    def test_display_defaults(self, catalog):
        assert catalog.display.global_reason == "Server event"
        assert catalog.display.permanent_icon == "⭐"

    def test_effects_section_is_optional(self, config_data):
        del config_data["effects"]

        catalog = EffectCatalog.from_config(ConfigManager.from_dict(config_data))

        assert catalog.player_stats == ()
        assert catalog.get_stat_baseline("speedMultiplier") == 0.0
        assert catalog.display.default_icon == "✨"


class TestFailFast:
    """Incomplete configuration must stop startup."""

    def test_missing_ratelimits(self):
        with pytest.raises(ConfigurationError):
            EffectCatalog.from_config(ConfigManager.from_dict({"effects": {}}))

    def test_missing_punishment(self, mocker, config_data):
        # Schema validation would reject this tree, so read it through a stub manager
        del config_data["ratelimits"]["anti_exploit"]["punishment"]
        manager = mocker.Mock()
        manager.get_section.side_effect = lambda key: config_data.get(key, {})

        with pytest.raises(ConfigurationError):
            EffectCatalog.from_config(manager)

    def test_missing_punishment_value(self, mocker, config_data):
        del config_data["ratelimits"]["anti_exploit"]["punishment"]["ban_threshold"]
        manager = mocker.Mock()
        manager.get_section.side_effect = lambda key: config_data.get(key, {})

        with pytest.raises(ConfigurationError, match="ban_threshold"):
            EffectCatalog.from_config(manager)

    def test_unknown_stacking_mode(self, config_data):
        config_data["ratelimits"]["effect_stacking"]["stacking_mode"] = "chaotic"

        with pytest.raises(ConfigurationError):
            EffectCatalog.from_config(ConfigManager.from_dict(config_data))

    def test_unknown_stacking_policy(self, config_data):
        config_data["ratelimits"]["effect_modifiers"]["speed_boost"]["stacking"] = "forever"

        with pytest.raises(ConfigurationError):
            EffectCatalog.from_config(ConfigManager.from_dict(config_data))


class TestShippedConfiguration:
    def test_repository_config_builds_catalog(self):
        """The YAML shipped in config/ must load and validate."""
        manager = ConfigManager(Config.CONFIG_DIR)
        manager.initialize()

        catalog = EffectCatalog.from_config(manager)

        assert "speed_boost" in catalog.effect_ids()
        assert catalog.get_base_rate("PurchaseItem") == 30
        assert "speedMultiplier" in catalog.player_stats
