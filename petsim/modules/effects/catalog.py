"""
EffectCatalog: immutable effect and rate definitions.

Built once at startup from the `ratelimits` and `effects` configuration
sections and shared read-only by every engine, limiter and service.
A missing required section fails fast with ConfigurationError so no
subject is ever accepted against a half-configured server.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Mapping, Optional, Tuple

from petsim.core.exceptions import ConfigurationError
from petsim.core.logging.logger import get_logger
from petsim.modules.effects.stacking import StackingConfig, StackingMode

if TYPE_CHECKING:
    from petsim.core.config.manager import ConfigManager

logger = get_logger(__name__)

PERMANENT = -1
UNLIMITED = -1

DEFAULT_RATE_WINDOW_SECONDS = 60
DEFAULT_BURST_WINDOW_SECONDS = 10


class StackingPolicy(str, Enum):
    """What happens when an already-active effect is applied again."""

    EXTEND_DURATION = "extend_duration"
    RESET_IF_LONGER = "reset_if_longer"
    NONE = "none"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "StackingPolicy":
        if raw is None:
            return cls.RESET_IF_LONGER
        normalized = raw.strip().lower().replace("-", "_")
        if normalized == "extend":
            return cls.EXTEND_DURATION
        return cls(normalized)


@dataclass(frozen=True)
class EffectConfig:
    """Definition of one effect: stat deltas, rate multiplier and lifecycle rules."""

    effect_id: str
    stat_modifiers: Mapping[str, float] = field(default_factory=dict)
    multiplier: float = 1.0
    actions: Tuple[str, ...] = ()
    duration: int = 0
    max_uses: int = UNLIMITED
    consume_on_use: bool = False
    stacking: StackingPolicy = StackingPolicy.RESET_IF_LONGER
    description: Optional[str] = None
    display_name: Optional[str] = None
    icon: Optional[str] = None

    @classmethod
    def from_mapping(cls, effect_id: str, raw: Mapping[str, Any]) -> "EffectConfig":
        try:
            stacking = StackingPolicy.parse(raw.get("stacking"))
        except ValueError as e:
            raise ConfigurationError(
                f"ratelimits.effect_modifiers.{effect_id}.stacking",
                f"Unknown stacking policy {raw.get('stacking')!r}",
            ) from e

        return cls(
            effect_id=effect_id,
            stat_modifiers={
                stat: float(delta) for stat, delta in (raw.get("stat_modifiers") or {}).items()
            },
            multiplier=float(raw.get("multiplier", 1.0)),
            actions=tuple(raw.get("actions") or ()),
            duration=int(raw.get("duration", 0)),
            max_uses=int(raw.get("max_uses", UNLIMITED)),
            consume_on_use=bool(raw.get("consume_on_use", False)),
            stacking=stacking,
            description=raw.get("description"),
            display_name=raw.get("display_name"),
            icon=raw.get("icon"),
        )

    def covers(self, action_type: str) -> bool:
        return action_type in self.actions


@dataclass(frozen=True)
class BurstConfig:
    window_size: int = DEFAULT_BURST_WINDOW_SECONDS
    max_burst_rates: Mapping[str, int] = field(default_factory=dict)

    def max_for(self, action_type: str) -> Optional[int]:
        return self.max_burst_rates.get(action_type)


@dataclass(frozen=True)
class PunishmentConfig:
    warning_threshold: int
    kick_threshold: int
    ban_threshold: int
    escalation_window: int


@dataclass(frozen=True)
class DisplayDefaults:
    """Fallback presentation values for snapshot fields an effect leaves unset."""

    default_icon: str = "✨"
    default_description: str = "Effect active"
    global_icon: str = "🌟"
    global_reason: str = "Server event"
    permanent_icon: str = "⭐"
    permanent_description: str = "Permanent effect from game pass"

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "DisplayDefaults":
        known = {k: str(v) for k, v in raw.items() if k in cls.__dataclass_fields__}
        return cls(**known)


class EffectCatalog:
    """
    Read-only lookup of effect definitions, per-action rates and tuning.

    Parameters
    ----------
    effects:
        Effect definitions keyed by effect id.
    base_rates:
        Allowed actions per rate window, keyed by action type. Actions
        without an entry are unlimited.
    absolute_max_rates:
        Ceiling applied after effect multipliers.
    stat_baselines:
        Value of each stat when no effect modifies it. Unlisted stats are 0.
    """

    def __init__(
        self,
        *,
        effects: Mapping[str, EffectConfig],
        base_rates: Mapping[str, float],
        absolute_max_rates: Optional[Mapping[str, float]] = None,
        burst: Optional[BurstConfig] = None,
        punishment: PunishmentConfig,
        stacking: Optional[StackingConfig] = None,
        stat_baselines: Optional[Mapping[str, float]] = None,
        player_stats: Iterable[str] = (),
        global_stats: Iterable[str] = (),
        rate_window_seconds: int = DEFAULT_RATE_WINDOW_SECONDS,
        display: Optional[DisplayDefaults] = None,
    ) -> None:
        self._effects: Dict[str, EffectConfig] = dict(effects)
        self._base_rates: Dict[str, float] = dict(base_rates)
        self._absolute_max_rates: Dict[str, float] = dict(absolute_max_rates or {})
        self._burst = burst or BurstConfig()
        self._punishment = punishment
        self._stacking = stacking or StackingConfig()
        self._stat_baselines: Dict[str, float] = {
            stat: float(value) for stat, value in (stat_baselines or {}).items()
        }
        self._player_stats: Tuple[str, ...] = tuple(player_stats)
        self._global_stats: Tuple[str, ...] = tuple(global_stats)
        self._rate_window_seconds = int(rate_window_seconds)
        self._display = display or DisplayDefaults()

    # ------------------------------------------------------------------ #
    # Construction
    # ------------------------------------------------------------------ #

    @classmethod
    def from_config(cls, config_manager: ConfigManager) -> "EffectCatalog":
        """
        Build the catalog from `ratelimits.*` and `effects.*`.

        Raises
        ------
        ConfigurationError:
            If `ratelimits`, its `base_rates`, `effect_modifiers` or
            `anti_exploit.punishment` sections are missing, or a value
            cannot be interpreted.
        """
        ratelimits = config_manager.get_section("ratelimits")
        if not ratelimits:
            raise ConfigurationError("ratelimits", "Rate limit configuration section is missing")

        for required in ("base_rates", "effect_modifiers"):
            if required not in ratelimits:
                raise ConfigurationError(
                    f"ratelimits.{required}", "Required configuration section is missing"
                )

        anti_exploit = ratelimits.get("anti_exploit") or {}
        raw_punishment = anti_exploit.get("punishment")
        if not raw_punishment:
            raise ConfigurationError(
                "ratelimits.anti_exploit.punishment", "Required configuration section is missing"
            )

        try:
            punishment = PunishmentConfig(
                warning_threshold=int(raw_punishment["warning_threshold"]),
                kick_threshold=int(raw_punishment["kick_threshold"]),
                ban_threshold=int(raw_punishment["ban_threshold"]),
                escalation_window=int(raw_punishment["escalation_window"]),
            )
        except KeyError as e:
            raise ConfigurationError(
                f"ratelimits.anti_exploit.punishment.{e.args[0]}", "Required value is missing"
            ) from e

        raw_burst = anti_exploit.get("burst_protection") or {}
        burst = BurstConfig(
            window_size=int(raw_burst.get("window_size", DEFAULT_BURST_WINDOW_SECONDS)),
            max_burst_rates={
                action: int(limit) for action, limit in (raw_burst.get("max_burst_rates") or {}).items()
            },
        )

        raw_stacking = ratelimits.get("effect_stacking") or {}
        try:
            stacking = StackingConfig(
                max_stacked_effects=int(raw_stacking.get("max_stacked_effects", 3)),
                stacking_mode=StackingMode(raw_stacking.get("stacking_mode", "multiply")),
                diminishing_returns=bool(raw_stacking.get("diminishing_returns", True)),
                diminishing_factor=float(raw_stacking.get("diminishing_factor", 0.8)),
            )
        except ValueError as e:
            raise ConfigurationError(
                "ratelimits.effect_stacking.stacking_mode",
                f"Unknown stacking mode {raw_stacking.get('stacking_mode')!r}",
            ) from e

        effects = {
            effect_id: EffectConfig.from_mapping(effect_id, raw or {})
            for effect_id, raw in (ratelimits.get("effect_modifiers") or {}).items()
        }

        effect_settings = config_manager.get_section("effects")

        catalog = cls(
            effects=effects,
            base_rates=ratelimits.get("base_rates") or {},
            absolute_max_rates=anti_exploit.get("absolute_max_rates") or {},
            burst=burst,
            punishment=punishment,
            stacking=stacking,
            stat_baselines=effect_settings.get("stat_baselines") or {},
            player_stats=effect_settings.get("player_stats") or (),
            global_stats=effect_settings.get("global_stats") or (),
            rate_window_seconds=int(
                ratelimits.get("rate_window_seconds", DEFAULT_RATE_WINDOW_SECONDS)
            ),
            display=DisplayDefaults.from_mapping(effect_settings.get("display") or {}),
        )

        logger.info(
            "Effect catalog loaded",
            extra={
                "effect_count": len(effects),
                "rated_actions": len(catalog._base_rates),
                "stacking_mode": stacking.stacking_mode.value,
            },
        )
        return catalog

    # ------------------------------------------------------------------ #
    # Effects
    # ------------------------------------------------------------------ #

    def get_effect_config(self, effect_id: str) -> Optional[EffectConfig]:
        return self._effects.get(effect_id)

    def effect_ids(self) -> List[str]:
        return list(self._effects.keys())

    # ------------------------------------------------------------------ #
    # Rates
    # ------------------------------------------------------------------ #

    def get_base_rate(self, action_type: str) -> Optional[float]:
        return self._base_rates.get(action_type)

    def get_absolute_max_rate(self, action_type: str) -> Optional[float]:
        return self._absolute_max_rates.get(action_type)

    def get_burst_config(self) -> BurstConfig:
        return self._burst

    def get_punishment_config(self) -> PunishmentConfig:
        return self._punishment

    def get_stacking_config(self) -> StackingConfig:
        return self._stacking

    @property
    def rate_window_seconds(self) -> int:
        return self._rate_window_seconds

    # ------------------------------------------------------------------ #
    # Stats & display
    # ------------------------------------------------------------------ #

    def get_stat_baseline(self, stat: str) -> float:
        return self._stat_baselines.get(stat, 0.0)

    def stat_baselines(self, stats: Optional[Iterable[str]] = None) -> Dict[str, float]:
        """Baselines for `stats`, or for every configured stat when omitted."""
        if stats is None:
            return dict(self._stat_baselines)
        return {stat: self.get_stat_baseline(stat) for stat in stats}

    @property
    def player_stats(self) -> Tuple[str, ...]:
        return self._player_stats

    @property
    def global_stats(self) -> Tuple[str, ...]:
        return self._global_stats

    @property
    def display(self) -> DisplayDefaults:
        return self._display
