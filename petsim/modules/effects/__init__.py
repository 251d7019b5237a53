"""Effect engine, catalog and effect services."""

from .catalog import (
    PERMANENT,
    UNLIMITED,
    BurstConfig,
    DisplayDefaults,
    EffectCatalog,
    EffectConfig,
    PunishmentConfig,
    StackingPolicy,
)
from .engine import EffectEngine
from .global_service import GlobalEffectsService
from .models import (
    GLOBAL_SUBJECT,
    AggregateTable,
    EffectInstance,
    EffectSet,
    EffectSnapshot,
    GlobalSubject,
)
from .player_service import PlayerEffectsService
from .stacking import StackingConfig, StackingMode, stacked_multiplier, stacked_rate
from .ticker import EffectTicker

__all__ = [
    "PERMANENT",
    "UNLIMITED",
    "GLOBAL_SUBJECT",
    "AggregateTable",
    "BurstConfig",
    "DisplayDefaults",
    "EffectCatalog",
    "EffectConfig",
    "EffectEngine",
    "EffectInstance",
    "EffectSet",
    "EffectSnapshot",
    "EffectTicker",
    "GlobalEffectsService",
    "GlobalSubject",
    "PlayerEffectsService",
    "PunishmentConfig",
    "StackingConfig",
    "StackingMode",
    "StackingPolicy",
    "stacked_multiplier",
    "stacked_rate",
]
