"""
GlobalEffectsService - server-wide effects.

Single subject (`GLOBAL_SUBJECT`), no persistence and no stacking limit.
Publishes `effects.global.snapshot` ({"effects", "aggregates"}) after
every change.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional

from petsim.modules.effects.base_service import EffectsServiceBase
from petsim.modules.effects.catalog import EffectCatalog
from petsim.modules.effects.engine import EffectEngine
from petsim.modules.effects.models import GLOBAL_SUBJECT, GlobalSubject

if TYPE_CHECKING:
    from logging import Logger

    from petsim.core.clock import ClockSource
    from petsim.core.config.manager import ConfigManager
    from petsim.core.event.bus import EventBus


class GlobalEffectsService(EffectsServiceBase[GlobalSubject]):
    SNAPSHOT_EVENT = "effects.global.snapshot"

    def __init__(
        self,
        catalog: EffectCatalog,
        clock: ClockSource,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
    ) -> None:
        engine: EffectEngine[GlobalSubject] = EffectEngine(
            catalog,
            clock,
            None,
            name="global",
            stat_names=catalog.global_stats or None,
            enforce_stack_limit=False,
            default_icon=catalog.display.global_icon,
            default_reason=catalog.display.global_reason,
        )
        engine.register_subject(GLOBAL_SUBJECT)
        super().__init__(engine, config_manager, event_bus, logger)

    async def apply_global_effect(
        self,
        effect_id: str,
        duration: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> bool:
        applied = self.engine.apply_effect(GLOBAL_SUBJECT, effect_id, duration, reason=reason)
        await self._flush_snapshots()
        if applied:
            self.log_operation(
                "apply_global_effect", effect_id=effect_id, duration=duration, reason=reason
            )
        return applied

    async def remove_global_effect(self, effect_id: str) -> bool:
        removed = self.engine.remove_effect(GLOBAL_SUBJECT, effect_id)
        await self._flush_snapshots()
        return removed

    async def clear_all_global_effects(self) -> int:
        cleared = self.engine.clear_all(GLOBAL_SUBJECT)
        await self._flush_snapshots()
        return cleared

    def get_active_global_effects(self) -> Dict[str, Dict[str, Any]]:
        return self.get_effect_payloads(GLOBAL_SUBJECT)

    def get_global_aggregate(self, stat: str) -> float:
        return self.engine.get_effective_stat(GLOBAL_SUBJECT, stat)

    def get_all_global_aggregates(self) -> Dict[str, float]:
        return self.engine.get_aggregates(GLOBAL_SUBJECT)

    def get_action_multipliers(self, action_type: str) -> List[float]:
        return self.engine.get_action_multipliers(GLOBAL_SUBJECT, action_type)
