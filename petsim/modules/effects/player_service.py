"""
PlayerEffectsService - per-player effects
=========================================

Purpose
-------
Owns the per-player EffectEngine, ties it to player sessions and the
profile store, and publishes `effects.player.snapshot` with the full
effect state after every change.

Domain
------
- Restore effects when a player connects, final save when they leave
- Apply, re-apply and remove timed effects
- Grant permanent effects (game-pass perks) that are not in the catalog
- Spend uses of consumable effects on admitted actions
- Read effective stats and rate multipliers

Events
------
- `effects.player.snapshot`: {"player_id", "effects", "aggregates"}
"""

from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from petsim.modules.effects.base_service import EffectsServiceBase
from petsim.modules.effects.catalog import PERMANENT, UNLIMITED, EffectCatalog, EffectConfig
from petsim.modules.effects.engine import EffectEngine

if TYPE_CHECKING:
    from logging import Logger

    from petsim.core.clock import ClockSource
    from petsim.core.config.manager import ConfigManager
    from petsim.core.event.bus import EventBus
    from petsim.modules.profile.store import ProfileStore


PERMANENT_PREFIX = "permanent_"


class PlayerEffectsService(EffectsServiceBase[int]):
    """
    Service for player-scoped effects.

    Public Methods
    --------------
    - player_connected() -> Register the player and restore persisted effects
    - player_disconnected() -> Final save and teardown
    - apply_effect() -> Apply a catalog effect
    - apply_permanent_effect() -> Grant a never-expiring effect
    - remove_effect() / clear_all_effects()
    - consume_use() -> Spend a use of consumable effects for an action
    - save_all() -> Flush every player's persisted map
    """

    SNAPSHOT_EVENT = "effects.player.snapshot"

    def __init__(
        self,
        catalog: EffectCatalog,
        clock: ClockSource,
        store: Optional[ProfileStore],
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
    ) -> None:
        self._catalog = catalog
        engine: EffectEngine[int] = EffectEngine(
            catalog,
            clock,
            store,
            name="player",
            stat_names=catalog.player_stats or None,
            enforce_stack_limit=True,
            fallback_config=self._restore_permanent_config,
        )
        super().__init__(engine, config_manager, event_bus, logger)

    def _snapshot_payload(self, key: int) -> Dict[str, Any]:
        return {"player_id": key, **super()._snapshot_payload(key)}

    # ========================================================================
    # Session lifecycle
    # ========================================================================

    async def player_connected(self, player_id: int) -> int:
        """
        Register a player and restore their saved effects.

        Returns the number of effects restored. A snapshot is always
        published so the client starts from full state.
        """
        self.engine.register_subject(player_id)
        restored = self.engine.load_from_persistence(player_id)

        self._pending[player_id] = None
        await self._flush_snapshots()

        self.log_operation("player_connected", subject_id=player_id, restored=restored)
        return restored

    async def player_disconnected(self, player_id: int) -> bool:
        self._pending.pop(player_id, None)
        removed = self.engine.unregister_subject(player_id, final_save=True)
        if removed:
            self.log_operation("player_disconnected", subject_id=player_id)
        return removed

    # ========================================================================
    # Mutations
    # ========================================================================

    async def apply_effect(
        self, player_id: int, effect_id: str, duration: Optional[int] = None
    ) -> bool:
        applied = self.engine.apply_effect(player_id, effect_id, duration)
        await self._flush_snapshots()
        return applied

    async def apply_permanent_effect(
        self,
        player_id: int,
        effect_id: str,
        effect_config: Optional[EffectConfig] = None,
    ) -> bool:
        """
        Grant a permanent version of an effect, stored as `permanent_<effect_id>`.

        The definition comes from `effect_config` when given, otherwise from
        the catalog entry for `effect_id`; ids in neither produce a
        display-only perk with no stat modifiers.
        """
        permanent_id = f"{PERMANENT_PREFIX}{effect_id}"
        base = effect_config or self._catalog.get_effect_config(effect_id)
        config = self._permanent_config(permanent_id, effect_id, base)

        applied = self.engine.apply_effect(player_id, permanent_id, PERMANENT, config)
        await self._flush_snapshots()

        if applied:
            self.log_operation(
                "apply_permanent_effect", subject_id=player_id, effect_id=permanent_id
            )
        return applied

    def _permanent_config(
        self, permanent_id: str, source_id: str, base: Optional[EffectConfig]
    ) -> EffectConfig:
        display = self._catalog.display
        if base is None:
            return EffectConfig(
                effect_id=permanent_id,
                duration=PERMANENT,
                description=display.permanent_description,
                display_name=source_id,
                icon=display.permanent_icon,
            )
        return replace(
            base,
            effect_id=permanent_id,
            duration=PERMANENT,
            max_uses=UNLIMITED,
            consume_on_use=False,
            description=base.description or display.permanent_description,
            display_name=base.display_name or source_id,
            icon=base.icon or display.permanent_icon,
        )

    def _restore_permanent_config(self, effect_id: str) -> Optional[EffectConfig]:
        if not effect_id.startswith(PERMANENT_PREFIX):
            return None
        source_id = effect_id[len(PERMANENT_PREFIX):]
        return self._permanent_config(
            effect_id, source_id, self._catalog.get_effect_config(source_id)
        )

    async def remove_effect(self, player_id: int, effect_id: str) -> bool:
        removed = self.engine.remove_effect(player_id, effect_id)
        await self._flush_snapshots()
        return removed

    async def clear_all_effects(self, player_id: int) -> int:
        cleared = self.engine.clear_all(player_id)
        await self._flush_snapshots()
        return cleared

    async def consume_use(self, player_id: int, action_type: str) -> List[str]:
        depleted = self.engine.consume_use(player_id, action_type)
        await self._flush_snapshots()
        return depleted

    async def save_all(self) -> int:
        saved = self.engine.save_all()
        self.log.debug("Player effects saved", extra={"saved": saved})
        return saved

    # ========================================================================
    # Reads
    # ========================================================================

    def get_effective_stat(self, player_id: int, stat: str) -> float:
        return self.engine.get_effective_stat(player_id, stat)

    def get_aggregates(self, player_id: int) -> Dict[str, float]:
        return self.engine.get_aggregates(player_id)

    def get_active_effects(self, player_id: int) -> Dict[str, Dict[str, Any]]:
        return self.get_effect_payloads(player_id)

    def get_action_multipliers(self, player_id: int, action_type: str) -> List[float]:
        return self.engine.get_action_multipliers(player_id, action_type)

    def is_connected(self, player_id: int) -> bool:
        return self.engine.has_subject(player_id)
