"""
Shared plumbing for the effect services.

An EffectEngine reports changes synchronously through its listener hook.
The service queues the changed subjects and, once the operation that caused
the change has finished, publishes one full snapshot per subject on the
event bus. Observers always receive complete state, never a delta.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Generic, Hashable, List, TypeVar

from petsim.modules.effects.engine import EffectEngine
from petsim.modules.shared.base_service import BaseService

if TYPE_CHECKING:
    from logging import Logger

    from petsim.core.config.manager import ConfigManager
    from petsim.core.event.bus import EventBus

K = TypeVar("K", bound=Hashable)


class EffectsServiceBase(BaseService, Generic[K]):
    """Base for services that own an EffectEngine and publish its snapshots."""

    SNAPSHOT_EVENT: str = "effects.snapshot"

    def __init__(
        self,
        engine: EffectEngine[K],
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self.engine = engine
        # Insertion-ordered set of subjects awaiting a snapshot
        self._pending: Dict[K, None] = {}
        self.engine.add_listener(self._on_engine_change)

    def _on_engine_change(self, key: K) -> None:
        self._pending[key] = None

    def _snapshot_payload(self, key: K) -> Dict[str, Any]:
        return {
            "effects": self.get_effect_payloads(key),
            "aggregates": self.engine.get_aggregates(key),
        }

    def get_effect_payloads(self, key: K) -> Dict[str, Dict[str, Any]]:
        return {
            effect_id: snapshot.to_payload()
            for effect_id, snapshot in self.engine.snapshot(key).items()
        }

    async def _flush_snapshots(self) -> None:
        while self._pending:
            key = next(iter(self._pending))
            del self._pending[key]
            await self.emit_event(self.SNAPSHOT_EVENT, self._snapshot_payload(key))

    async def tick(self, now: int) -> Dict[K, List[str]]:
        """Count down every live subject and publish snapshots for those that changed."""
        expired = self.engine.tick_all(now)
        await self._flush_snapshots()
        return expired
