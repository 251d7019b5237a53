"""
PlayerSessionService - explicit player registry.

Players are keyed by their stable integer id. `connect` opens the profile
session and restores effects; `disconnect` performs the final effect save,
drops effect state and rate-limit windows, then releases the profile.

Events
------
- `player.connected`: {"player_id", "restored_effects"}
- `player.disconnected`: {"player_id", "reason"}
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, List, Mapping, Optional

from petsim.modules.shared.base_service import BaseService

if TYPE_CHECKING:
    from logging import Logger

    from petsim.core.config.manager import ConfigManager
    from petsim.core.event.bus import EventBus
    from petsim.modules.effects.player_service import PlayerEffectsService
    from petsim.modules.profile.store import InMemoryProfileStore
    from petsim.modules.ratelimit.service import RateLimitService


class PlayerSessionService(BaseService):
    def __init__(
        self,
        player_effects: PlayerEffectsService,
        rate_limits: RateLimitService,
        profiles: Optional[InMemoryProfileStore],
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._player_effects = player_effects
        self._rate_limits = rate_limits
        self._profiles = profiles
        self._connected: dict[int, None] = {}

    async def connect(
        self, player_id: int, profile_data: Optional[Mapping[str, Any]] = None
    ) -> int:
        """Start a session; returns the number of effects restored."""
        if player_id in self._connected:
            self.log.warning("Player already connected", extra={"subject_id": player_id})
            return 0

        if self._profiles is not None:
            self._profiles.load_profile(player_id, profile_data)

        restored = await self._player_effects.player_connected(player_id)
        self._connected[player_id] = None

        await self.emit_event(
            event_type="player.connected",
            data={"player_id": player_id, "restored_effects": restored},
        )
        self.log.info(
            f"Player {player_id} connected",
            extra={"subject_id": player_id, "restored_effects": restored},
        )
        return restored

    async def disconnect(self, player_id: int, reason: Optional[str] = None) -> bool:
        """End a session. Safe to call for players that are not connected."""
        if player_id not in self._connected:
            return False

        del self._connected[player_id]
        await self._player_effects.player_disconnected(player_id)
        self._rate_limits.clear_player(player_id)

        if self._profiles is not None:
            self._profiles.release_profile(player_id)

        await self.emit_event(
            event_type="player.disconnected",
            data={"player_id": player_id, "reason": reason},
        )
        self.log.info(
            f"Player {player_id} disconnected",
            extra={"subject_id": player_id, "reason": reason},
        )
        return True

    def is_connected(self, player_id: int) -> bool:
        return player_id in self._connected

    def connected_players(self) -> List[int]:
        return list(self._connected)
