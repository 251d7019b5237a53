"""
RateLimitService - effect-aware action throttling
=================================================

Purpose
-------
Admits or denies a player's discrete actions. The rate multiplier combines
the player's own effects with server-wide effects covering the action,
stacked with the configured stacking mode; the RateLimiter applies the
windows, the absolute ceiling and punishment escalation.

Domain
------
- Check an action against burst and rate windows
- Spend uses of consumable effects when an action is admitted
- Warn, kick or temporarily ban repeat offenders
- Clear a player's windows and violations on disconnect

Events
------
- `ratelimit.violation`: every denial
- `ratelimit.warning`: violation count reached the warning threshold
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Optional

from petsim.core.logging.logger import LogContext
from petsim.modules.effects.stacking import stacked_multiplier
from petsim.modules.ratelimit.limiter import PunishmentTier, RateDecision, RateLimiter
from petsim.modules.shared.base_service import BaseService

if TYPE_CHECKING:
    from logging import Logger

    from petsim.core.config.manager import ConfigManager
    from petsim.core.event.bus import EventBus
    from petsim.modules.effects.catalog import EffectCatalog
    from petsim.modules.effects.global_service import GlobalEffectsService
    from petsim.modules.effects.player_service import PlayerEffectsService


DisconnectHandler = Callable[[int, str], Awaitable[Any]]

KICK_REASON = "Excessive rate limit violations"
BAN_REASON = "Rate limit violations - temporary ban"


class RateLimitService(BaseService):
    """
    Service for rate-limited player actions.

    Public Methods
    --------------
    - check_rate_limit() -> Admit or deny an action
    - get_effective_rate() -> Current allowance per rate window
    - get_status() -> Windows, violations and multipliers for a player
    - clear_player() -> Forget a player's windows and violations
    """

    def __init__(
        self,
        limiter: RateLimiter[int],
        catalog: EffectCatalog,
        player_effects: PlayerEffectsService,
        global_effects: GlobalEffectsService,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        disconnect_handler: Optional[DisconnectHandler] = None,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._limiter = limiter
        self._catalog = catalog
        self._player_effects = player_effects
        self._global_effects = global_effects
        self._disconnect_handler = disconnect_handler

    def set_disconnect_handler(self, handler: Optional[DisconnectHandler]) -> None:
        self._disconnect_handler = handler

    # ========================================================================
    # PUBLIC API
    # ========================================================================

    def get_effective_multiplier(self, player_id: int, action_type: str) -> float:
        multipliers = self._player_effects.get_action_multipliers(player_id, action_type)
        multipliers += self._global_effects.get_action_multipliers(action_type)
        return stacked_multiplier(multipliers, self._catalog.get_stacking_config())

    def get_effective_rate(self, player_id: int, action_type: str) -> Optional[float]:
        """Allowed actions per window after effects and the ceiling; None if unlimited."""
        return self._limiter.effective_rate(
            action_type, self.get_effective_multiplier(player_id, action_type)
        )

    async def check_rate_limit(self, player_id: int, action_type: str) -> bool:
        """
        Admit or deny one action.

        Returns True when admitted. Denials never raise; punishment is applied
        as a side effect and the caller only sees False. Players that are not
        connected are always denied.
        """
        async with LogContext(subject_id=player_id, action_type=action_type, component="ratelimit"):
            # Disconnected players leave no windows behind
            if not self._player_effects.is_connected(player_id):
                self.log.debug("Action from disconnected player denied", extra={"subject_id": player_id})
                return False

            multiplier = self.get_effective_multiplier(player_id, action_type)
            decision = self._limiter.check(player_id, action_type, multiplier)

            if decision.allowed:
                await self._player_effects.consume_use(player_id, action_type)
                return True

            await self._handle_violation(player_id, decision)
            return False

    def get_status(self, player_id: int) -> Dict[str, Any]:
        status = self._limiter.get_status(player_id)
        status["player_id"] = player_id
        return status

    def clear_player(self, player_id: int) -> bool:
        cleared = self._limiter.clear(player_id)
        if cleared:
            self.log.debug("Rate limit state cleared", extra={"subject_id": player_id})
        return cleared

    # ========================================================================
    # PUNISHMENT
    # ========================================================================

    async def _handle_violation(self, player_id: int, decision: RateDecision) -> None:
        payload = {
            "player_id": player_id,
            "action_type": decision.action_type,
            "violation": decision.violation.value if decision.violation else None,
            "violation_count": decision.violation_count,
            "punishment": decision.punishment.value,
        }
        await self.emit_event("ratelimit.violation", payload)

        if decision.punishment is PunishmentTier.BAN:
            self.log.error(
                "Player exceeded ban threshold",
                extra={"subject_id": player_id, "violation_count": decision.violation_count},
            )
            await self._disconnect(player_id, BAN_REASON)
        elif decision.punishment is PunishmentTier.KICK:
            self.log.error(
                "Player exceeded kick threshold",
                extra={"subject_id": player_id, "violation_count": decision.violation_count},
            )
            await self._disconnect(player_id, KICK_REASON)
        elif decision.punishment is PunishmentTier.WARN:
            self.log.info(
                "Player warned for rate limit violations",
                extra={"subject_id": player_id, "violation_count": decision.violation_count},
            )
            await self.emit_event("ratelimit.warning", payload)

    async def _disconnect(self, player_id: int, reason: str) -> None:
        if self._disconnect_handler is None:
            self.log.error(
                "No disconnect handler configured; punishment not enforced",
                extra={"subject_id": player_id, "reason": reason},
            )
            return
        try:
            await self._disconnect_handler(player_id, reason)
        except Exception as e:
            self.log_error("disconnect_player", e, subject_id=player_id, reason=reason)
