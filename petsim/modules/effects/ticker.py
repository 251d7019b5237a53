"""
EffectTicker: the single repeating task that drives effect countdowns.

Every `effects.tick_interval_seconds` it ticks the player and global
services with one shared `now`; every `effects.save_interval_seconds` it
flushes the persisted effect maps so per-tick countdowns never turn into
per-tick writes.
"""

from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING, Any, Dict, Optional

from petsim.core.logging.logger import get_logger

if TYPE_CHECKING:
    from petsim.core.clock import ClockSource
    from petsim.core.config.manager import ConfigManager
    from petsim.modules.effects.global_service import GlobalEffectsService
    from petsim.modules.effects.player_service import PlayerEffectsService

logger = get_logger(__name__)


@dataclass
class TickerMetrics:
    ticks: int = 0
    saves: int = 0
    expired: int = 0
    errors: int = 0


class EffectTicker:
    def __init__(
        self,
        player_effects: PlayerEffectsService,
        global_effects: GlobalEffectsService,
        clock: ClockSource,
        config_manager: Optional[ConfigManager] = None,
        *,
        tick_interval: Optional[float] = None,
        save_interval: Optional[float] = None,
    ) -> None:
        self._player_effects = player_effects
        self._global_effects = global_effects
        self._clock = clock

        if tick_interval is None:
            tick_interval = (
                config_manager.get("effects.tick_interval_seconds", 1.0) if config_manager else 1.0
            )
        if save_interval is None:
            save_interval = (
                config_manager.get("effects.save_interval_seconds", 30.0) if config_manager else 30.0
            )

        self._tick_interval = float(tick_interval)
        self._save_interval = float(save_interval)
        self._last_save: Optional[int] = None
        self._task: Optional[asyncio.Task[None]] = None
        self._is_running = False
        self.metrics = TickerMetrics()

    @property
    def is_running(self) -> bool:
        return self._is_running

    @property
    def tick_interval(self) -> float:
        return self._tick_interval

    @property
    def save_interval(self) -> float:
        return self._save_interval

    # ═══════════════════════════════════════════════════════════════════════
    # LIFECYCLE
    # ═══════════════════════════════════════════════════════════════════════

    def start(self) -> None:
        if self._is_running:
            logger.warning("EffectTicker already running")
            return

        self._is_running = True
        self._last_save = self._clock.now()
        self._task = asyncio.create_task(self._tick_loop())
        logger.info(
            "EffectTicker started",
            extra={
                "tick_interval_seconds": self._tick_interval,
                "save_interval_seconds": self._save_interval,
            },
        )

    async def stop(self) -> None:
        """Stop the loop and flush every player's effects one last time."""
        if not self._is_running:
            return

        self._is_running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        await self._save(self._clock.now())
        logger.info("EffectTicker stopped", extra=asdict(self.metrics))

    # ═══════════════════════════════════════════════════════════════════════
    # TICKING
    # ═══════════════════════════════════════════════════════════════════════

    async def _tick_loop(self) -> None:
        logger.debug("Effect tick loop started")

        while self._is_running:
            try:
                await asyncio.sleep(self._tick_interval)
                await self.run_once(self._clock.now())

            except asyncio.CancelledError:
                logger.debug("Effect tick loop cancelled")
                break

            except Exception as exc:
                self.metrics.errors += 1
                logger.error(
                    "Error in effect tick loop",
                    extra={"error": str(exc), "error_type": type(exc).__name__},
                    exc_info=True,
                )

    async def run_once(self, now: int) -> Dict[str, Any]:
        """
        One tick over every live subject, plus a save when the interval elapsed.

        A failure in one service is logged and does not stop the other.
        """
        self.metrics.ticks += 1
        expired = 0

        for label, service in (("player", self._player_effects), ("global", self._global_effects)):
            try:
                results = await service.tick(now)
            except Exception as exc:
                self.metrics.errors += 1
                logger.error(
                    "Effect tick failed",
                    extra={"scope": label, "error": str(exc), "error_type": type(exc).__name__},
                    exc_info=True,
                )
                continue
            expired += sum(len(ids) for ids in results.values())

        self.metrics.expired += expired

        saved = False
        if self._last_save is None:
            self._last_save = now
        elif now - self._last_save >= self._save_interval:
            await self._save(now)
            saved = True

        return {"expired": expired, "saved": saved}

    async def _save(self, now: int) -> None:
        try:
            await self._player_effects.save_all()
        except Exception as exc:
            self.metrics.errors += 1
            logger.error(
                "Periodic effect save failed",
                extra={"error": str(exc), "error_type": type(exc).__name__},
                exc_info=True,
            )
            return
        self.metrics.saves += 1
        self._last_save = now
