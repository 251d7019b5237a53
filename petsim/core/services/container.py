"""
Service Container
=================

Purpose
-------
Centralized dependency injection container for the effect, rate-limit and
session services. Provides single instances with their dependencies wired.

Responsibilities
----------------
- Build the EffectCatalog from configuration (fail fast if incomplete)
- Initialize all domain services with required dependencies
- Manage service lifecycle (initialization, ticker, shutdown)
- Provide easy access to services throughout the application

Non-Responsibilities
--------------------
- Configuration loading (ConfigManager is initialized by the caller)
- Transport (whoever replicates snapshots subscribes on the EventBus)

Architecture Notes
------------------
- Receives dependencies (ConfigManager, EventBus) via constructor injection
- Domain services follow the constructor pattern
  `(..., config_manager, event_bus, logger)`
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any, Dict, Optional

from petsim.core.clock import ClockSource, MonotonicClock
from petsim.core.config.manager import ConfigManager
from petsim.core.logging.logger import get_logger, get_logging_health
from petsim.modules.effects import (
    EffectCatalog,
    EffectTicker,
    GlobalEffectsService,
    PlayerEffectsService,
)
from petsim.modules.profile import InMemoryProfileStore
from petsim.modules.ratelimit import RateLimiter, RateLimitService
from petsim.modules.session import PlayerSessionService

if TYPE_CHECKING:
    from logging import Logger

    from petsim.core.event.bus import EventBus

logger = get_logger(__name__)

_EXPECTED_SERVICE_COUNT = 4


class ServiceContainer:
    """
    Dependency injection container for all domain services.

    Usage:
        container = ServiceContainer(config_manager, event_bus, logger)
        await container.initialize()

        await container.sessions.connect(42)
        allowed = await container.rate_limits.check_rate_limit(42, "PurchaseItem")
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        *,
        clock: Optional[ClockSource] = None,
        profile_store: Optional[InMemoryProfileStore] = None,
    ) -> None:
        self._config_manager = config_manager
        self._event_bus = event_bus
        self._logger = logger
        self._clock: ClockSource = clock or MonotonicClock()
        self._profile_store = profile_store

        self._catalog: Optional[EffectCatalog] = None
        self._player_effects: Optional[PlayerEffectsService] = None
        self._global_effects: Optional[GlobalEffectsService] = None
        self._rate_limits: Optional[RateLimitService] = None
        self._sessions: Optional[PlayerSessionService] = None
        self._ticker: Optional[EffectTicker] = None

        self._initialized = False

        self._service_init_times: Dict[str, float] = {}
        self._init_start: Optional[float] = None
        self._init_end: Optional[float] = None

    # ========================================================================
    # Lifecycle
    # ========================================================================

    async def initialize(self) -> None:
        """
        Initialize all services.

        Raises:
            ConfigurationError: If the rate limit configuration is incomplete
        """
        if self._initialized:
            self._logger.warning("ServiceContainer already initialized")
            return

        self._init_start = time.perf_counter()
        self._logger.info("Service container initialization starting...")

        try:
            self._catalog = EffectCatalog.from_config(self._config_manager)
            if self._profile_store is None:
                self._profile_store = InMemoryProfileStore()

            self._player_effects = self._create_service(
                "player_effects",
                PlayerEffectsService,
                catalog=self._catalog,
                clock=self._clock,
                store=self._profile_store,
            )

            self._global_effects = self._create_service(
                "global_effects",
                GlobalEffectsService,
                catalog=self._catalog,
                clock=self._clock,
            )

            self._rate_limits = self._create_service(
                "rate_limits",
                RateLimitService,
                limiter=RateLimiter(self._catalog, self._clock),
                catalog=self._catalog,
                player_effects=self._player_effects,
                global_effects=self._global_effects,
            )

            self._sessions = self._create_service(
                "sessions",
                PlayerSessionService,
                player_effects=self._player_effects,
                rate_limits=self._rate_limits,
                profiles=self._profile_store,
            )

            # Kick/ban ends the session through the registry
            self._rate_limits.set_disconnect_handler(self._sessions.disconnect)

            self._ticker = EffectTicker(
                self._player_effects,
                self._global_effects,
                self._clock,
                self._config_manager,
            )

        except Exception:
            self._logger.error("Service container initialization failed", exc_info=True)
            raise

        self._init_end = time.perf_counter()
        self._initialized = True
        self._logger.info(
            "Service container initialized",
            extra={
                "service_count": len(self._service_init_times),
                "total_init_time_seconds": round(self._init_end - self._init_start, 3),
            },
        )

    def _create_service(self, name: str, cls: type, **dependencies: Any) -> Any:
        """Construct a service with timing; domain dependencies are passed through."""
        start = time.perf_counter()

        try:
            instance = cls(
                **dependencies,
                config_manager=self._config_manager,
                event_bus=self._event_bus,
                logger=get_logger(f"{cls.__module__}.{cls.__name__}"),
            )
        except Exception:
            self._logger.error(f"Failed to initialize {name}", exc_info=True)
            raise

        duration = time.perf_counter() - start
        self._service_init_times[name] = duration
        self._logger.debug(f"Initialized {name} in {duration:.3f}s")

        return instance

    async def shutdown(self) -> None:
        """
        Stop the ticker, end every session with a final save, and release services.
        """
        if not self._initialized:
            return

        self._logger.info("Shutting down service container...")

        if self._ticker is not None:
            await self._ticker.stop()

        if self._sessions is not None:
            for player_id in self._sessions.connected_players():
                await self._sessions.disconnect(player_id, reason="Server shutdown")

        self._initialized = False
        self._logger.info("Service container shut down")

    async def health_check(self) -> Dict[str, bool | float | int | None]:
        logging_health = get_logging_health()
        return {
            "initialized": self._initialized,
            "service_count": len(self._service_init_times),
            "total_init_time_seconds": (
                round(self._init_end - self._init_start, 3)
                if self._init_start and self._init_end
                else None
            ),
            "all_services_available": self._initialized
            and len(self._service_init_times) == _EXPECTED_SERVICE_COUNT,
            "ticker_running": self._ticker.is_running if self._ticker else False,
            "connected_players": len(self._sessions.connected_players()) if self._sessions else 0,
            "logging_initialized": logging_health.initialized,
            "log_records_dropped": logging_health.records_dropped,
        }

    # ========================================================================
    # Services
    # ========================================================================

    @property
    def catalog(self) -> EffectCatalog:
        if not self._initialized or self._catalog is None:
            raise RuntimeError("ServiceContainer not initialized. Call initialize() first.")
        return self._catalog

    @property
    def player_effects(self) -> PlayerEffectsService:
        if not self._initialized or self._player_effects is None:
            raise RuntimeError("ServiceContainer not initialized. Call initialize() first.")
        return self._player_effects

    @property
    def global_effects(self) -> GlobalEffectsService:
        if not self._initialized or self._global_effects is None:
            raise RuntimeError("ServiceContainer not initialized. Call initialize() first.")
        return self._global_effects

    @property
    def rate_limits(self) -> RateLimitService:
        if not self._initialized or self._rate_limits is None:
            raise RuntimeError("ServiceContainer not initialized. Call initialize() first.")
        return self._rate_limits

    @property
    def sessions(self) -> PlayerSessionService:
        if not self._initialized or self._sessions is None:
            raise RuntimeError("ServiceContainer not initialized. Call initialize() first.")
        return self._sessions

    @property
    def ticker(self) -> EffectTicker:
        if not self._initialized or self._ticker is None:
            raise RuntimeError("ServiceContainer not initialized. Call initialize() first.")
        return self._ticker

    @property
    def profile_store(self) -> InMemoryProfileStore:
        if not self._initialized or self._profile_store is None:
            raise RuntimeError("ServiceContainer not initialized. Call initialize() first.")
        return self._profile_store

    # ========================================================================
    # Utility
    # ========================================================================

    @property
    def is_initialized(self) -> bool:
        """Check if container is initialized."""
        return self._initialized


# ============================================================================
# Process-wide container
# ============================================================================

_container: Optional[ServiceContainer] = None


def initialize_service_container(
    config_manager: ConfigManager,
    event_bus: EventBus,
    logger: Logger,
    **kwargs: Any,
) -> ServiceContainer:
    """Create the process-wide container; call `initialize()` on the result."""
    global _container
    if _container is not None:
        logger.warning("Service container already created; returning existing instance")
        return _container
    _container = ServiceContainer(config_manager, event_bus, logger, **kwargs)
    return _container


def get_service_container() -> ServiceContainer:
    if _container is None:
        raise RuntimeError("Service container not created. Call initialize_service_container() first.")
    return _container


async def shutdown_service_container() -> None:
    global _container
    if _container is None:
        return
    await _container.shutdown()
    _container = None
