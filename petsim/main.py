"""
Petsim Effects Server - Application Entry Point
===============================================

Bootstrap
---------
- Config validation
- ConfigManager initialization (YAML tree)
- Event Bus (global singleton)
- Service container initialization
- Effect ticker
- Graceful shutdown
"""

import asyncio
import signal
import sys

from petsim.core.config.config import Config
from petsim.core.config.manager import ConfigManager
from petsim.core.event import event_bus
from petsim.core.logging.logger import get_logger, shutdown_logging
from petsim.core.services.container import (
    ServiceContainer,
    initialize_service_container,
    shutdown_service_container,
)

logger = get_logger(__name__)


# ============================================================================
# Application Bootstrap
# ============================================================================

async def _startup() -> ServiceContainer:
    """Initialize all infrastructure components before accepting players."""
    logger.info("========== PETSIM EFFECTS INITIALIZATION START ==========")

    # Step 1: Validate configuration early
    try:
        Config.validate()
        logger.info("✓ Configuration validated")
    except Exception as exc:
        logger.critical(f"Configuration validation failed: {exc}")
        raise

    # Step 2: Initialize config manager
    try:
        config_manager = ConfigManager(Config.CONFIG_DIR)
        config_manager.initialize()
        logger.info("✓ Config manager initialized")
    except Exception as exc:
        logger.critical(f"Config manager initialization failed: {exc}", exc_info=True)
        raise

    # Step 3: Event bus
    event_bus.configure(config_manager)
    logger.info("✓ Event bus available")

    # Step 4: Initialize service container
    try:
        container = initialize_service_container(
            config_manager=config_manager,
            event_bus=event_bus,
            logger=get_logger("petsim.core.services.container"),
        )
        await container.initialize()
        logger.info("✓ Service container initialized")
    except Exception as exc:
        logger.critical(f"Service container initialization failed: {exc}", exc_info=True)
        raise

    # Step 5: Start the effect ticker
    container.ticker.start()
    logger.info("✓ Effect ticker started")

    logger.info("========== INFRASTRUCTURE INITIALIZED SUCCESSFULLY ==========")
    return container


# ============================================================================
# Application Shutdown
# ============================================================================

async def _shutdown() -> None:
    """Stop the ticker, flush player effects, and release infrastructure."""
    logger.info("========== PETSIM EFFECTS SHUTDOWN START ==========")

    # Step 1: Shutdown service container (final saves happen here)
    try:
        await shutdown_service_container()
        logger.info("✓ Service container shut down")
    except Exception as exc:
        logger.error(f"Service container shutdown error: {exc}", exc_info=True)

    # Step 2: Let fire-and-forget listeners finish
    try:
        await event_bus.drain()
        logger.info("✓ Event bus drained")
    except Exception as exc:
        logger.error(f"Event bus drain error: {exc}", exc_info=True)

    logger.info("========== SHUTDOWN COMPLETE ==========")
    shutdown_logging()


# ============================================================================
# Application Entrypoint
# ============================================================================

async def main() -> None:
    """
    Lifecycle:
        1. Validate configuration
        2. Initialize infrastructure (ConfigManager, EventBus, Services)
        3. Run until cancelled
        4. Handle shutdown gracefully
    """
    stop_event = asyncio.Event()

    try:
        await _startup()

        logger.info("Petsim effects server running")
        await stop_event.wait()

    except asyncio.CancelledError:
        logger.warning("Asyncio task cancellation received; shutting down gracefully.")
        raise

    except KeyboardInterrupt:
        logger.info("Manual shutdown via keyboard interrupt.")

    except Exception as exc:
        logger.critical(f"Fatal startup error: {exc}", exc_info=True)
        sys.exit(1)

    finally:
        await _shutdown()


# ============================================================================
# Process Startup
# ============================================================================

def _install_signal_handlers(loop: asyncio.AbstractEventLoop, task: "asyncio.Task[None]") -> None:
    """Cancel the main task on SIGTERM so shutdown runs."""
    try:
        loop.add_signal_handler(signal.SIGTERM, task.cancel)
        logger.debug("SIGTERM handler installed")
    except NotImplementedError:
        logger.debug("SIGTERM not supported on this platform (likely Windows)")


if __name__ == "__main__":
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    main_task = loop.create_task(main())
    _install_signal_handlers(loop, main_task)

    try:
        loop.run_until_complete(main_task)
    except (KeyboardInterrupt, asyncio.CancelledError):
        logger.info("Server stopped.")
    except Exception as exc:
        logger.critical(f"Startup failure: {exc}", exc_info=True)
        sys.exit(1)
    finally:
        loop.close()
