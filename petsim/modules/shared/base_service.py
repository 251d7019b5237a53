"""
Base Service Foundation

Purpose
-------
Provides the foundational class for the effect, rate-limit and session
services. Services own their engines, enforce gameplay rules, and publish
state snapshots so client replication stays decoupled.

Design Notes
------------
This base class provides:
- Structured logging with operation context
- Event emission helpers
- Common error logging

What this class does NOT do:
- Own persistence (that's the ProfileStore's job)
- Contain effect or rate-limit arithmetic (that lives in the engines)

Usage
-----
    class PlayerEffectsService(BaseService):
        def __init__(self, engine, config_manager, event_bus, logger):
            super().__init__(config_manager, event_bus, logger)
            self.engine = engine
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

from petsim.core.exceptions import should_alert

if TYPE_CHECKING:
    from logging import Logger

    from petsim.core.config.manager import ConfigManager
    from petsim.core.event.bus import EventBus


class BaseService:
    """
    Base class for all domain services.

    Args:
        config_manager: Application configuration manager
        event_bus: Event bus for cross-module communication
        logger: Structured logger instance
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
    ) -> None:
        self._config = config_manager
        self._events = event_bus
        self.log = logger

    async def emit_event(
        self,
        event_type: str,
        data: Dict[str, Any],
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Publish a domain event.

        Args:
            event_type: Type/name of the event
            data: Event payload data
            context: Optional additional context merged into the payload
        """
        await self._events.publish(event_type, {**data, **(context or {})})

    def log_operation(self, operation: str, **context: Any) -> None:
        self.log.info(
            f"Service operation: {operation}",
            extra={"operation": operation, **context},
        )

    def log_error(
        self,
        operation: str,
        error: Exception,
        **context: Any,
    ) -> None:
        """
        Log a service error with full context.

        Errors whose severity does not warrant alerting are logged as warnings.
        """
        log_fn = self.log.error if should_alert(error) else self.log.warning
        log_fn(
            f"Service error during {operation}: {str(error)}",
            extra={
                "operation": operation,
                "error_type": type(error).__name__,
                "error_message": str(error),
                **context,
            },
        )
