"""
EventBus: async pub/sub with tiered concurrency.

Purpose
-------
Decouples the effect and rate-limit services from whoever observes them
(client replication, analytics, moderation). Services publish full state
snapshots; observers subscribe by exact name or wildcard.

Responsibilities
----------------
- Register/unregister event listeners with priorities
- Publish events to all matching listeners (exact + wildcard)
- Execute listeners according to the tiered concurrency model
- Error isolation (one failing listener never blocks others)
- Metrics collection and introspection

Design Decisions
----------------
- **Instance-based**: allows isolated buses in tests
- **Config-driven timeouts**: listener timeouts read from ConfigManager
  (`effects.events.*_timeout_seconds`) when one is supplied

Dependencies
------------
- petsim.core.logging.logger (structured logging)
- petsim.core.event.registry / scheduler / metrics
"""

from __future__ import annotations

import inspect
from typing import TYPE_CHECKING, Any, Optional

from petsim.core.event.metrics import EventMetrics, EventMetricsRecorder
from petsim.core.event.registry import ListenerRegistry
from petsim.core.event.scheduler import EventScheduler
from petsim.core.event.types import (
    CallbackType,
    EventListener,
    EventPayload,
    ListenerPriority,
)
from petsim.core.logging.logger import get_logger, set_log_context

if TYPE_CHECKING:
    from petsim.core.config.manager import ConfigManager

logger = get_logger(__name__)


class EventBus:
    """
    Tiered-concurrency EventBus.

    - CRITICAL: sequential, ordered, awaited with timeout
    - HIGH: sequential, ordered, awaited with timeout
    - NORMAL: concurrent (asyncio.gather), awaited
    - LOW: fire-and-forget background tasks

    Examples
    --------
    >>> bus = EventBus()
    >>> bus.subscribe("effects.player.snapshot", replicate, priority=ListenerPriority.HIGH)
    >>> await bus.publish("effects.player.snapshot", {"subject_id": 42, "effects": {}})
    """

    def __init__(
        self,
        registry: Optional[ListenerRegistry] = None,
        scheduler: Optional[EventScheduler] = None,
        config_manager: Optional[ConfigManager] = None,
        *,
        enable_metrics: bool = True,
        critical_timeout_seconds: Optional[float] = None,
        high_timeout_seconds: Optional[float] = None,
    ) -> None:
        self._config_manager = config_manager
        self._registry = registry or ListenerRegistry()
        self._scheduler = scheduler or EventScheduler()
        self._metrics = EventMetricsRecorder()
        self._metrics_enabled = enable_metrics

        self._critical_timeout = self._load_timeout(
            key="effects.events.critical_timeout_seconds",
            override=critical_timeout_seconds,
            default=5.0,
        )
        self._high_timeout = self._load_timeout(
            key="effects.events.high_timeout_seconds",
            override=high_timeout_seconds,
            default=5.0,
        )

        logger.debug(
            "EventBus initialized",
            extra={
                "metrics_enabled": self._metrics_enabled,
                "critical_timeout_seconds": self._critical_timeout,
                "high_timeout_seconds": self._high_timeout,
            },
        )

    # ------------------------------------------------------------------ #
    # Configuration Loading
    # ------------------------------------------------------------------ #

    def _load_timeout(self, key: str, override: Optional[float], default: float) -> float:
        """Resolve a timeout: override → config → default."""
        if override is not None:
            return float(override)
        if self._config_manager is None:
            return float(default)

        value = self._config_manager.get(key, default)
        try:
            return float(value)
        except (TypeError, ValueError):
            logger.warning(
                "Invalid listener timeout in config, using default",
                extra={"config_key": key, "value": value, "default_value": default},
            )
            return float(default)

    def configure(self, config_manager: ConfigManager) -> None:
        """Re-read listener timeouts from a (re)initialized ConfigManager."""
        self._config_manager = config_manager
        self._critical_timeout = self._load_timeout(
            "effects.events.critical_timeout_seconds", None, self._critical_timeout
        )
        self._high_timeout = self._load_timeout(
            "effects.events.high_timeout_seconds", None, self._high_timeout
        )

    # ------------------------------------------------------------------ #
    # Subscription API
    # ------------------------------------------------------------------ #

    @staticmethod
    def _validate_callback_signature(callback: CallbackType) -> None:
        """Ensure callback accepts exactly one parameter (the payload)."""
        try:
            sig = inspect.signature(callback)
        except (TypeError, ValueError):
            return

        params = list(sig.parameters.values())
        positional = [
            p for p in params if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD)
        ]
        required = [p for p in positional if p.default is p.empty]
        accepts_varargs = any(p.kind == p.VAR_POSITIONAL for p in params)

        if len(required) > 1 or (not positional and not accepts_varargs):
            callback_name = getattr(callback, "__qualname__", None) or repr(callback)
            raise ValueError(
                f"Event listener must accept exactly 1 parameter (EventPayload), "
                f"got {len(positional)} parameters for '{callback_name}'"
            )

    def subscribe(
        self,
        event_name: str,
        callback: CallbackType,
        *,
        priority: ListenerPriority = ListenerPriority.NORMAL,
        identifier: Optional[str] = None,
        once: bool = False,
        allow_duplicates: bool = False,
    ) -> str:
        """
        Subscribe a callback to an event or wildcard pattern.

        Returns
        -------
        str:
            The listener identifier (for unsubscribing later).

        Raises
        ------
        ValueError:
            If the callback does not take exactly one parameter.
        """
        self._validate_callback_signature(callback)

        listener = EventListener.from_callback(
            event_name=event_name,
            callback=callback,
            priority=priority,
            identifier=identifier,
            once=once,
        )

        added = self._registry.add_listener(
            event_name=event_name,
            listener=listener,
            allow_duplicates=allow_duplicates,
        )

        if added:
            if self._metrics_enabled:
                self._metrics.increment_listener_count()
            logger.debug(
                "EventBus: subscribed listener",
                extra={
                    "event_name": event_name,
                    "listener_id": listener.identifier,
                    "priority": listener.priority.name,
                    "once": listener.once,
                },
            )
        else:
            logger.warning(
                "EventBus: duplicate listener prevented",
                extra={"event_name": event_name, "listener_id": listener.identifier},
            )

        return listener.identifier

    def unsubscribe(self, event_name: str, identifier: str) -> bool:
        removed = self._registry.remove_listener(event_name=event_name, identifier=identifier)

        if removed:
            if self._metrics_enabled:
                self._metrics.decrement_listener_count()
            logger.debug(
                "EventBus: unsubscribed listener",
                extra={"event_name": event_name, "listener_id": identifier},
            )

        return removed

    def clear(self) -> None:
        """Remove all listeners from all events."""
        total = self._registry.clear_all()
        self._metrics.reset_listener_count()
        logger.info("EventBus: cleared all listeners", extra={"previous_listener_count": total})

    # ------------------------------------------------------------------ #
    # Publish API
    # ------------------------------------------------------------------ #

    async def publish(self, event_name: str, data: EventPayload) -> list[Any]:
        """
        Publish an event to all subscribed listeners.

        Returns
        -------
        list[Any]:
            Results from CRITICAL/HIGH/NORMAL listeners.
        """
        if self._metrics_enabled:
            self._metrics.record_publish(event_name)

        set_log_context(event_name=event_name)

        listeners = self._registry.extract_listeners_for_event(event_name=event_name)
        if not listeners:
            return []

        logger.debug(
            "EventBus: executing listeners",
            extra={"event_name": event_name, "listener_count": len(listeners)},
        )

        return await self._scheduler.execute(
            event_name=event_name,
            payload=data,
            listeners=listeners,
            metrics=self._metrics if self._metrics_enabled else None,
            logger=logger,
            critical_timeout=self._critical_timeout,
            high_timeout=self._high_timeout,
        )

    async def drain(self) -> None:
        """Wait for fire-and-forget listeners still running."""
        await self._scheduler.drain()

    # ------------------------------------------------------------------ #
    # Metrics & Introspection
    # ------------------------------------------------------------------ #

    def get_metrics(self) -> Optional[EventMetrics]:
        if not self._metrics_enabled:
            return None
        return self._metrics.snapshot()

    def get_metrics_summary(self) -> dict[str, Any]:
        metrics = self.get_metrics()
        if metrics is None:
            return {}
        return metrics.get_summary()

    def get_listener_count(self, event_name: Optional[str] = None) -> int:
        if event_name:
            return self._registry.get_listener_count_for_event(event_name)
        return self._registry.get_total_listener_count()
