"""
EventScheduler: tiered execution of event listeners.

Execution Tiers
---------------
- CRITICAL / HIGH: sequential, awaited, timeout protected
- NORMAL: concurrent (asyncio.gather), awaited
- LOW: fire-and-forget background tasks

Sync callbacks run inline on the event loop. Effect and rate-limit state is
owned by the loop thread, so listeners must never be moved to a worker thread.
"""

from __future__ import annotations

import asyncio
import inspect
from logging import Logger
from typing import Any, Optional

from petsim.core.event.metrics import EventMetricsRecorder
from petsim.core.event.types import EventListener, EventPayload, ListenerPriority


def handle_listener_error(
    *,
    logger: Logger,
    event_name: str,
    listener: EventListener,
    exc: BaseException,
    metrics: Optional[EventMetricsRecorder],
) -> None:
    """Log a listener failure and record it; never raises."""
    if metrics is not None:
        metrics.record_error(event_name)

    logger.error(
        "EventBus listener error",
        extra={
            "event_name": event_name,
            "listener_id": listener.identifier,
            "priority": listener.priority.name,
            "error": str(exc),
            "error_type": type(exc).__name__,
        },
        exc_info=(type(exc), exc, exc.__traceback__),
    )


class EventScheduler:
    """Executes listeners according to their priority tier."""

    def __init__(self) -> None:
        # Strong references keep LOW-tier tasks alive until they finish
        self._background_tasks: set[asyncio.Task[Any]] = set()

    async def execute(
        self,
        *,
        event_name: str,
        payload: EventPayload,
        listeners: list[EventListener],
        metrics: Optional[EventMetricsRecorder],
        logger: Logger,
        critical_timeout: Optional[float],
        high_timeout: Optional[float],
    ) -> list[Any]:
        """
        Run listeners tier by tier.

        Returns
        -------
        list[Any]:
            Results from CRITICAL/HIGH/NORMAL listeners. LOW-tier listeners
            are fire-and-forget and not included.
        """
        by_tier: dict[ListenerPriority, list[EventListener]] = {p: [] for p in ListenerPriority}
        for listener in listeners:
            by_tier[listener.priority].append(listener)

        results: list[Any] = []

        for tier, timeout in (
            (ListenerPriority.CRITICAL, critical_timeout),
            (ListenerPriority.HIGH, high_timeout),
        ):
            for listener in by_tier[tier]:
                results.append(
                    await self._run_with_timeout(
                        listener=listener,
                        event_name=event_name,
                        payload=payload,
                        metrics=metrics,
                        logger=logger,
                        timeout=timeout,
                    )
                )

        normal = by_tier[ListenerPriority.NORMAL]
        if normal:
            results.extend(
                await asyncio.gather(
                    *[
                        self._run_listener(
                            listener=lst,
                            event_name=event_name,
                            payload=payload,
                            metrics=metrics,
                            logger=logger,
                        )
                        for lst in normal
                    ]
                )
            )

        low = by_tier[ListenerPriority.LOW]
        if low:
            loop = asyncio.get_running_loop()
            for listener in low:
                task = loop.create_task(
                    self._run_listener(
                        listener=listener,
                        event_name=event_name,
                        payload=payload,
                        metrics=metrics,
                        logger=logger,
                    ),
                    name=f"eventbus-low-{event_name}-{listener.identifier}",
                )
                self._background_tasks.add(task)
                task.add_done_callback(self._background_tasks.discard)

        return results

    async def _run_with_timeout(
        self,
        *,
        listener: EventListener,
        event_name: str,
        payload: EventPayload,
        metrics: Optional[EventMetricsRecorder],
        logger: Logger,
        timeout: Optional[float],
    ) -> Any:
        coro = self._run_listener(
            listener=listener,
            event_name=event_name,
            payload=payload,
            metrics=metrics,
            logger=logger,
        )
        if timeout is None or timeout <= 0:
            return await coro

        try:
            return await asyncio.wait_for(coro, timeout=timeout)
        except asyncio.TimeoutError as exc:
            logger.error(
                "EventBus listener timeout",
                extra={
                    "event_name": event_name,
                    "listener_id": listener.identifier,
                    "priority": listener.priority.name,
                    "timeout_seconds": timeout,
                },
            )
            handle_listener_error(
                logger=logger,
                event_name=event_name,
                listener=listener,
                exc=exc,
                metrics=metrics,
            )
            return None

    async def _run_listener(
        self,
        *,
        listener: EventListener,
        event_name: str,
        payload: EventPayload,
        metrics: Optional[EventMetricsRecorder],
        logger: Logger,
    ) -> Any:
        """Run a single listener with error isolation."""
        try:
            result = listener.callback(payload)
            if inspect.isawaitable(result):
                result = await result
            return result
        except Exception as exc:
            handle_listener_error(
                logger=logger,
                event_name=event_name,
                listener=listener,
                exc=exc,
                metrics=metrics,
            )
            return None

    async def drain(self) -> None:
        """Wait for outstanding LOW-tier tasks."""
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)
