"""
EventBus metrics.

- EventMetricsRecorder: mutable counters updated by the bus and scheduler.
- EventMetrics: immutable snapshot handed to callers.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class EventMetrics:
    """Point-in-time view of EventBus metrics."""

    events_published: dict[str, int]
    listener_errors: dict[str, int]
    total_listeners: int

    def get_summary(self) -> dict[str, Any]:
        total_events = sum(self.events_published.values())
        total_errors = sum(self.listener_errors.values())
        return {
            "total_events_published": total_events,
            "events_by_type": dict(self.events_published),
            "total_errors": total_errors,
            "errors_by_event": dict(self.listener_errors),
            "total_listeners": self.total_listeners,
            "error_rate": round(total_errors / total_events * 100, 2) if total_events else 0.0,
        }


@dataclass
class EventMetricsRecorder:
    events_published: defaultdict[str, int] = field(default_factory=lambda: defaultdict(int))
    listener_errors: defaultdict[str, int] = field(default_factory=lambda: defaultdict(int))
    total_listeners: int = 0

    def record_publish(self, event_name: str) -> None:
        self.events_published[event_name] += 1

    def record_error(self, event_name: str) -> None:
        self.listener_errors[event_name] += 1

    def increment_listener_count(self) -> None:
        self.total_listeners += 1

    def decrement_listener_count(self) -> None:
        self.total_listeners = max(0, self.total_listeners - 1)

    def reset_listener_count(self) -> None:
        self.total_listeners = 0

    def snapshot(self) -> EventMetrics:
        return EventMetrics(
            events_published=dict(self.events_published),
            listener_errors=dict(self.listener_errors),
            total_listeners=self.total_listeners,
        )
