"""
ListenerRegistry: storage and lookup for EventBus listeners.

Design Decisions
----------------
- **No async/await**: asyncio's event loop is single-threaded, so dictionary
  mutations are atomic between awaits.
- **Deterministic ordering**: listeners sorted by (priority, identifier).
- **Atomic once-pruning**: `extract_listeners_for_event()` retrieves and
  prunes once=True listeners in one step.
"""

from __future__ import annotations

from petsim.core.event.router import EventRouter
from petsim.core.event.types import EventListener


def _sort_key(listener: EventListener) -> tuple[int, str]:
    return (listener.priority.value, listener.identifier)


class ListenerRegistry:
    """Registry for exact and wildcard event listeners."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[EventListener]] = {}
        self._wildcard_listeners: list[tuple[str, EventListener]] = []
        self._router = EventRouter()

    # ------------------------------------------------------------------ #
    # Modification
    # ------------------------------------------------------------------ #

    def add_listener(
        self,
        event_name: str,
        listener: EventListener,
        *,
        allow_duplicates: bool,
    ) -> bool:
        """
        Register a listener for an event name or wildcard pattern.

        Returns False when the same (event_name, identifier) pair is already
        registered and duplicates are not allowed.
        """
        if "*" in event_name:
            if not allow_duplicates and any(
                pattern == event_name and existing.identifier == listener.identifier
                for pattern, existing in self._wildcard_listeners
            ):
                return False

            self._wildcard_listeners.append((event_name, listener))
            self._wildcard_listeners.sort(key=lambda pl: _sort_key(pl[1]))
            return True

        listeners = self._listeners.setdefault(event_name, [])

        if not allow_duplicates and any(
            existing.identifier == listener.identifier for existing in listeners
        ):
            return False

        listeners.append(listener)
        listeners.sort(key=_sort_key)
        return True

    def remove_listener(self, event_name: str, identifier: str) -> bool:
        removed = False

        if event_name in self._listeners:
            before = len(self._listeners[event_name])
            kept = [lst for lst in self._listeners[event_name] if lst.identifier != identifier]
            removed = len(kept) < before
            if kept:
                self._listeners[event_name] = kept
            else:
                del self._listeners[event_name]

        before_wc = len(self._wildcard_listeners)
        self._wildcard_listeners = [
            (pattern, lst)
            for pattern, lst in self._wildcard_listeners
            if not (pattern == event_name and lst.identifier == identifier)
        ]
        return removed or len(self._wildcard_listeners) < before_wc

    def clear_all(self) -> int:
        total = self.get_total_listener_count()
        self._listeners.clear()
        self._wildcard_listeners.clear()
        return total

    # ------------------------------------------------------------------ #
    # Lookup & Once-Removal
    # ------------------------------------------------------------------ #

    def extract_listeners_for_event(self, event_name: str) -> list[EventListener]:
        """
        Collect exact and matching wildcard listeners, pruning once=True
        listeners from the registry, sorted by (priority, identifier).
        """
        result: list[EventListener] = []

        exact = self._listeners.get(event_name, [])
        result.extend(exact)
        kept_exact = [lst for lst in exact if not lst.once]
        if kept_exact:
            self._listeners[event_name] = kept_exact
        elif event_name in self._listeners:
            del self._listeners[event_name]

        kept_wildcards: list[tuple[str, EventListener]] = []
        for pattern, listener in self._wildcard_listeners:
            if self._router.matches(event_name, pattern):
                result.append(listener)
                if listener.once:
                    continue
            kept_wildcards.append((pattern, listener))
        self._wildcard_listeners = kept_wildcards

        result.sort(key=_sort_key)
        return result

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #

    def get_listener_count_for_event(self, event_name: str) -> int:
        count = len(self._listeners.get(event_name, []))
        count += sum(
            1
            for pattern, _ in self._wildcard_listeners
            if self._router.matches(event_name, pattern)
        )
        return count

    def get_total_listener_count(self) -> int:
        total = sum(len(listeners) for listeners in self._listeners.values())
        return total + len(self._wildcard_listeners)
