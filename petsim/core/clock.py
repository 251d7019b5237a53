"""
Server-authoritative time source.

All effect timestamps (`applied_at`), countdowns and rate windows are
expressed in whole seconds from a single monotonic clock. Client-supplied
timestamps are never used.
"""

from __future__ import annotations

import time
from typing import Protocol, runtime_checkable


@runtime_checkable
class ClockSource(Protocol):
    def now(self) -> int:
        """Current time in whole seconds; never decreases."""
        ...


class MonotonicClock:
    """ClockSource backed by `time.monotonic()`."""

    def __init__(self, offset: int = 0) -> None:
        self._offset = offset

    def now(self) -> int:
        return int(time.monotonic()) + self._offset
