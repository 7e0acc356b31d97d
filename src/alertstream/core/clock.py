"""Clock abstraction so command handling stays deterministic under test.

WallClock: real wall-clock time
SimClock: manually advanced time for tests and replays

The aggregate never calls ``datetime.now()`` directly; it is handed a clock.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Protocol


class IClock(Protocol):
    """Clock interface used by all time-dependent code."""

    def now(self) -> datetime:
        """Current time as timezone-aware UTC datetime."""
        ...


class WallClock:
    """Real wall-clock time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class SimClock:
    """Simulated clock.  Time advances only when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self._time = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._time

    def set_time(self, t: datetime) -> None:
        self._time = t

    def advance(self, seconds: float = 1.0) -> datetime:
        """Advance time by *seconds* and return the new time."""
        self._time = self._time + timedelta(seconds=seconds)
        return self._time
