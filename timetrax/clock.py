"""Clock providers.

The store and the accounting engine never call ``datetime.now()`` directly;
they ask a clock, so tests can drive time by hand.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime:
        """Return the current instant as a timezone-aware datetime."""
        ...


class SystemClock:
    """Wall clock time in UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class ManualClock:
    """Clock that only moves when told to.

    Args:
        start: Initial instant. Naive datetimes are taken as local time.
    """

    def __init__(self, start: datetime) -> None:
        if start.tzinfo is None:
            start = start.astimezone()
        self._now = start

    def now(self) -> datetime:
        return self._now

    def advance(self, hours: float = 0, *, minutes: float = 0, seconds: float = 0) -> datetime:
        """Move the clock forward and return the new instant."""
        self._now += timedelta(hours=hours, minutes=minutes, seconds=seconds)
        return self._now

    def set(self, instant: datetime) -> None:
        if instant.tzinfo is None:
            instant = instant.astimezone()
        self._now = instant
