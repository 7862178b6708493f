"""
Fakturo - Clock

Injectable source of "today" and "now" so that date-dependent logic
(overdue detection, timers, paid dates) is deterministic under test.
"""

from datetime import date, datetime, timezone
from typing import Optional


class Clock:
    """Interface for reading the current date and time."""

    def today(self) -> date:
        raise NotImplementedError

    def now(self) -> datetime:
        raise NotImplementedError


class SystemClock(Clock):
    """Clock backed by the host system time."""

    def today(self) -> date:
        return date.today()

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """Clock frozen at a given instant. Used in tests."""

    def __init__(self, today: date, now: Optional[datetime] = None):
        self._today = today
        self._now = now or datetime(today.year, today.month, today.day, 12, 0, tzinfo=timezone.utc)

    def today(self) -> date:
        return self._today

    def now(self) -> datetime:
        return self._now

    def advance(self, now: datetime) -> None:
        """Move the clock forward, keeping today() in step."""
        self._now = now
        self._today = now.date()


_system_clock = SystemClock()


def get_clock() -> Clock:
    """FastAPI dependency returning the process clock."""
    return _system_clock
