"""
Injected time source.

Services never call ``datetime.now()``.  SLA states, payout lock windows
and every stored timestamp come from a ``Clock`` handed in by the caller,
so two people looking at the same case at the same moment see the same
SLA state, and tests can pin time to the second.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

DEFAULT_TEST_EPOCH = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class Clock(ABC):
    """Source of timezone-aware UTC instants."""

    @abstractmethod
    def now(self) -> datetime: ...


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Clock for tests: time stands still until moved.

    Starts at ``DEFAULT_TEST_EPOCH`` unless given a start instant.
    """

    def __init__(self, start: datetime | None = None):
        self._current = start or DEFAULT_TEST_EPOCH

    def now(self) -> datetime:
        return self._current

    def set_time(self, instant: datetime) -> None:
        self._current = instant

    def advance(self, seconds: int = 1) -> None:
        self._current += timedelta(seconds=seconds)

    def advance_hours(self, hours: int) -> None:
        self._current += timedelta(hours=hours)

    def advance_days(self, days: int) -> None:
        self._current += timedelta(days=days)

    def tick(self) -> datetime:
        """Move one second forward and return the new instant."""
        self.advance()
        return self._current
