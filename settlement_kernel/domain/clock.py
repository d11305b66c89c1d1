"""
Clock -- injectable time source.

Engine, module and batch code never call ``datetime.now()`` or
``date.today()``; they receive a ``Clock``.  "Today" for due-date
comparisons is the UTC calendar date of that clock.
"""

from abc import ABC, abstractmethod
from datetime import UTC, date, datetime, timedelta


class Clock(ABC):

    @abstractmethod
    def now_utc(self) -> datetime:
        """Current time, timezone-aware UTC."""

    def today(self) -> date:
        return self.now_utc().date()


class SystemClock(Clock):

    def now_utc(self) -> datetime:
        return datetime.now(UTC)


class DeterministicClock(Clock):
    """
    Test clock frozen at ``start`` until moved.

    A naive ``start`` is taken to be UTC.
    """

    def __init__(self, start: datetime | None = None):
        self._current = self._as_utc(start or datetime(2024, 1, 1, 12, 0, tzinfo=UTC))

    @staticmethod
    def _as_utc(value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def now_utc(self) -> datetime:
        return self._current

    def set_time(self, value: datetime) -> None:
        self._current = self._as_utc(value)

    def advance(self, seconds: float = 1) -> None:
        self._current += timedelta(seconds=seconds)

    def advance_days(self, days: int = 1) -> None:
        self._current += timedelta(days=days)
