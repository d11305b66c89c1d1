"""
Pure daily schedule evaluation.

Contract:
    ``should_fire()`` and ``compute_next_run()`` are PURE -- no I/O, no
    clock access.  All timestamps come from the caller, in UTC.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone


@dataclass(frozen=True)
class DailySchedule:
    """Fire once per UTC calendar day at ``hour:minute``."""

    hour: int = 0
    minute: int = 5

    def __post_init__(self):
        if not 0 <= self.hour <= 23:
            raise ValueError(f"hour must be 0-23, got {self.hour}")
        if not 0 <= self.minute <= 59:
            raise ValueError(f"minute must be 0-59, got {self.minute}")

    def fire_time_on(self, day: date) -> datetime:
        return datetime.combine(day, time(self.hour, self.minute), tzinfo=timezone.utc)


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def should_fire(
    schedule: DailySchedule,
    now: datetime,
    last_run_on: date | None,
) -> bool:
    """True once the day's fire time has passed and the day has not run yet."""
    now = _as_utc(now)
    if last_run_on is not None and last_run_on >= now.date():
        return False
    return now >= schedule.fire_time_on(now.date())


def compute_next_run(schedule: DailySchedule, after: datetime) -> datetime:
    """First fire time strictly after ``after``."""
    after = _as_utc(after)
    candidate = schedule.fire_time_on(after.date())
    if candidate <= after:
        candidate = schedule.fire_time_on(after.date() + timedelta(days=1))
    return candidate
