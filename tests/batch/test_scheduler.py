"""
Tests for settlement_batch.services.scheduler -- SweepScheduler.

Validates tick() evaluation, once-per-day firing and start/stop lifecycle.
"""

from datetime import datetime, timedelta, timezone

import pytest

from settlement_batch.domain.schedule import DailySchedule
from settlement_batch.services.scheduler import SweepScheduler
from settlement_kernel.domain.clock import DeterministicClock
from settlement_modules.obligations.orm import InstallmentModel


@pytest.fixture
def scheduler_clock():
    return DeterministicClock(datetime(2025, 3, 10, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def scheduler(session_factory, scheduler_clock, cache):
    return SweepScheduler(
        session_factory,
        scheduler_clock,
        DailySchedule(hour=0, minute=5),
        cache,
        tick_interval_seconds=1,
    )


class TestTick:

    def test_waits_for_fire_time(self, scheduler, scheduler_clock):
        assert scheduler.tick() is None
        assert scheduler.last_run_on is None

        scheduler_clock.advance(5 * 60)
        result = scheduler.tick()

        assert result is not None
        assert result.as_of == scheduler_clock.today()
        assert scheduler.last_run_on == scheduler_clock.today()

    def test_fires_once_per_day(self, scheduler, scheduler_clock):
        scheduler_clock.advance(6 * 60)
        assert scheduler.tick() is not None
        scheduler_clock.advance(3600)
        assert scheduler.tick() is None

        scheduler_clock.advance_days(1)
        assert scheduler.tick() is not None

    def test_sweep_runs_in_fresh_session(self, scheduler, scheduler_clock, make_obligation, session, today):
        installment = make_obligation("10.00", first_due=today).installments[0]
        scheduler_clock.set_time(datetime(2025, 3, 12, 1, 0, tzinfo=timezone.utc))

        result = scheduler.tick()

        assert result.flagged == 1
        session.expire_all()
        assert session.get(InstallmentModel, installment.id).is_overdue is True


class TestLifecycle:

    def test_start_and_stop(self, scheduler):
        scheduler.start()
        assert scheduler.is_running
        scheduler.stop(timeout=5)
        assert not scheduler.is_running

    def test_start_twice_is_harmless(self, scheduler):
        scheduler.start()
        scheduler.start()
        scheduler.stop(timeout=5)
        assert not scheduler.is_running
