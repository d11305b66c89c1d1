"""
SweepScheduler -- In-process polling scheduler for the overdue sweep.

Contract:
    Polls on a configurable interval, evaluates ``should_fire()`` (pure)
    against the injected clock, and runs ``OverdueSweeper`` in a fresh
    session when the day's run is due.

Invariants enforced:
    - All timestamps from the injected Clock.
    - At most one sweep per UTC day per scheduler instance.
    - Graceful shutdown: ``stop()`` lets the current sweep finish.

Non-goals:
    - NOT a distributed scheduler (no leader election).  Running two
      instances is harmless because the sweep is idempotent.
"""

from __future__ import annotations

import threading
from datetime import date
from typing import Callable

from sqlalchemy.orm import Session

from settlement_batch.domain.schedule import DailySchedule, compute_next_run, should_fire
from settlement_batch.services.sweeper import OverdueSweeper, SweepResult
from settlement_kernel.domain.clock import Clock, SystemClock
from settlement_kernel.logging_config import get_logger
from settlement_kernel.services.cache_service import CacheService

logger = get_logger("batch.scheduler")


class SweepScheduler:

    def __init__(
        self,
        session_factory: Callable[[], Session],
        clock: Clock | None = None,
        schedule: DailySchedule | None = None,
        cache: CacheService | None = None,
        tick_interval_seconds: int = 60,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._schedule = schedule or DailySchedule()
        self._cache = cache
        self._tick_interval = tick_interval_seconds
        self._last_run_on: date | None = None
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    @property
    def last_run_on(self) -> date | None:
        return self._last_run_on

    def tick(self) -> SweepResult | None:
        """Run the sweep if due (public for testing). Returns its result or None."""
        now = self._clock.now_utc()
        if not should_fire(self._schedule, now, self._last_run_on):
            return None

        session = self._session_factory()
        try:
            result = OverdueSweeper(session, self._clock, self._cache).sweep(now.date())
        except Exception:
            session.rollback()
            logger.exception("scheduler_tick_failed")
            return None
        finally:
            session.close()

        self._last_run_on = now.date()
        logger.info(
            "sweep_fired",
            extra={
                "as_of": result.as_of.isoformat(),
                "count": result.count,
                "next_run_at": compute_next_run(self._schedule, now).isoformat(),
            },
        )
        return result

    def start(self) -> None:
        """Start the scheduler in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="overdue-sweep-scheduler",
            daemon=True,
        )
        self._thread.start()
        logger.info("scheduler_started", extra={"tick_interval": self._tick_interval})

    def stop(self, timeout: float = 30.0) -> None:
        """Signal stop and wait for the scheduler thread to finish."""
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        logger.info("scheduler_stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("scheduler_tick_exception")
            self._stop_event.wait(timeout=self._tick_interval)
