"""Batch services: the overdue sweeper and its scheduler."""

from settlement_batch.services.scheduler import SweepScheduler
from settlement_batch.services.sweeper import OverdueSweeper, SweepResult

__all__ = ["OverdueSweeper", "SweepResult", "SweepScheduler"]
