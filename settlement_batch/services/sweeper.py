"""
OverdueSweeper -- daily overdue flagging.

Contract:
    ``sweep(today)`` sets the ``is_overdue`` presentation flag on every
    PENDING or PARTIAL installment with ``due_date < today`` and clears it
    on open installments that are no longer past due.  PAID and CANCELLED
    installments are never touched, and base statuses never change.

Invariants enforced:
    - Idempotent: a second sweep with the same ``today`` changes nothing.
    - Each tenant runs inside its own SAVEPOINT; a failing tenant is rolled
      back, logged and skipped while the rest commit.
    - The sweeper owns the outer transaction and commits once at the end.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from settlement_kernel.domain.clock import Clock, SystemClock
from settlement_kernel.domain.values import SettlementStatus
from settlement_kernel.logging_config import LogContext, get_logger
from settlement_kernel.services.cache_service import CacheService, invalidate_tenant_views
from settlement_modules.obligations.orm import InstallmentModel

logger = get_logger("batch.sweeper")

_OPEN = (SettlementStatus.PENDING.value, SettlementStatus.PARTIAL.value)


@dataclass(frozen=True)
class SweepResult:
    """``count`` is the number of installments whose overdue flag moved (flagged + cleared)."""

    as_of: date
    count: int
    flagged: int
    cleared: int
    tenants_processed: int
    failed_tenants: tuple[UUID, ...] = ()


class OverdueSweeper:

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        cache: CacheService | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._cache = cache

    def sweep(self, today: date | None = None, tenant_id: UUID | None = None) -> SweepResult:
        as_of = today or self._clock.today()
        tenants = [tenant_id] if tenant_id is not None else self._tenants_needing_sweep(as_of)

        flagged = cleared = 0
        failed: list[UUID] = []
        touched: list[UUID] = []

        for tenant in tenants:
            savepoint = self._session.begin_nested()
            try:
                tenant_flagged, tenant_cleared = self._sweep_tenant(tenant, as_of)
                savepoint.commit()
            except Exception:
                savepoint.rollback()
                failed.append(tenant)
                with LogContext.bind(tenant_id=tenant):
                    logger.exception("sweep_tenant_failed", extra={"as_of": as_of.isoformat()})
                continue
            flagged += tenant_flagged
            cleared += tenant_cleared
            if tenant_flagged or tenant_cleared:
                touched.append(tenant)

        self._session.commit()
        self._session.expire_all()

        for tenant in touched:
            invalidate_tenant_views(self._cache, tenant)

        result = SweepResult(
            as_of=as_of,
            count=flagged + cleared,
            flagged=flagged,
            cleared=cleared,
            tenants_processed=len(tenants) - len(failed),
            failed_tenants=tuple(failed),
        )
        logger.info(
            "overdue_sweep_completed",
            extra={
                "as_of": as_of.isoformat(),
                "count": result.count,
                "flagged": flagged,
                "cleared": cleared,
                "tenants_processed": result.tenants_processed,
                "tenants_failed": len(failed),
            },
        )
        return result

    def _tenants_needing_sweep(self, as_of: date) -> list[UUID]:
        stale_flag = (
            (InstallmentModel.due_date < as_of) & (InstallmentModel.is_overdue.is_(False))
        ) | (
            (InstallmentModel.due_date >= as_of) & (InstallmentModel.is_overdue.is_(True))
        )
        rows = self._session.execute(
            select(InstallmentModel.tenant_id)
            .where(InstallmentModel.status.in_(_OPEN), stale_flag)
            .distinct()
        ).scalars().all()
        return sorted(rows, key=str)

    def _sweep_tenant(self, tenant_id: UUID, as_of: date) -> tuple[int, int]:
        flagged = self._session.execute(
            update(InstallmentModel)
            .where(
                InstallmentModel.tenant_id == tenant_id,
                InstallmentModel.status.in_(_OPEN),
                InstallmentModel.due_date < as_of,
                InstallmentModel.is_overdue.is_(False),
            )
            .values(is_overdue=True)
            .execution_options(synchronize_session=False)
        ).rowcount
        cleared = self._session.execute(
            update(InstallmentModel)
            .where(
                InstallmentModel.tenant_id == tenant_id,
                InstallmentModel.status.in_(_OPEN),
                InstallmentModel.due_date >= as_of,
                InstallmentModel.is_overdue.is_(True),
            )
            .values(is_overdue=False)
            .execution_options(synchronize_session=False)
        ).rowcount
        if flagged or cleared:
            logger.debug(
                "sweep_tenant_updated",
                extra={"tenant_id": str(tenant_id), "flagged": flagged, "cleared": cleared},
            )
        return flagged, cleared
