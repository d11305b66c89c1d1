"""
Row locking and status refresh shared by the obligation and payment services.

Every mutating transaction ends by re-deriving the stored status (and the
overdue flag) of each touched installment and the aggregates of each
touched obligation, so the persisted values never drift from what
``settlement_engines.status`` would compute.

Lock order: obligations first, then installments, each in primary-key
order.  The obligation service locks only the obligation row before it
edits installments; the payment paths go through ``lock_for_settlement``,
which takes the parent obligations before any installment, so no two
writers ever wait on each other in opposite directions.
"""

from collections.abc import Iterable
from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from settlement_engines.status import derive_aggregate_status, derive_state
from settlement_kernel.domain.values import ObligationKind, SettlementStatus
from settlement_kernel.exceptions import NotFoundError
from settlement_modules.obligations.orm import (
    InstallmentModel,
    ObligationModel,
    model_for_kind,
)


def lock_installments(
    session: Session,
    tenant_id: UUID,
    installment_ids: Iterable[UUID],
) -> dict[UUID, InstallmentModel]:
    """SELECT ... FOR UPDATE the tenant's installments; missing ids are absent from the result."""
    ids = sorted(set(installment_ids), key=str)
    if not ids:
        return {}
    rows = session.execute(
        select(InstallmentModel)
        .where(InstallmentModel.id.in_(ids), InstallmentModel.tenant_id == tenant_id)
        .order_by(InstallmentModel.id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalars().all()
    return {row.id: row for row in rows}


def lock_obligations(
    session: Session,
    tenant_id: UUID,
    obligation_ids: Iterable[UUID],
) -> list[ObligationModel]:
    ids = sorted(set(obligation_ids), key=str)
    if not ids:
        return []
    return list(
        session.execute(
            select(ObligationModel)
            .where(ObligationModel.id.in_(ids), ObligationModel.tenant_id == tenant_id)
            .order_by(ObligationModel.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalars().all()
    )


def lock_for_settlement(
    session: Session,
    tenant_id: UUID,
    installment_ids: Iterable[UUID],
) -> tuple[list[ObligationModel], dict[UUID, InstallmentModel]]:
    """
    Lock the parent obligations of ``installment_ids``, then the installments.

    The parents are looked up with a plain SELECT first; an installment
    moved or deleted between that read and its lock simply comes back
    missing, which callers already treat as not found.
    """
    ids = sorted(set(installment_ids), key=str)
    if not ids:
        return [], {}
    parent_ids = session.execute(
        select(InstallmentModel.obligation_id).where(
            InstallmentModel.id.in_(ids), InstallmentModel.tenant_id == tenant_id
        )
    ).scalars().all()
    obligations = lock_obligations(session, tenant_id, parent_ids)
    installments = lock_installments(session, tenant_id, ids)
    locked = {o.id for o in obligations}
    return obligations, {
        key: row for key, row in installments.items() if row.obligation_id in locked
    }


def lock_obligation(
    session: Session,
    tenant_id: UUID,
    obligation_id: UUID,
    kind: ObligationKind | None = None,
) -> ObligationModel:
    """Lock one obligation (optionally of a given kind) or raise NotFoundError."""
    model = model_for_kind(kind) if kind is not None else ObligationModel
    obligation = session.execute(
        select(model)
        .where(model.id == obligation_id, model.tenant_id == tenant_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if obligation is None:
        raise NotFoundError(_entity_name(kind), str(obligation_id))
    return obligation


def refresh_installment(installment: InstallmentModel, today: date) -> None:
    cancelled = installment.status == SettlementStatus.CANCELLED.value
    state = derive_state(
        installment.amount,
        installment.settled_amount,
        installment.due_date,
        today,
        cancelled=cancelled,
    )
    installment.status = state.status.value
    installment.is_overdue = state.is_overdue


def refresh_obligation(obligation: ObligationModel, today: date) -> None:
    """Recompute settled total and status; also refreshes every installment."""
    for installment in obligation.installments:
        refresh_installment(installment, today)
    cancelled = obligation.status == SettlementStatus.CANCELLED.value
    settled, status = derive_aggregate_status(
        ((i.amount, i.settled_amount) for i in obligation.installments),
        cancelled=cancelled,
    )
    obligation.settled_amount = settled
    obligation.status = status.value


def _entity_name(kind: ObligationKind | None) -> str:
    if kind is ObligationKind.PAYABLE:
        return "Payable"
    if kind is ObligationKind.RECEIVABLE:
        return "Receivable"
    return "Obligation"
