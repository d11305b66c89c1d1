"""
Obligation Service (``settlement_modules.obligations.service``).

Responsibility
--------------
Creates payables and receivables with their installment schedule and
applies the structural edits an unsettled schedule allows: installment
amount / due-date edits, installment deletion, obligation field updates
and cancellation.

Invariants enforced
-------------------
* ``sum(installment.amount) == obligation.amount`` after creation and after
  every amount edit or deletion (the obligation total follows the
  installments).
* Amount and due-date edits require the target installment to be PENDING
  and no installment of the obligation to carry any settled amount.
* Notes and tags stay editable in every state.
* Installment numbers are contiguous 1..N, ordered by due date after a
  due-date edit or a deletion.
* Each public method owns its transaction (commit on success, rollback and
  re-raise on failure) and invalidates the tenant's cached views only
  after the commit.

Usage::

    service = ObligationService(session, clock=clock, cache=cache)
    payable = service.create_obligation(
        tenant_id, ObligationKind.PAYABLE, vendor_id,
        amount=Decimal("300.00"), first_due_date=date(2024, 1, 31),
        installment_count=3,
    )
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from settlement_engines.scheduling import InstallmentScheduler, renumber_by_due_date
from settlement_kernel.domain.clock import Clock
from settlement_kernel.domain.values import (
    ObligationKind,
    PaymentMethod,
    SettlementStatus,
    parse_money,
)
from settlement_kernel.exceptions import InvalidArgumentError, InvalidStateError, NotFoundError
from settlement_kernel.logging_config import get_logger
from settlement_kernel.services.base import BaseService
from settlement_kernel.services.cache_service import CacheService, invalidate_tenant_views
from settlement_modules._state_sync import (
    lock_obligation,
    refresh_obligation,
)
from settlement_modules.obligations.models import Obligation
from settlement_modules.obligations.orm import (
    InstallmentModel,
    ObligationModel,
    TagModel,
    model_for_kind,
)
from settlement_modules.payments.orm import AllocationModel

logger = get_logger("modules.obligations.service")


@dataclass(frozen=True)
class ObligationChanges:
    """Non-structural obligation fields; None leaves a field unchanged."""

    counterparty_id: UUID | None = None
    category_id: UUID | None = None
    document_number: str | None = None
    payment_method: PaymentMethod | None = None
    notes: str | None = None
    tag_ids: Sequence[UUID] | None = None


class ObligationService(BaseService):
    """Write-side operations on obligations and their schedules."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        scheduler: InstallmentScheduler | None = None,
        cache: CacheService | None = None,
    ):
        super().__init__(session, clock)
        self.scheduler = scheduler or InstallmentScheduler()
        self.cache = cache

    # ------------------------------------------------------------------
    # Creation and reads
    # ------------------------------------------------------------------

    def create_obligation(
        self,
        tenant_id: UUID,
        kind: ObligationKind,
        counterparty_id: UUID,
        amount: Decimal,
        first_due_date: date,
        *,
        installment_count: int = 1,
        due_dates: Sequence[date] | None = None,
        category_id: UUID | None = None,
        document_number: str | None = None,
        payment_method: PaymentMethod | None = None,
        notes: str | None = None,
        tag_ids: Sequence[UUID] = (),
        actor_id: UUID | None = None,
    ) -> Obligation:
        principal = parse_money(amount)
        schedule = self.scheduler.schedule(
            principal, first_due_date, installment_count, due_dates
        )
        today = self.clock.today()

        with self._transaction("create_obligation"):
            tags = self._resolve_tags(tenant_id, tag_ids)
            obligation = model_for_kind(kind)(
                tenant_id=tenant_id,
                counterparty_id=counterparty_id,
                category_id=category_id,
                document_number=document_number,
                amount=principal,
                settled_amount=Decimal("0"),
                due_date=schedule[0].due_date,
                payment_method=payment_method.value if payment_method else None,
                status=SettlementStatus.PENDING.value,
                notes=notes,
                created_by_id=actor_id,
            )
            obligation.tags = tags
            obligation.installments = [
                InstallmentModel(
                    tenant_id=tenant_id,
                    installment_number=item.number,
                    total_installments=item.total_installments,
                    amount=item.amount,
                    settled_amount=Decimal("0"),
                    due_date=item.due_date,
                    status=SettlementStatus.PENDING.value,
                    created_by_id=actor_id,
                )
                for item in schedule
            ]
            refresh_obligation(obligation, today)
            self.session.add(obligation)
            self.session.flush()
            dto = obligation.to_dto()

        invalidate_tenant_views(self.cache, tenant_id)
        logger.info(
            "obligation_created",
            extra={
                "obligation_id": str(dto.id),
                "kind": kind.value,
                "amount": str(principal),
                "installment_count": installment_count,
            },
        )
        return dto

    def get_obligation(
        self,
        tenant_id: UUID,
        obligation_id: UUID,
        kind: ObligationKind | None = None,
    ) -> Obligation:
        model = model_for_kind(kind) if kind is not None else ObligationModel
        obligation = self.session.execute(
            select(model).where(model.id == obligation_id, model.tenant_id == tenant_id)
        ).scalar_one_or_none()
        if obligation is None:
            raise NotFoundError(kind.value.title() if kind else "Obligation", str(obligation_id))
        return obligation.to_dto()

    # ------------------------------------------------------------------
    # Obligation-level edits
    # ------------------------------------------------------------------

    def update_obligation(
        self,
        tenant_id: UUID,
        obligation_id: UUID,
        changes: ObligationChanges,
        kind: ObligationKind | None = None,
        actor_id: UUID | None = None,
    ) -> Obligation:
        with self._transaction("update_obligation"):
            obligation = lock_obligation(self.session, tenant_id, obligation_id, kind)
            status = SettlementStatus(obligation.status)
            if status in (SettlementStatus.PAID, SettlementStatus.CANCELLED):
                raise InvalidStateError(
                    f"Obligation {obligation_id} is {status.value} and can no longer be edited",
                    entity="Obligation",
                    entity_id=str(obligation_id),
                    status=status.value,
                )
            if changes.counterparty_id is not None:
                obligation.counterparty_id = changes.counterparty_id
            if changes.category_id is not None:
                obligation.category_id = changes.category_id
            if changes.document_number is not None:
                obligation.document_number = changes.document_number
            if changes.payment_method is not None:
                obligation.payment_method = changes.payment_method.value
            if changes.notes is not None:
                obligation.notes = changes.notes
            if changes.tag_ids is not None:
                obligation.tags = self._resolve_tags(tenant_id, changes.tag_ids)
            obligation.updated_by_id = actor_id
            self.session.flush()
            dto = obligation.to_dto()

        invalidate_tenant_views(self.cache, tenant_id)
        logger.info("obligation_updated", extra={"obligation_id": str(obligation_id)})
        return dto

    def cancel_obligation(
        self,
        tenant_id: UUID,
        obligation_id: UUID,
        kind: ObligationKind | None = None,
        actor_id: UUID | None = None,
    ) -> Obligation:
        """
        Cancel an obligation and all its installments.

        Rejected when the obligation is already cancelled or when any
        installment carries a settled amount (reverse the payments first).
        """
        with self._transaction("cancel_obligation"):
            obligation = lock_obligation(self.session, tenant_id, obligation_id, kind)
            if obligation.status == SettlementStatus.CANCELLED.value:
                raise InvalidStateError(
                    f"Obligation {obligation_id} is already cancelled",
                    entity="Obligation",
                    entity_id=str(obligation_id),
                    status=obligation.status,
                )
            if any(i.settled_amount > 0 for i in obligation.installments):
                raise InvalidStateError(
                    f"Obligation {obligation_id} has settled installments; "
                    "reverse its payments before cancelling",
                    entity="Obligation",
                    entity_id=str(obligation_id),
                    status=obligation.status,
                )

            obligation.status = SettlementStatus.CANCELLED.value
            obligation.cancelled_at = self.clock.now_utc()
            obligation.updated_by_id = actor_id
            for installment in obligation.installments:
                installment.status = SettlementStatus.CANCELLED.value
            refresh_obligation(obligation, self.clock.today())
            self.session.flush()
            dto = obligation.to_dto()

        invalidate_tenant_views(self.cache, tenant_id)
        logger.info("obligation_cancelled", extra={"obligation_id": str(obligation_id)})
        return dto

    # ------------------------------------------------------------------
    # Installment edits
    # ------------------------------------------------------------------

    def edit_installment(
        self,
        tenant_id: UUID,
        obligation_id: UUID,
        installment_id: UUID,
        *,
        amount: Decimal | None = None,
        due_date: date | None = None,
        notes: str | None = None,
        tag_ids: Sequence[UUID] | None = None,
        kind: ObligationKind | None = None,
        actor_id: UUID | None = None,
    ) -> Obligation:
        """
        Edit one installment.

        Amount and due date are structural: they require an unsettled
        schedule and a PENDING target.  A due-date change renumbers the
        schedule; an amount change recomputes the obligation total.
        """
        new_amount = None
        if amount is not None:
            new_amount = parse_money(amount)
            if new_amount <= 0:
                raise InvalidArgumentError("amount must be positive", field="amount")

        with self._transaction("edit_installment"):
            obligation = lock_obligation(self.session, tenant_id, obligation_id, kind)
            installment = self._installment_of(obligation, installment_id)

            if new_amount is not None or due_date is not None:
                self._require_unsettled_schedule(obligation, installment)

            if new_amount is not None:
                installment.amount = new_amount
                obligation.amount = sum(
                    (i.amount for i in obligation.installments), Decimal("0")
                )
            if due_date is not None:
                installment.due_date = due_date
                self._renumber(obligation)
            if notes is not None:
                installment.notes = notes
            if tag_ids is not None:
                installment.tags = self._resolve_tags(tenant_id, tag_ids)

            installment.updated_by_id = actor_id
            refresh_obligation(obligation, self.clock.today())
            self.session.flush()
            dto = obligation.to_dto()

        invalidate_tenant_views(self.cache, tenant_id)
        logger.info(
            "installment_edited",
            extra={
                "obligation_id": str(obligation_id),
                "installment_id": str(installment_id),
                "amount_changed": new_amount is not None,
                "due_date_changed": due_date is not None,
            },
        )
        return dto

    def delete_installment(
        self,
        tenant_id: UUID,
        obligation_id: UUID,
        installment_id: UUID,
        kind: ObligationKind | None = None,
        actor_id: UUID | None = None,
    ) -> Obligation:
        with self._transaction("delete_installment"):
            obligation = lock_obligation(self.session, tenant_id, obligation_id, kind)
            installment = self._installment_of(obligation, installment_id)

            if len(obligation.installments) == 1:
                raise InvalidStateError(
                    "Cannot delete the only installment of an obligation",
                    entity="Installment",
                    entity_id=str(installment_id),
                    status=installment.status,
                )
            self._require_unsettled_schedule(obligation, installment)
            allocation_count = self.session.execute(
                select(func.count())
                .select_from(AllocationModel)
                .where(AllocationModel.installment_id == installment.id)
            ).scalar_one()
            if allocation_count:
                raise InvalidStateError(
                    f"Installment {installment_id} has payment allocations",
                    entity="Installment",
                    entity_id=str(installment_id),
                    status=installment.status,
                )

            obligation.installments.remove(installment)
            obligation.amount = sum(
                (i.amount for i in obligation.installments), Decimal("0")
            )
            self._renumber(obligation)
            obligation.updated_by_id = actor_id
            refresh_obligation(obligation, self.clock.today())
            self.session.flush()
            dto = obligation.to_dto()

        invalidate_tenant_views(self.cache, tenant_id)
        logger.info(
            "installment_deleted",
            extra={
                "obligation_id": str(obligation_id),
                "installment_id": str(installment_id),
                "remaining": len(dto.installments),
            },
        )
        return dto

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _resolve_tags(self, tenant_id: UUID, tag_ids: Sequence[UUID]) -> list[TagModel]:
        wanted = list(dict.fromkeys(tag_ids))
        if not wanted:
            return []
        found = {
            tag.id: tag
            for tag in self.session.execute(
                select(TagModel).where(TagModel.id.in_(wanted), TagModel.tenant_id == tenant_id)
            ).scalars()
        }
        for tag_id in wanted:
            if tag_id not in found:
                raise NotFoundError("Tag", str(tag_id))
        return [found[tag_id] for tag_id in wanted]

    @staticmethod
    def _installment_of(obligation: ObligationModel, installment_id: UUID) -> InstallmentModel:
        for installment in obligation.installments:
            if installment.id == installment_id:
                return installment
        raise NotFoundError("Installment", str(installment_id))

    @staticmethod
    def _require_unsettled_schedule(
        obligation: ObligationModel,
        installment: InstallmentModel,
    ) -> None:
        if installment.status != SettlementStatus.PENDING.value:
            raise InvalidStateError(
                f"Installment {installment.id} is {installment.status}; only PENDING "
                "installments can change amount or due date",
                entity="Installment",
                entity_id=str(installment.id),
                status=installment.status,
            )
        if any(i.settled_amount > 0 for i in obligation.installments):
            raise InvalidStateError(
                f"Obligation {obligation.id} already has settlements; its schedule is locked",
                entity="Obligation",
                entity_id=str(obligation.id),
                status=obligation.status,
            )

    @staticmethod
    def _renumber(obligation: ObligationModel) -> None:
        installments = list(obligation.installments)
        numbers = renumber_by_due_date(
            [(i.id, i.due_date, i.installment_number) for i in installments]
        )
        total = len(installments)
        for installment in installments:
            installment.installment_number = numbers[installment.id]
            installment.total_installments = total
        obligation.installments.sort(key=lambda i: i.installment_number)
        obligation.due_date = min(i.due_date for i in installments)
