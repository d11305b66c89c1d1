"""
Allocation Engine (``settlement_modules.payments.service``).

Responsibility
--------------
Records payments and spreads them over installments: full or partial
settlement, one payment across many installments of different obligations
(payables and receivables alike), quick settlement of a single obligation,
reversal, and metadata edits.

Invariants enforced
-------------------
* ``sum(allocation.amount) == payment.amount`` for every payment.
* ``sum(allocation.amount for installment) == installment.settled_amount``
  and ``0 <= settled_amount <= amount`` for every installment.
* ``obligation.settled_amount == sum(installment.settled_amount)`` after
  every allocation or reversal.
* Validation happens before any write; a failure leaves no trace.
* Obligation rows, then installment rows, are locked (FOR UPDATE, id order)
  for the whole transaction, so two payments against the same installment are
  serialized and the second sees the first's settled amount.
* Statuses are always re-derived via ``settlement_engines.status``.
* Cached tenant views are invalidated after a successful commit and before
  the call returns.

Failure modes
-------------
* ``InvalidArgumentError``  -- empty or malformed targets, non-positive amounts,
  duplicate target installments, ambiguous quick settlement.
* ``AmountMismatchError``   -- allocations do not sum to the payment amount.
* ``NotFoundError``         -- installment, obligation or payment missing or
  owned by another tenant.
* ``InvalidStateError``     -- target installment is PAID or CANCELLED.
* ``OverAllocationError``   -- amount exceeds the outstanding balance.
* Database exceptions propagate after rollback.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from settlement_kernel.domain.clock import Clock
from settlement_kernel.domain.values import (
    TERMINAL_STATUSES,
    ObligationKind,
    PaymentMethod,
    SettlementStatus,
    parse_money,
)
from settlement_kernel.exceptions import (
    AmbiguousSettlementError,
    AmountMismatchError,
    InvalidArgumentError,
    InvalidStateError,
    NotFoundError,
    OverAllocationError,
)
from settlement_kernel.logging_config import LogContext, get_logger
from settlement_kernel.services.base import BaseService
from settlement_kernel.services.cache_service import CacheService, invalidate_tenant_views
from settlement_modules._state_sync import (
    lock_for_settlement,
    refresh_installment,
    refresh_obligation,
)
from settlement_modules.obligations.orm import InstallmentModel, model_for_kind
from settlement_modules.payments.models import (
    AllocationTarget,
    InstallmentBalance,
    Payment,
    PaymentRequest,
    ReversalResult,
)
from settlement_modules.payments.orm import AllocationModel, PaymentModel

logger = get_logger("modules.payments.service")


class AllocationEngine(BaseService):
    """
    Applies payments to installments.

    Contract:
        Every public method owns its transaction.  The session must not
        hold uncommitted work from the caller.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        cache: CacheService | None = None,
    ):
        super().__init__(session, clock)
        self.cache = cache

    # ------------------------------------------------------------------
    # create
    # ------------------------------------------------------------------

    def create(
        self,
        tenant_id: UUID,
        payment: PaymentRequest,
        targets: Sequence[AllocationTarget],
        actor_id: UUID | None = None,
    ) -> Payment:
        amount, normalized = self._validate_request(payment, targets)

        with self._transaction("create_payment"):
            model = self._apply(tenant_id, amount, payment, normalized, actor_id)
            dto = model.to_dto()

        invalidate_tenant_views(self.cache, tenant_id)
        with LogContext.bind(payment_id=dto.id):
            logger.info(
                "payment_created",
                extra={
                    "amount": str(amount),
                    "method": payment.method.value,
                    "allocation_count": len(normalized),
                },
            )
        return dto

    def _validate_request(
        self,
        payment: PaymentRequest,
        targets: Sequence[AllocationTarget],
    ) -> tuple[Decimal, list[AllocationTarget]]:
        amount = parse_money(payment.amount)
        if amount <= 0:
            raise InvalidArgumentError("payment amount must be positive", field="amount")
        if not targets:
            raise InvalidArgumentError(
                "at least one allocation target is required", field="allocations"
            )

        normalized: list[AllocationTarget] = []
        seen: set[UUID] = set()
        for target in targets:
            target_amount = parse_money(target.amount, field="allocations.amount")
            if target_amount <= 0:
                raise InvalidArgumentError(
                    f"allocation amount must be positive for installment {target.installment_id}",
                    field="allocations.amount",
                )
            if target.installment_id in seen:
                raise InvalidArgumentError(
                    f"installment {target.installment_id} appears more than once",
                    field="allocations.installmentId",
                )
            seen.add(target.installment_id)
            normalized.append(AllocationTarget(target.installment_id, target_amount))

        allocated = sum((t.amount for t in normalized), Decimal("0"))
        if allocated != amount:
            raise AmountMismatchError(amount, allocated)
        return amount, normalized

    def _apply(
        self,
        tenant_id: UUID,
        amount: Decimal,
        payment: PaymentRequest,
        targets: list[AllocationTarget],
        actor_id: UUID | None,
    ) -> PaymentModel:
        obligations, installments = lock_for_settlement(
            self.session, tenant_id, (t.installment_id for t in targets)
        )

        for target in targets:
            installment = installments.get(target.installment_id)
            if installment is None:
                raise NotFoundError("Installment", str(target.installment_id))
            status = SettlementStatus(installment.status)
            if status in TERMINAL_STATUSES:
                raise InvalidStateError(
                    f"Installment {installment.id} is {status.value}",
                    entity="Installment",
                    entity_id=str(installment.id),
                    status=status.value,
                )
            outstanding = installment.amount - installment.settled_amount
            if target.amount > outstanding:
                raise OverAllocationError(str(installment.id), outstanding, target.amount)

        model = PaymentModel(
            tenant_id=tenant_id,
            amount=amount,
            payment_date=payment.payment_date,
            method=payment.method.value,
            reference=payment.reference,
            notes=payment.notes,
            created_by_id=actor_id,
        )
        today = self.clock.today()
        for target in targets:
            installment = installments[target.installment_id]
            model.allocations.append(
                AllocationModel(
                    tenant_id=tenant_id,
                    installment_id=installment.id,
                    installment=installment,
                    amount=target.amount,
                    created_by_id=actor_id,
                )
            )
            installment.settled_amount = installment.settled_amount + target.amount
            installment.updated_by_id = actor_id
            refresh_installment(installment, today)

        for obligation in obligations:
            refresh_obligation(obligation, today)

        self.session.add(model)
        self.session.flush()
        return model

    # ------------------------------------------------------------------
    # quick settle
    # ------------------------------------------------------------------

    def quick_settle(
        self,
        tenant_id: UUID,
        kind: ObligationKind,
        account_id: UUID,
        amount: Decimal,
        payment_date: date,
        method: PaymentMethod,
        notes: str | None = None,
        reference: str | None = None,
        actor_id: UUID | None = None,
    ) -> Payment:
        """
        Settle one obligation (or one of its installments) with one payment.

        ``account_id`` may be an obligation id of the given kind, in which
        case the obligation must have exactly one installment, or the id of
        an installment belonging to an obligation of that kind.
        """
        installment_id = self._resolve_quick_target(tenant_id, kind, account_id)
        request = PaymentRequest(
            amount=amount,
            payment_date=payment_date,
            method=method,
            reference=reference,
            notes=notes,
        )
        return self.create(
            tenant_id,
            request,
            [AllocationTarget(installment_id=installment_id, amount=amount)],
            actor_id=actor_id,
        )

    def _resolve_quick_target(
        self,
        tenant_id: UUID,
        kind: ObligationKind,
        account_id: UUID,
    ) -> UUID:
        model = model_for_kind(kind)
        obligation = self.session.execute(
            select(model).where(model.id == account_id, model.tenant_id == tenant_id)
        ).scalar_one_or_none()
        if obligation is not None:
            if len(obligation.installments) != 1:
                raise AmbiguousSettlementError(
                    str(account_id),
                    [
                        str(i.id)
                        for i in obligation.installments
                        if i.status not in (s.value for s in TERMINAL_STATUSES)
                    ],
                )
            return obligation.installments[0].id

        installment_id = self.session.execute(
            select(InstallmentModel.id)
            .join(model, model.id == InstallmentModel.obligation_id)
            .where(InstallmentModel.id == account_id, InstallmentModel.tenant_id == tenant_id)
        ).scalar_one_or_none()
        if installment_id is None:
            raise NotFoundError(kind.value.title(), str(account_id))
        return installment_id

    # ------------------------------------------------------------------
    # reverse
    # ------------------------------------------------------------------

    def reverse(
        self,
        tenant_id: UUID,
        payment_id: UUID,
        actor_id: UUID | None = None,
    ) -> ReversalResult:
        """
        Delete a payment and undo its allocations.

        Installments fall back PAID -> PARTIAL -> PENDING as their settled
        amount shrinks; cancelled installments stay CANCELLED.
        """
        with self._transaction("reverse_payment"):
            payment = self.session.execute(
                select(PaymentModel)
                .where(PaymentModel.id == payment_id, PaymentModel.tenant_id == tenant_id)
                .with_for_update()
            ).scalar_one_or_none()
            if payment is None:
                raise NotFoundError("Payment", str(payment_id))

            obligations, installments = lock_for_settlement(
                self.session, tenant_id, (a.installment_id for a in payment.allocations)
            )

            today = self.clock.today()
            for allocation in payment.allocations:
                installment = installments[allocation.installment_id]
                remaining = installment.settled_amount - allocation.amount
                if remaining < 0:
                    raise InvalidStateError(
                        f"Installment {installment.id} settled amount would become negative",
                        entity="Installment",
                        entity_id=str(installment.id),
                        status=installment.status,
                    )
                installment.settled_amount = remaining
                installment.updated_by_id = actor_id
                refresh_installment(installment, today)
            for obligation in obligations:
                refresh_obligation(obligation, today)

            result = ReversalResult(
                payment_id=payment.id,
                amount=payment.amount,
                installments=tuple(
                    InstallmentBalance(
                        installment_id=i.id,
                        obligation_id=i.obligation_id,
                        settled_amount=i.settled_amount,
                        status=SettlementStatus(i.status),
                    )
                    for i in sorted(installments.values(), key=lambda i: str(i.id))
                ),
            )
            self.session.delete(payment)
            self.session.flush()

        invalidate_tenant_views(self.cache, tenant_id)
        with LogContext.bind(payment_id=payment_id):
            logger.info(
                "payment_reversed",
                extra={
                    "amount": str(result.amount),
                    "installment_count": len(result.installments),
                },
            )
        return result

    # ------------------------------------------------------------------
    # metadata
    # ------------------------------------------------------------------

    def update_metadata(
        self,
        tenant_id: UUID,
        payment_id: UUID,
        *,
        payment_date: date | None = None,
        method: PaymentMethod | None = None,
        reference: str | None = None,
        notes: str | None = None,
        actor_id: UUID | None = None,
    ) -> Payment:
        """Edit descriptive fields only; amount and allocations are immutable."""
        with self._transaction("update_payment"):
            payment = self.session.execute(
                select(PaymentModel)
                .where(PaymentModel.id == payment_id, PaymentModel.tenant_id == tenant_id)
                .with_for_update()
            ).scalar_one_or_none()
            if payment is None:
                raise NotFoundError("Payment", str(payment_id))
            if payment_date is not None:
                payment.payment_date = payment_date
            if method is not None:
                payment.method = method.value
            if reference is not None:
                payment.reference = reference
            if notes is not None:
                payment.notes = notes
            payment.updated_by_id = actor_id
            self.session.flush()
            dto = payment.to_dto()

        invalidate_tenant_views(self.cache, tenant_id)
        with LogContext.bind(payment_id=payment_id):
            logger.info("payment_metadata_updated")
        return dto
