"""
Payment Selector (``settlement_modules.payments.selector``).

Read-only access to payments: single payment lookup and the payment
history of an obligation.
"""

from uuid import UUID

from sqlalchemy import select

from settlement_kernel.domain.values import ObligationKind
from settlement_kernel.exceptions import NotFoundError
from settlement_kernel.selectors.base import BaseSelector
from settlement_modules.obligations.orm import InstallmentModel, ObligationModel, model_for_kind
from settlement_modules.payments.models import Payment
from settlement_modules.payments.orm import AllocationModel, PaymentModel


class PaymentSelector(BaseSelector):

    def get_payment(self, tenant_id: UUID, payment_id: UUID) -> Payment:
        payment = self.session.execute(
            select(PaymentModel).where(
                PaymentModel.id == payment_id, PaymentModel.tenant_id == tenant_id
            )
        ).scalar_one_or_none()
        if payment is None:
            raise NotFoundError("Payment", str(payment_id))
        return payment.to_dto()

    def payments_for_obligation(
        self,
        tenant_id: UUID,
        obligation_id: UUID,
        kind: ObligationKind | None = None,
    ) -> tuple[Payment, ...]:
        """
        Payments touching an obligation, newest first.

        Each payment's allocations are narrowed to the ones that settle this
        obligation; the payment amount is the full cash amount.
        """
        model = model_for_kind(kind) if kind is not None else ObligationModel
        exists = self.session.execute(
            select(model.id).where(model.id == obligation_id, model.tenant_id == tenant_id)
        ).scalar_one_or_none()
        if exists is None:
            raise NotFoundError(kind.value.title() if kind else "Obligation", str(obligation_id))

        payment_ids = (
            select(AllocationModel.payment_id)
            .join(InstallmentModel, InstallmentModel.id == AllocationModel.installment_id)
            .where(
                InstallmentModel.obligation_id == obligation_id,
                AllocationModel.tenant_id == tenant_id,
            )
        )
        payments = self.session.execute(
            select(PaymentModel)
            .where(PaymentModel.id.in_(payment_ids), PaymentModel.tenant_id == tenant_id)
            .order_by(PaymentModel.payment_date.desc(), PaymentModel.created_at.desc())
        ).scalars().all()
        return tuple(p.to_dto(obligation_id=obligation_id) for p in payments)
