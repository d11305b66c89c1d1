"""
Payment ORM Models (``settlement_modules.payments.orm``).

Guarantees
----------
* A payment's financial fields (amount, allocations) never change after
  insert; only date, method, reference and notes are editable.
* One allocation per (payment, installment) pair.
* Deleting a payment deletes its allocations.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from settlement_kernel.db.base import TrackedBase
from settlement_kernel.domain.values import PaymentMethod
from settlement_modules.obligations.orm import InstallmentModel


class PaymentModel(TrackedBase):
    __tablename__ = "payments"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_payments_amount_positive"),
        Index("idx_payments_tenant_date", "tenant_id", "payment_date"),
    )

    tenant_id: Mapped[UUID] = mapped_column(nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    method: Mapped[str] = mapped_column(String(30), nullable=False)
    reference: Mapped[str | None] = mapped_column(String(200), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    allocations: Mapped[list["AllocationModel"]] = relationship(
        back_populates="payment",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def to_dto(self, obligation_id: UUID | None = None):
        """Snapshot; with ``obligation_id``, only that obligation's allocations."""
        from settlement_modules.payments.models import Payment

        allocations = [a for a in self.allocations if a.installment is not None]
        if obligation_id is not None:
            allocations = [a for a in allocations if a.installment.obligation_id == obligation_id]
        return Payment(
            id=self.id,
            tenant_id=self.tenant_id,
            amount=self.amount,
            payment_date=self.payment_date,
            method=PaymentMethod(self.method),
            reference=self.reference,
            notes=self.notes,
            allocations=tuple(
                a.to_dto()
                for a in sorted(
                    allocations,
                    key=lambda a: (str(a.installment.obligation_id), a.installment.installment_number),
                )
            ),
        )

    def __repr__(self) -> str:
        return f"<PaymentModel {self.id} amount={self.amount} method={self.method}>"


class AllocationModel(TrackedBase):
    __tablename__ = "payment_allocations"

    __table_args__ = (
        UniqueConstraint("payment_id", "installment_id", name="uq_payment_allocations_payment_installment"),
        CheckConstraint("amount > 0", name="ck_payment_allocations_amount_positive"),
        Index("idx_payment_allocations_installment", "installment_id"),
    )

    tenant_id: Mapped[UUID] = mapped_column(nullable=False)
    payment_id: Mapped[UUID] = mapped_column(
        ForeignKey("payments.id", ondelete="CASCADE"), nullable=False
    )
    installment_id: Mapped[UUID] = mapped_column(
        ForeignKey("installments.id", ondelete="RESTRICT"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(nullable=False)

    payment: Mapped[PaymentModel] = relationship(back_populates="allocations")
    installment: Mapped[InstallmentModel] = relationship(lazy="joined")

    def to_dto(self):
        from settlement_modules.payments.models import Allocation

        return Allocation(
            id=self.id,
            installment_id=self.installment_id,
            obligation_id=self.installment.obligation_id,
            installment_number=self.installment.installment_number,
            amount=self.amount,
        )

    def __repr__(self) -> str:
        return f"<AllocationModel {self.installment_id} amount={self.amount}>"
