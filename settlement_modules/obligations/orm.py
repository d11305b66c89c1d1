"""
Obligation ORM Models (``settlement_modules.obligations.orm``).

Responsibility
--------------
SQLAlchemy persistence for obligations, installments and tags.  Payables
and receivables share the ``obligations`` table and are told apart by the
``kind`` discriminator (single-table inheritance), so installments of both
kinds live in one ``installments`` table and a payment can address either.

Guarantees
----------
* ``0 <= settled_amount <= amount`` and ``amount > 0`` are CHECK
  constraints on both tables; concurrent over-settlement fails at commit
  even if an application check were bypassed.
* Status is stored as the string value of ``SettlementStatus``.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from settlement_kernel.db.base import Base, TrackedBase, UUIDString
from settlement_kernel.domain.values import (
    ObligationKind,
    PaymentMethod,
    SettlementStatus,
)

obligation_tags = Table(
    "obligation_tags",
    Base.metadata,
    Column("obligation_id", UUIDString(), ForeignKey("obligations.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", UUIDString(), ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
)

installment_tags = Table(
    "installment_tags",
    Base.metadata,
    Column("installment_id", UUIDString(), ForeignKey("installments.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", UUIDString(), ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
)


class TagModel(TrackedBase):
    """Tenant-scoped label attached to obligations and installments."""

    __tablename__ = "tags"

    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_tags_tenant_name"),
    )

    tenant_id: Mapped[UUID] = mapped_column(nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    color: Mapped[str | None] = mapped_column(String(20), nullable=True)

    def to_dto(self):
        from settlement_modules.obligations.models import Tag

        return Tag(id=self.id, name=self.name, color=self.color)

    def __repr__(self) -> str:
        return f"<TagModel {self.name}>"


class ObligationModel(TrackedBase):
    """
    ORM model for obligations.

    Never instantiated directly: create ``PayableModel`` or
    ``ReceivableModel`` (see ``model_for_kind``).
    """

    __tablename__ = "obligations"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_obligations_amount_positive"),
        CheckConstraint("settled_amount >= 0", name="ck_obligations_settled_non_negative"),
        CheckConstraint("settled_amount <= amount", name="ck_obligations_settled_within_amount"),
        Index("idx_obligations_tenant_kind", "tenant_id", "kind"),
        Index("idx_obligations_status", "status"),
    )

    tenant_id: Mapped[UUID] = mapped_column(nullable=False)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    counterparty_id: Mapped[UUID] = mapped_column(nullable=False)
    category_id: Mapped[UUID | None] = mapped_column(nullable=True)
    document_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    settled_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    payment_method: Mapped[str | None] = mapped_column(String(30), nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SettlementStatus.PENDING.value
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    installments: Mapped[list["InstallmentModel"]] = relationship(
        back_populates="obligation",
        cascade="all, delete-orphan",
        order_by="InstallmentModel.installment_number",
        lazy="selectin",
    )
    tags: Mapped[list[TagModel]] = relationship(
        secondary=obligation_tags,
        lazy="selectin",
    )

    __mapper_args__ = {"polymorphic_on": "kind"}

    def to_dto(self):
        from settlement_modules.obligations.models import Obligation

        return Obligation(
            id=self.id,
            tenant_id=self.tenant_id,
            kind=ObligationKind(self.kind),
            counterparty_id=self.counterparty_id,
            amount=self.amount,
            settled_amount=self.settled_amount,
            due_date=self.due_date,
            status=SettlementStatus(self.status),
            category_id=self.category_id,
            document_number=self.document_number,
            payment_method=PaymentMethod(self.payment_method) if self.payment_method else None,
            notes=self.notes,
            installments=tuple(i.to_dto() for i in self.installments),
            tags=tuple(sorted((t.to_dto() for t in self.tags), key=lambda t: t.name)),
        )

    def __repr__(self) -> str:
        return (
            f"<{type(self).__name__} {self.id} "
            f"status={self.status} amount={self.amount} settled={self.settled_amount}>"
        )


class PayableModel(ObligationModel):
    """Obligation owed by the tenant to a vendor."""

    __mapper_args__ = {"polymorphic_identity": ObligationKind.PAYABLE.value}


class ReceivableModel(ObligationModel):
    """Obligation owed to the tenant by a customer."""

    __mapper_args__ = {"polymorphic_identity": ObligationKind.RECEIVABLE.value}


def model_for_kind(kind: ObligationKind) -> type[ObligationModel]:
    match kind:
        case ObligationKind.PAYABLE:
            return PayableModel
        case ObligationKind.RECEIVABLE:
            return ReceivableModel
    raise ValueError(f"Unknown obligation kind: {kind}")


class InstallmentModel(TrackedBase):
    """
    ORM model for installments.

    Guarantees:
        - ``is_overdue`` is a presentation flag over the base status,
          maintained by the allocation engine and the overdue sweep.
        - Numbers are contiguous 1..N per obligation after every edit.
    """

    __tablename__ = "installments"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_installments_amount_positive"),
        CheckConstraint("settled_amount >= 0", name="ck_installments_settled_non_negative"),
        CheckConstraint("settled_amount <= amount", name="ck_installments_settled_within_amount"),
        Index("idx_installments_obligation", "obligation_id"),
        Index("idx_installments_tenant_status_due", "tenant_id", "status", "due_date"),
    )

    tenant_id: Mapped[UUID] = mapped_column(nullable=False)
    obligation_id: Mapped[UUID] = mapped_column(
        ForeignKey("obligations.id", ondelete="CASCADE"), nullable=False
    )
    installment_number: Mapped[int] = mapped_column(Integer, nullable=False)
    total_installments: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    settled_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SettlementStatus.PENDING.value
    )
    is_overdue: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    obligation: Mapped[ObligationModel] = relationship(back_populates="installments")
    tags: Mapped[list[TagModel]] = relationship(
        secondary=installment_tags,
        lazy="selectin",
    )

    def to_dto(self):
        from settlement_modules.obligations.models import Installment

        return Installment(
            id=self.id,
            obligation_id=self.obligation_id,
            installment_number=self.installment_number,
            total_installments=self.total_installments,
            amount=self.amount,
            settled_amount=self.settled_amount,
            due_date=self.due_date,
            status=SettlementStatus(self.status),
            is_overdue=self.is_overdue,
            notes=self.notes,
            tags=tuple(sorted((t.to_dto() for t in self.tags), key=lambda t: t.name)),
        )

    def __repr__(self) -> str:
        return (
            f"<InstallmentModel {self.installment_number}/{self.total_installments} "
            f"status={self.status} amount={self.amount} settled={self.settled_amount}>"
        )
