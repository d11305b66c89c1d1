"""
Obligation Domain Models (``settlement_modules.obligations.models``).

Responsibility
--------------
Frozen value objects for obligations (payables and receivables), their
installments and tags.  These flow *out of* ``ObligationService`` and the
selectors as immutable snapshots.

Invariants enforced
-------------------
* All monetary fields are ``Decimal``.
* ``sum(installment.amount) == obligation.amount`` and
  ``sum(installment.settled_amount) == obligation.settled_amount``
  (maintained by the services, asserted in tests).
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from uuid import UUID

from settlement_kernel.domain.values import ObligationKind, PaymentMethod, SettlementStatus


@dataclass(frozen=True)
class Tag:
    id: UUID
    name: str
    color: str | None = None


@dataclass(frozen=True)
class Installment:
    """One scheduled portion of an obligation."""

    id: UUID
    obligation_id: UUID
    installment_number: int
    total_installments: int
    amount: Decimal
    settled_amount: Decimal
    due_date: date
    status: SettlementStatus
    is_overdue: bool = False
    notes: str | None = None
    tags: tuple[Tag, ...] = ()

    @property
    def outstanding(self) -> Decimal:
        return self.amount - self.settled_amount


@dataclass(frozen=True)
class Obligation:
    """A payable or receivable split into one or more installments."""

    id: UUID
    tenant_id: UUID
    kind: ObligationKind
    counterparty_id: UUID
    amount: Decimal
    settled_amount: Decimal
    due_date: date
    status: SettlementStatus
    category_id: UUID | None = None
    document_number: str | None = None
    payment_method: PaymentMethod | None = None
    notes: str | None = None
    installments: tuple[Installment, ...] = field(default_factory=tuple)
    tags: tuple[Tag, ...] = ()

    @property
    def outstanding(self) -> Decimal:
        return self.amount - self.settled_amount
