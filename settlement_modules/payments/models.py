"""
Payment Domain Models (``settlement_modules.payments.models``).

Frozen value objects flowing into and out of ``AllocationEngine``.
A payment is a single cash event; allocations spread its amount over
installments of any obligation (payable or receivable) of the tenant.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from settlement_kernel.domain.values import PaymentMethod, SettlementStatus


@dataclass(frozen=True)
class PaymentRequest:
    """Financial and descriptive fields of a new payment."""

    amount: Decimal
    payment_date: date
    method: PaymentMethod
    reference: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class AllocationTarget:
    installment_id: UUID
    amount: Decimal


@dataclass(frozen=True)
class Allocation:
    id: UUID
    installment_id: UUID
    obligation_id: UUID
    installment_number: int
    amount: Decimal


@dataclass(frozen=True)
class Payment:
    id: UUID
    tenant_id: UUID
    amount: Decimal
    payment_date: date
    method: PaymentMethod
    reference: str | None
    notes: str | None
    allocations: tuple[Allocation, ...] = ()


@dataclass(frozen=True)
class InstallmentBalance:
    """Installment state after a reversal."""

    installment_id: UUID
    obligation_id: UUID
    settled_amount: Decimal
    status: SettlementStatus


@dataclass(frozen=True)
class ReversalResult:
    payment_id: UUID
    amount: Decimal
    installments: tuple[InstallmentBalance, ...]
