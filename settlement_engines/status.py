"""
Module: settlement_engines.status
Responsibility:
    Derive the settlement status of an installment (or an obligation) from
    its amount, settled amount and manual cancellation, and decide whether
    it is overdue relative to a given "today".

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Persisted status columns
    are caches of these functions and are recomputed at the end of every
    mutating transaction.

Rules (first match wins):
    1. cancelled                -> CANCELLED
    2. settled >= amount        -> PAID
    3. settled == 0             -> PENDING
    4. otherwise                -> PARTIAL

Overdue is a presentation attribute, not a status: an installment is
overdue when its base status is PENDING or PARTIAL and due_date < today.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable

from settlement_kernel.domain.values import OPEN_STATUSES, SettlementStatus


@dataclass(frozen=True)
class DerivedState:
    """Base status plus the overdue presentation flag."""

    status: SettlementStatus
    is_overdue: bool


def derive_status(
    amount: Decimal,
    settled: Decimal,
    cancelled: bool = False,
) -> SettlementStatus:
    if cancelled:
        return SettlementStatus.CANCELLED
    if settled >= amount:
        return SettlementStatus.PAID
    if settled == 0:
        return SettlementStatus.PENDING
    return SettlementStatus.PARTIAL


def is_overdue(status: SettlementStatus, due_date: date, today: date) -> bool:
    return status in OPEN_STATUSES and due_date < today


def derive_state(
    amount: Decimal,
    settled: Decimal,
    due_date: date,
    today: date,
    cancelled: bool = False,
) -> DerivedState:
    """Full derivation: base status and overdue flag in one call."""
    status = derive_status(amount, settled, cancelled)
    return DerivedState(status=status, is_overdue=is_overdue(status, due_date, today))


def derive_aggregate_status(
    parts: Iterable[tuple[Decimal, Decimal]],
    cancelled: bool = False,
) -> tuple[Decimal, SettlementStatus]:
    """
    Aggregate an obligation from its installments' (amount, settled) pairs.

    Returns (total settled, status) where the status applies the same rules
    to the summed amounts.
    """
    total_amount = Decimal("0")
    total_settled = Decimal("0")
    for amount, settled in parts:
        total_amount += amount
        total_settled += settled
    return total_settled, derive_status(total_amount, total_settled, cancelled)


def outstanding_amount(amount: Decimal, settled: Decimal) -> Decimal:
    """Remaining balance, never negative."""
    remaining = amount - settled
    return remaining if remaining > 0 else Decimal("0.00")
