"""Payments module: payments, allocations and the allocation engine."""

from settlement_modules.payments.models import (
    Allocation,
    AllocationTarget,
    Payment,
    PaymentRequest,
    ReversalResult,
)

__all__ = [
    "Allocation",
    "AllocationTarget",
    "Payment",
    "PaymentRequest",
    "ReversalResult",
]
