"""Pure domain vocabulary shared by engines, modules and services."""

from settlement_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from settlement_kernel.domain.values import (
    ObligationKind,
    PaymentMethod,
    SettlementStatus,
    parse_date,
    parse_money,
)

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "ObligationKind",
    "PaymentMethod",
    "SettlementStatus",
    "parse_date",
    "parse_money",
]
