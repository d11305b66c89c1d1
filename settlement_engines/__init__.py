"""
Module: settlement_engines
Responsibility:
    Package entrypoint re-exporting the pure calculation engines used by the
    settlement modules: money splitting, status derivation and installment
    scheduling.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import settlement_kernel.domain, db.types, exceptions and
    logging_config.
    MUST NOT import settlement_modules, settlement_batch or settlement_services.

Invariants enforced:
    - Purity: engines NEVER call ``datetime.now()`` or ``date.today()``;
      "today" is always a parameter.
    - Decimal-only arithmetic.
    - Determinism: identical inputs always produce identical outputs.
"""

from settlement_engines.scheduling import (
    InstallmentScheduler,
    ScheduledInstallment,
    add_months,
    renumber_by_due_date,
)
from settlement_engines.splitting import split_amount
from settlement_engines.status import (
    DerivedState,
    derive_aggregate_status,
    derive_state,
    derive_status,
    is_overdue,
    outstanding_amount,
)

__all__ = [
    "InstallmentScheduler",
    "ScheduledInstallment",
    "add_months",
    "renumber_by_due_date",
    "split_amount",
    "DerivedState",
    "derive_aggregate_status",
    "derive_state",
    "derive_status",
    "is_overdue",
    "outstanding_amount",
]
