"""
Module: settlement_engines.scheduling
Responsibility:
    Build the installment schedule of a new obligation: amounts from the
    money splitter, monthly due dates from the first due date.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - Installment numbers are 1..N with N == count.
    - sum(amounts) == principal (delegated to split_amount).
    - Monthly due dates keep the first due date's day-of-month, clamped to
      the last day of shorter months (Jan 31 -> Feb 28/29 -> Mar 31).
    - Explicit due dates, when given, replace the monthly progression and
      must be non-descending.

Failure modes:
    - InvalidArgumentError for count outside 1..max_installments, a
      principal too small to give every installment a cent, or explicit
      due dates of the wrong length or order.
"""

from __future__ import annotations

import calendar
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Hashable

from settlement_engines.splitting import split_amount
from settlement_engines.tracer import traced_engine
from settlement_kernel.db.types import MONEY_QUANTUM
from settlement_kernel.exceptions import InvalidArgumentError

DEFAULT_MAX_INSTALLMENTS = 120


@dataclass(frozen=True)
class ScheduledInstallment:
    number: int
    total_installments: int
    amount: Decimal
    due_date: date


def add_months(anchor: date, months: int) -> date:
    """Shift ``anchor`` by whole months, clamping to the month's last day."""
    month_index = anchor.month - 1 + months
    year = anchor.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(anchor.day, last_day))


def renumber_by_due_date(
    items: Sequence[tuple[Hashable, date, int]],
) -> dict[Hashable, int]:
    """
    Assign installment numbers 1..N ordered by due date.

    ``items`` are (key, due_date, current_number); ties keep their current
    relative order.
    """
    ordered = sorted(items, key=lambda item: (item[1], item[2]))
    return {key: index for index, (key, _, _) in enumerate(ordered, start=1)}


class InstallmentScheduler:
    """
    Computes installment schedules.

    Contract:
        Stateless apart from the configured installment ceiling.  The
        result is a tuple of frozen ScheduledInstallment values ready to be
        persisted by the obligation service.
    """

    def __init__(self, max_installments: int = DEFAULT_MAX_INSTALLMENTS):
        if max_installments < 1:
            raise ValueError("max_installments must be >= 1")
        self.max_installments = max_installments

    @traced_engine(
        "installment_scheduler",
        "1.0",
        fingerprint_fields=("principal", "first_due_date", "count", "due_dates"),
    )
    def schedule(
        self,
        principal: Decimal,
        first_due_date: date,
        count: int = 1,
        due_dates: Sequence[date] | None = None,
    ) -> tuple[ScheduledInstallment, ...]:
        if isinstance(count, bool) or not isinstance(count, int):
            raise InvalidArgumentError("installment count must be an integer", field="installmentCount")
        if count < 1 or count > self.max_installments:
            raise InvalidArgumentError(
                f"installment count must be between 1 and {self.max_installments}, got {count}",
                field="installmentCount",
            )

        amounts = split_amount(principal, count)
        if amounts[0] < MONEY_QUANTUM:
            raise InvalidArgumentError(
                f"principal {principal} is too small to split into {count} installments",
                field="amount",
            )

        if due_dates is not None:
            dates = list(due_dates)
            if len(dates) != count:
                raise InvalidArgumentError(
                    f"expected {count} due dates, got {len(dates)}", field="dueDates"
                )
            if any(later < earlier for earlier, later in zip(dates, dates[1:])):
                raise InvalidArgumentError(
                    "due dates must be in ascending order", field="dueDates"
                )
        else:
            dates = [add_months(first_due_date, offset) for offset in range(count)]

        return tuple(
            ScheduledInstallment(
                number=index + 1,
                total_installments=count,
                amount=amount,
                due_date=due,
            )
            for index, (amount, due) in enumerate(zip(amounts, dates))
        )
