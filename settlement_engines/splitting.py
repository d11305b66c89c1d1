"""
Module: settlement_engines.splitting
Responsibility:
    Split a principal into N installment amounts that sum exactly to the
    principal.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - sum(result) == total, exactly.
    - result[0..N-2] are all equal to floor(total / N) at two decimals.
    - The rounding remainder lands on the LAST installment, so the last
      amount is >= every other amount.

Failure modes:
    - InvalidArgumentError when total <= 0, count < 1, or total has more
      than two decimal places.

Usage:
    >>> split_amount(Decimal("100.00"), 3)
    (Decimal('33.33'), Decimal('33.33'), Decimal('33.34'))
"""

from __future__ import annotations

from decimal import ROUND_FLOOR, Decimal

from settlement_engines.tracer import traced_engine
from settlement_kernel.db.types import MONEY_QUANTUM
from settlement_kernel.domain.values import parse_money
from settlement_kernel.exceptions import InvalidArgumentError


@traced_engine("money_splitter", "1.0", fingerprint_fields=("total", "count"))
def split_amount(total: Decimal, count: int) -> tuple[Decimal, ...]:
    total = parse_money(total, field="total")
    if total <= 0:
        raise InvalidArgumentError(f"total must be positive, got {total}", field="total")
    if isinstance(count, bool) or not isinstance(count, int) or count < 1:
        raise InvalidArgumentError(
            f"count must be an integer >= 1, got {count!r}", field="count"
        )

    base = (total / count).quantize(MONEY_QUANTUM, rounding=ROUND_FLOOR)
    remainder = total - base * count
    return tuple([base] * (count - 1) + [base + remainder])
