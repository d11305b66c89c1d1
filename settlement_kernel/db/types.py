"""
Module: settlement_kernel.db.types
Responsibility: Money precision constants and the one rounding helper.
Architecture position: Kernel > DB.  Imported by domain/, engines, modules
    and services; imports none of them.

Amounts carry MONEY_DECIMAL_PLACES (2) places and round half-up.  No
floats anywhere in the settlement engine.
"""

from decimal import ROUND_HALF_UP, Decimal

MONEY_DECIMAL_PLACES = 2
MONEY_QUANTUM = Decimal("0.01")
DEFAULT_ROUNDING = ROUND_HALF_UP


def round_money(value: Decimal, rounding: str = DEFAULT_ROUNDING) -> Decimal:
    """Quantize ``value`` to cents."""
    return value.quantize(MONEY_QUANTUM, rounding=rounding)
