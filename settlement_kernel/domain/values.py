"""
Domain values -- enumerations and boundary parsers.

Responsibility:
    The shared vocabulary of the settlement engine (obligation kinds,
    settlement statuses, payment methods) and the parsers that turn raw
    request values into Decimal amounts and dates.

Invariants enforced:
    - Amounts are Decimal with at most two decimal places; floats are
      rejected outright.
    - Status is one of the four base states.  "Overdue" is not a status;
      it is derived from the due date (see settlement_engines.status).
"""

from datetime import date
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any
from uuid import UUID

from settlement_kernel.db.types import MONEY_DECIMAL_PLACES
from settlement_kernel.exceptions import InvalidArgumentError


class ObligationKind(str, Enum):
    """Direction of an obligation."""

    PAYABLE = "PAYABLE"
    RECEIVABLE = "RECEIVABLE"


class SettlementStatus(str, Enum):
    """Base settlement status of an installment or obligation."""

    PENDING = "PENDING"
    PARTIAL = "PARTIAL"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


OPEN_STATUSES = frozenset({SettlementStatus.PENDING, SettlementStatus.PARTIAL})
TERMINAL_STATUSES = frozenset({SettlementStatus.PAID, SettlementStatus.CANCELLED})


class PaymentMethod(str, Enum):
    PIX = "PIX"
    BOLETO = "BOLETO"
    BANK_TRANSFER = "BANK_TRANSFER"
    CASH = "CASH"
    CREDIT_CARD = "CREDIT_CARD"
    DEBIT_CARD = "DEBIT_CARD"
    CHECK = "CHECK"
    OTHER = "OTHER"


def parse_money(value: Any, field: str = "amount") -> Decimal:
    """
    Parse a monetary amount.

    Accepts Decimal, int or numeric string.  Raises InvalidArgumentError for
    floats, non-numeric input, non-finite values or more than two decimal
    places.  Sign is not checked here.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise InvalidArgumentError(
            f"{field} must be a decimal string, not {type(value).__name__}",
            field=field,
        )
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, str)):
        try:
            amount = Decimal(str(value).strip())
        except InvalidOperation:
            raise InvalidArgumentError(f"{field} is not a number: {value!r}", field=field)
    else:
        raise InvalidArgumentError(f"{field} is required", field=field)

    if not amount.is_finite():
        raise InvalidArgumentError(f"{field} must be finite", field=field)
    if amount.as_tuple().exponent < -MONEY_DECIMAL_PLACES:
        raise InvalidArgumentError(
            f"{field} has more than {MONEY_DECIMAL_PLACES} decimal places: {amount}",
            field=field,
        )
    return amount


def parse_date(value: Any, field: str = "date") -> date:
    """Parse an ISO ``YYYY-MM-DD`` date (or pass a date through)."""
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            pass
    raise InvalidArgumentError(f"{field} must be an ISO date (YYYY-MM-DD)", field=field)


def parse_enum(enum_cls: type[Enum], value: Any, field: str) -> Any:
    """Look up an enum member by value, raising InvalidArgumentError."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).upper())
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise InvalidArgumentError(
            f"{field} must be one of: {allowed}", field=field
        )


def parse_uuid(value: Any, field: str = "id") -> UUID:
    if isinstance(value, UUID):
        return value
    if isinstance(value, str):
        try:
            return UUID(value.strip())
        except ValueError:
            pass
    raise InvalidArgumentError(f"{field} must be a UUID", field=field)
