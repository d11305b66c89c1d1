"""
Request and response bodies of the settlement API.

Field names are snake_case in Python and camelCase on the wire
(``alias_generator=to_camel``).  Money is accepted only as a decimal
string or integer with at most two places, never as a JSON float, and is
rendered as a two-place string.  Enum inputs are case-insensitive.

Response models are filled from the frozen dataclasses the modules return.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Annotated, Any
from uuid import UUID

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    PlainSerializer,
    StrictBool,
)
from pydantic.alias_generators import to_camel

from settlement_kernel.db.types import round_money
from settlement_kernel.domain.values import (
    ObligationKind,
    PaymentMethod,
    SettlementStatus,
    parse_money,
)
from settlement_kernel.exceptions import InvalidArgumentError


def _money_in(value: Any) -> Decimal:
    try:
        return parse_money(value)
    except InvalidArgumentError as exc:
        raise ValueError(str(exc)) from exc


def _upper(value: Any) -> Any:
    return value.upper() if isinstance(value, str) else value


MoneyIn = Annotated[Decimal, BeforeValidator(_money_in)]
MoneyOut = Annotated[Decimal, PlainSerializer(lambda v: str(round_money(v)), return_type=str)]
MethodIn = Annotated[PaymentMethod, BeforeValidator(_upper)]
KindIn = Annotated[ObligationKind, BeforeValidator(_upper)]


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# -----------------------------------------------------------------------------
# Requests
# -----------------------------------------------------------------------------


class AllocationIn(CamelModel):
    installment_id: UUID
    amount: MoneyIn


class PaymentCreate(CamelModel):
    amount: MoneyIn
    payment_date: date
    method: MethodIn
    reference: str | None = None
    notes: str | None = None
    allocations: list[AllocationIn]


class QuickSettleCreate(CamelModel):
    """Settle one obligation, or one installment of it, in a single call."""

    kind: KindIn = Field(alias="type")
    account_id: UUID
    amount: MoneyIn
    payment_date: date
    method: MethodIn
    reference: str | None = None
    notes: str | None = None


class PaymentUpdate(CamelModel):
    # amount and allocations are immutable; sending them is rejected
    model_config = ConfigDict(extra="forbid")

    payment_date: date | None = None
    method: MethodIn | None = None
    reference: str | None = None
    notes: str | None = None


class ObligationCreate(CamelModel):
    counterparty_id: UUID
    amount: MoneyIn
    due_date: date | None = None
    due_dates: list[date] | None = None
    installment_count: int | None = None
    category_id: UUID | None = None
    document_number: str | None = None
    payment_method: MethodIn | None = None
    notes: str | None = None
    tag_ids: list[UUID] = []


class ObligationUpdate(CamelModel):
    counterparty_id: UUID | None = None
    category_id: UUID | None = None
    document_number: str | None = None
    payment_method: MethodIn | None = None
    notes: str | None = None
    tag_ids: list[UUID] | None = None


class InstallmentUpdate(CamelModel):
    amount: MoneyIn | None = None
    due_date: date | None = None
    notes: str | None = None
    tag_ids: list[UUID] | None = None


class AlertSettingsUpdate(CamelModel):
    notification_lead_days: int | None = None
    notification_polling_seconds: int | None = None
    show_overdue: StrictBool | None = None


# -----------------------------------------------------------------------------
# Responses
# -----------------------------------------------------------------------------


class TagOut(CamelModel):
    id: UUID
    name: str
    color: str | None = None


class InstallmentOut(CamelModel):
    id: UUID
    obligation_id: UUID
    installment_number: int
    total_installments: int
    amount: MoneyOut
    settled_amount: MoneyOut
    due_date: date
    status: SettlementStatus
    is_overdue: bool
    notes: str | None = None
    tags: list[TagOut] = []


class ObligationOut(CamelModel):
    id: UUID
    tenant_id: UUID
    kind: ObligationKind
    counterparty_id: UUID
    amount: MoneyOut
    settled_amount: MoneyOut
    due_date: date
    status: SettlementStatus
    category_id: UUID | None = None
    document_number: str | None = None
    payment_method: PaymentMethod | None = None
    notes: str | None = None
    installments: list[InstallmentOut] = []
    tags: list[TagOut] = []


class AllocationOut(CamelModel):
    id: UUID
    installment_id: UUID
    obligation_id: UUID
    installment_number: int
    amount: MoneyOut


class PaymentOut(CamelModel):
    id: UUID
    tenant_id: UUID
    amount: MoneyOut
    payment_date: date
    method: PaymentMethod
    reference: str | None = None
    notes: str | None = None
    allocations: list[AllocationOut] = []


class PaymentHistoryOut(CamelModel):
    data: list[PaymentOut]


class InstallmentBalanceOut(CamelModel):
    installment_id: UUID
    obligation_id: UUID
    settled_amount: MoneyOut
    status: SettlementStatus


class ReversalOut(CamelModel):
    payment_id: UUID
    amount: MoneyOut
    installments: list[InstallmentBalanceOut]


class AlertSettingsOut(CamelModel):
    lead_days: int
    polling_seconds: int
    show_overdue: bool


class DueAlertOut(CamelModel):
    alert_id: str
    kind: ObligationKind
    installment_id: UUID
    obligation_id: UUID
    counterparty_id: UUID
    category_id: UUID | None = None
    document_number: str | None = None
    due_date: date
    days_until_due: int
    is_overdue: bool
    amount: MoneyOut
    settled_amount: MoneyOut
    pending_amount: MoneyOut
    installment_number: int
    total_installments: int
    status: SettlementStatus
    tags: list[TagOut] = []


class DueAlertFeedOut(CamelModel):
    data: list[DueAlertOut]
    total: int
    settings: AlertSettingsOut
