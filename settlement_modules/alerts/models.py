"""
Due Alert Domain Models (``settlement_modules.alerts.models``).

``DueAlert`` is one notification row: an open installment (payable or
receivable) that is overdue or due within the tenant's lead window.
Its ``alert_id`` is stable for a given installment and due date, so
clients can deduplicate across polls.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from settlement_kernel.domain.values import ObligationKind, SettlementStatus
from settlement_modules.obligations.models import Tag


@dataclass(frozen=True)
class AlertSettings:
    lead_days: int
    polling_seconds: int
    show_overdue: bool


@dataclass(frozen=True)
class DueAlert:
    alert_id: str
    kind: ObligationKind
    installment_id: UUID
    obligation_id: UUID
    counterparty_id: UUID
    category_id: UUID | None
    document_number: str | None
    due_date: date
    days_until_due: int
    is_overdue: bool
    amount: Decimal
    settled_amount: Decimal
    pending_amount: Decimal
    installment_number: int
    total_installments: int
    status: SettlementStatus
    tags: tuple[Tag, ...] = ()


@dataclass(frozen=True)
class DueAlertPage:
    """Truncated alert list plus the count before truncation."""

    items: tuple[DueAlert, ...]
    total: int


@dataclass(frozen=True)
class DueAlertFeed:
    data: tuple[DueAlert, ...]
    total: int
    settings: AlertSettings


def alert_id_for(kind: ObligationKind, installment_id: UUID, due_date: date) -> str:
    return f"{kind.value}:{installment_id}:{due_date.isoformat()}"
