"""
Due Alert Selector (``settlement_modules.alerts.selector``).

Responsibility
--------------
Read-only aggregation of open installments of both obligation kinds into
a single notification list.

Guarantees
----------
* Only PENDING and PARTIAL installments of non-cancelled obligations.
* Window: ``due_date <= today + lead_days``; with ``include_overdue``
  false, additionally ``due_date >= today``.
* Order: overdue items first, then upcoming, each by ascending due date
  (ties broken by obligation and installment number).
* ``total`` counts every match before truncation to ``limit``; ``limit`` is
  clamped to 1..200.
* Tags merge the obligation's tags first, then the installment's, with
  duplicates (same tag id) kept once.
"""

from datetime import date, timedelta
from uuid import UUID

from sqlalchemy import case, func, select

from settlement_engines.status import is_overdue, outstanding_amount
from settlement_kernel.domain.values import ObligationKind, SettlementStatus
from settlement_kernel.selectors.base import BaseSelector
from settlement_modules.alerts.config import LIMIT_RANGE
from settlement_modules.alerts.models import DueAlert, DueAlertPage, alert_id_for
from settlement_modules.obligations.orm import InstallmentModel, ObligationModel

_OPEN = (SettlementStatus.PENDING.value, SettlementStatus.PARTIAL.value)


class DueAlertSelector(BaseSelector):

    def alerts(
        self,
        tenant_id: UUID,
        today: date,
        lead_days: int,
        include_overdue: bool,
        limit: int,
    ) -> DueAlertPage:
        limit = max(LIMIT_RANGE[0], min(LIMIT_RANGE[1], limit))
        horizon = today + timedelta(days=lead_days)

        conditions = [
            InstallmentModel.tenant_id == tenant_id,
            InstallmentModel.status.in_(_OPEN),
            InstallmentModel.due_date <= horizon,
            ObligationModel.status != SettlementStatus.CANCELLED.value,
        ]
        if not include_overdue:
            conditions.append(InstallmentModel.due_date >= today)

        total = self.session.execute(
            select(func.count())
            .select_from(InstallmentModel)
            .join(ObligationModel, ObligationModel.id == InstallmentModel.obligation_id)
            .where(*conditions)
        ).scalar_one()

        rows = self.session.execute(
            select(InstallmentModel, ObligationModel)
            .join(ObligationModel, ObligationModel.id == InstallmentModel.obligation_id)
            .where(*conditions)
            .order_by(
                case((InstallmentModel.due_date < today, 0), else_=1),
                InstallmentModel.due_date,
                ObligationModel.id,
                InstallmentModel.installment_number,
            )
            .limit(limit)
        ).all()

        items = tuple(
            self._to_alert(installment, obligation, today)
            for installment, obligation in rows
        )
        return DueAlertPage(items=items, total=total)

    @staticmethod
    def _to_alert(
        installment: InstallmentModel,
        obligation: ObligationModel,
        today: date,
    ) -> DueAlert:
        kind = ObligationKind(obligation.kind)
        status = SettlementStatus(installment.status)

        merged = {}
        for tag in list(obligation.tags) + list(installment.tags):
            merged.setdefault(tag.id, tag.to_dto())

        return DueAlert(
            alert_id=alert_id_for(kind, installment.id, installment.due_date),
            kind=kind,
            installment_id=installment.id,
            obligation_id=obligation.id,
            counterparty_id=obligation.counterparty_id,
            category_id=obligation.category_id,
            document_number=obligation.document_number,
            due_date=installment.due_date,
            days_until_due=(installment.due_date - today).days,
            is_overdue=is_overdue(status, installment.due_date, today),
            amount=installment.amount,
            settled_amount=installment.settled_amount,
            pending_amount=outstanding_amount(installment.amount, installment.settled_amount),
            installment_number=installment.installment_number,
            total_installments=installment.total_installments,
            status=status,
            tags=tuple(merged.values()),
        )
