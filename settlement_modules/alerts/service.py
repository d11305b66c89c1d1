"""
Due Alert Service (``settlement_modules.alerts.service``).

Resolves a tenant's alert settings (stored row or config defaults), serves
the due-alert feed with those settings, and updates the stored settings.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from settlement_kernel.domain.clock import Clock
from settlement_kernel.exceptions import InvalidArgumentError
from settlement_kernel.logging_config import get_logger
from settlement_kernel.services.base import BaseService
from settlement_modules.alerts.config import (
    LEAD_DAYS_RANGE,
    LIMIT_RANGE,
    POLLING_SECONDS_RANGE,
    DueAlertConfig,
)
from settlement_modules.alerts.models import AlertSettings, DueAlertFeed
from settlement_modules.alerts.orm import TenantAlertSettingsModel
from settlement_modules.alerts.selector import DueAlertSelector

logger = get_logger("modules.alerts.service")


def _check_range(value: object, bounds: tuple[int, int], field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgumentError(f"{field} must be an integer", field=field)
    if not bounds[0] <= value <= bounds[1]:
        raise InvalidArgumentError(
            f"{field} must be between {bounds[0]} and {bounds[1]}", field=field
        )
    return value


class DueAlertService(BaseService):

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: DueAlertConfig | None = None,
    ):
        super().__init__(session, clock)
        self.config = config or DueAlertConfig()

    def get_settings(self, tenant_id: UUID) -> AlertSettings:
        row = self._settings_row(tenant_id)
        if row is None:
            return AlertSettings(
                lead_days=self.config.lead_days,
                polling_seconds=self.config.polling_seconds,
                show_overdue=self.config.show_overdue,
            )
        return row.to_dto()

    def update_settings(
        self,
        tenant_id: UUID,
        *,
        lead_days: int | None = None,
        polling_seconds: int | None = None,
        show_overdue: bool | None = None,
        actor_id: UUID | None = None,
    ) -> AlertSettings:
        current = self.get_settings(tenant_id)
        new_lead = current.lead_days if lead_days is None else _check_range(
            lead_days, LEAD_DAYS_RANGE, "notificationLeadDays"
        )
        new_polling = current.polling_seconds if polling_seconds is None else _check_range(
            polling_seconds, POLLING_SECONDS_RANGE, "notificationPollingSeconds"
        )
        new_show = current.show_overdue if show_overdue is None else bool(show_overdue)

        with self._transaction("update_alert_settings"):
            row = self._settings_row(tenant_id)
            if row is None:
                row = TenantAlertSettingsModel(tenant_id=tenant_id, created_by_id=actor_id)
                self.session.add(row)
            row.lead_days = new_lead
            row.polling_seconds = new_polling
            row.show_overdue = new_show
            row.updated_by_id = actor_id
            self.session.flush()
            dto = row.to_dto()

        logger.info(
            "alert_settings_updated",
            extra={"lead_days": new_lead, "polling_seconds": new_polling, "show_overdue": new_show},
        )
        return dto

    def due_alerts(self, tenant_id: UUID, limit: int | None = None) -> DueAlertFeed:
        if limit is None:
            limit = self.config.default_limit
        else:
            limit = _check_range(limit, (LIMIT_RANGE[0], self.config.max_limit), "limit")

        settings = self.get_settings(tenant_id)
        page = DueAlertSelector(self.session).alerts(
            tenant_id,
            today=self.clock.today(),
            lead_days=settings.lead_days,
            include_overdue=settings.show_overdue,
            limit=limit,
        )
        return DueAlertFeed(data=page.items, total=page.total, settings=settings)

    def _settings_row(self, tenant_id: UUID) -> TenantAlertSettingsModel | None:
        return self.session.execute(
            select(TenantAlertSettingsModel).where(TenantAlertSettingsModel.tenant_id == tenant_id)
        ).scalar_one_or_none()
