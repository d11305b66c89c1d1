"""
Due Alert ORM Models (``settlement_modules.alerts.orm``).

One optional settings row per tenant; absent rows fall back to
``DueAlertConfig`` defaults.
"""

from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from settlement_kernel.db.base import TrackedBase


class TenantAlertSettingsModel(TrackedBase):
    __tablename__ = "tenant_alert_settings"

    __table_args__ = (
        UniqueConstraint("tenant_id", name="uq_tenant_alert_settings_tenant"),
        CheckConstraint("lead_days BETWEEN 1 AND 60", name="ck_tenant_alert_settings_lead_days"),
        CheckConstraint(
            "polling_seconds BETWEEN 15 AND 300",
            name="ck_tenant_alert_settings_polling_seconds",
        ),
    )

    tenant_id: Mapped[UUID] = mapped_column(nullable=False)
    lead_days: Mapped[int] = mapped_column(Integer, nullable=False)
    polling_seconds: Mapped[int] = mapped_column(Integer, nullable=False)
    show_overdue: Mapped[bool] = mapped_column(Boolean, nullable=False)

    def to_dto(self):
        from settlement_modules.alerts.models import AlertSettings

        return AlertSettings(
            lead_days=self.lead_days,
            polling_seconds=self.polling_seconds,
            show_overdue=self.show_overdue,
        )

    def __repr__(self) -> str:
        return f"<TenantAlertSettingsModel tenant={self.tenant_id} lead_days={self.lead_days}>"
