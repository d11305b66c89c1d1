"""Due alerts module: upcoming and overdue installment notifications."""

from settlement_modules.alerts.models import AlertSettings, DueAlert, DueAlertFeed, DueAlertPage

__all__ = ["AlertSettings", "DueAlert", "DueAlertFeed", "DueAlertPage"]
