"""Due-alert feed and per-tenant notification settings."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query

from settlement_modules.alerts.service import DueAlertService
from settlement_services.dependencies import get_actor_id, get_alert_service, get_tenant_id
from settlement_services.schemas import AlertSettingsOut, AlertSettingsUpdate, DueAlertFeedOut

router = APIRouter(tags=["alerts"])


@router.get("/notifications/due-alerts", response_model=DueAlertFeedOut)
def due_alerts(
    limit: int | None = Query(default=None),
    tenant_id: UUID = Depends(get_tenant_id),
    service: DueAlertService = Depends(get_alert_service),
):
    return service.due_alerts(tenant_id, limit=limit)


@router.get("/settings/notifications", response_model=AlertSettingsOut)
def get_alert_settings(
    tenant_id: UUID = Depends(get_tenant_id),
    service: DueAlertService = Depends(get_alert_service),
):
    return service.get_settings(tenant_id)


@router.patch("/settings/notifications", response_model=AlertSettingsOut)
def update_alert_settings(
    body: AlertSettingsUpdate,
    tenant_id: UUID = Depends(get_tenant_id),
    actor_id: UUID | None = Depends(get_actor_id),
    service: DueAlertService = Depends(get_alert_service),
):
    return service.update_settings(
        tenant_id,
        lead_days=body.notification_lead_days,
        polling_seconds=body.notification_polling_seconds,
        show_overdue=body.show_overdue,
        actor_id=actor_id,
    )
