"""
FastAPI dependencies: runtime wiring, one session per request, tenant and
actor identity, and the module services built on top of them.

Tenant and actor come from the ``X-Tenant-Id`` and ``X-Actor-Id`` headers
set by the authenticating proxy in front of the API.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass
from uuid import UUID

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from settlement_config.schema import SettlementConfig
from settlement_engines.scheduling import InstallmentScheduler
from settlement_kernel.domain.clock import Clock
from settlement_kernel.exceptions import InvalidArgumentError, TenantRequiredError
from settlement_kernel.services.cache_service import CacheService
from settlement_modules.alerts.service import DueAlertService
from settlement_modules.obligations.service import ObligationService
from settlement_modules.payments.selector import PaymentSelector
from settlement_modules.payments.service import AllocationEngine

TENANT_HEADER = "x-tenant-id"
ACTOR_HEADER = "x-actor-id"


@dataclass(frozen=True)
class SettlementRuntime:
    """Process-wide collaborators shared by every request; kept on ``app.state``."""

    session_factory: Callable[[], Session]
    clock: Clock
    cache: CacheService
    config: SettlementConfig
    scheduler: InstallmentScheduler


def header_uuid(headers: Mapping[str, str], name: str) -> UUID | None:
    """The header as a UUID, or None when absent or malformed."""
    raw = (headers.get(name) or "").strip()
    if not raw:
        return None
    try:
        return UUID(raw)
    except ValueError:
        return None


def get_runtime(request: Request) -> SettlementRuntime:
    return request.app.state.runtime


def get_session(runtime: SettlementRuntime = Depends(get_runtime)) -> Iterator[Session]:
    with runtime.session_factory() as session:
        yield session


def get_tenant_id(request: Request) -> UUID:
    tenant_id = header_uuid(request.headers, TENANT_HEADER)
    if tenant_id is None:
        raise TenantRequiredError()
    return tenant_id


def get_actor_id(request: Request) -> UUID | None:
    raw = request.headers.get(ACTOR_HEADER)
    actor_id = header_uuid(request.headers, ACTOR_HEADER)
    if raw and actor_id is None:
        raise InvalidArgumentError(f"{ACTOR_HEADER} must be a UUID", field=ACTOR_HEADER)
    return actor_id


def get_allocation_engine(
    session: Session = Depends(get_session),
    runtime: SettlementRuntime = Depends(get_runtime),
) -> AllocationEngine:
    return AllocationEngine(session, runtime.clock, runtime.cache)


def get_payment_selector(session: Session = Depends(get_session)) -> PaymentSelector:
    return PaymentSelector(session)


def get_obligation_service(
    session: Session = Depends(get_session),
    runtime: SettlementRuntime = Depends(get_runtime),
) -> ObligationService:
    return ObligationService(session, runtime.clock, runtime.scheduler, runtime.cache)


def get_alert_service(
    session: Session = Depends(get_session),
    runtime: SettlementRuntime = Depends(get_runtime),
) -> DueAlertService:
    return DueAlertService(session, runtime.clock, runtime.config.alerts)
