"""
Settlement API -- the FastAPI application.

``create_app(session_factory, ...)`` wires one application over the
settlement modules: routers for payments, payables, receivables and due
alerts; the idempotency guard and request-context middlewares; and the
exception handlers that turn every failure into the JSON error body.
Handlers never commit; the module services own their transactions.

``create_app_from_config()`` is the ASGI factory for deployment::

    uvicorn settlement_services.api:create_app_from_config --factory
"""

from __future__ import annotations

from collections.abc import Callable, Mapping

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from settlement_config import get_active_config
from settlement_config.schema import SettlementConfig
from settlement_engines.scheduling import InstallmentScheduler
from settlement_kernel.db.engine import create_tables, get_session_factory, init_engine_from_url
from settlement_kernel.domain.clock import Clock, SystemClock
from settlement_kernel.domain.values import ObligationKind
from settlement_kernel.exceptions import SettlementError
from settlement_kernel.logging_config import configure_logging, get_logger
from settlement_kernel.services.cache_service import CacheService
from settlement_services.dependencies import SettlementRuntime
from settlement_services.idempotency import IdempotencyGuard, IdempotencyStore, build_store
from settlement_services.middleware import (
    IdempotencyMiddleware,
    bind_request_context,
    http_error_handler,
    request_validation_handler,
    settlement_error_handler,
)
from settlement_services.routers import alerts, obligations, payments

logger = get_logger("services.api")


def create_app(
    session_factory: Callable[[], Session],
    clock: Clock | None = None,
    cache: CacheService | None = None,
    config: SettlementConfig | None = None,
    idempotency_store: IdempotencyStore | None = None,
) -> FastAPI:
    clock = clock or SystemClock()
    config = config or SettlementConfig()
    cache = cache or CacheService(
        clock,
        config.cache.default_ttl_seconds,
        config.cache.purge_interval_seconds,
    )
    store = idempotency_store or build_store(config.idempotency, cache, session_factory, clock)

    app = FastAPI(title="Installment Settlement API")
    app.state.runtime = SettlementRuntime(
        session_factory=session_factory,
        clock=clock,
        cache=cache,
        config=config,
        scheduler=InstallmentScheduler(config.scheduling.max_installments),
    )

    app.add_exception_handler(SettlementError, settlement_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)

    # added last runs first
    app.add_middleware(
        BaseHTTPMiddleware,
        dispatch=IdempotencyMiddleware(IdempotencyGuard(store, config.idempotency)),
    )
    app.add_middleware(BaseHTTPMiddleware, dispatch=bind_request_context)

    app.include_router(payments.router)
    app.include_router(obligations.build_router(ObligationKind.PAYABLE))
    app.include_router(obligations.build_router(ObligationKind.RECEIVABLE))
    app.include_router(alerts.router)

    logger.info(
        "api_created",
        extra={"idempotency_store": config.idempotency.store, "route_count": len(app.routes)},
    )
    return app


def create_app_from_config(environ: Mapping[str, str] | None = None) -> FastAPI:
    """Build the app from the active configuration, creating tables if needed."""
    configure_logging()
    config = get_active_config(environ)
    engine = init_engine_from_url(
        config.database.url,
        echo=config.database.echo,
        pool_size=config.database.pool_size,
    )
    create_tables(engine)
    return create_app(get_session_factory(), config=config)
