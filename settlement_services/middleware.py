"""
HTTP middlewares and exception handlers of the settlement API.

Order, outermost first:

    bind_request_context -> IdempotencyMiddleware -> exception handlers -> routers

``IdempotencyMiddleware`` runs the synchronous ``IdempotencyGuard`` on a
worker thread.  The guard's ``call_next`` hops back onto the event loop to
run the rest of the stack and buffers the response body, so a stored
response can be replayed byte for byte.

Errors leave as ``{"error": {"code", "message", "field"?}}``:

* ``SettlementError``        -> its own ``http_status``.
* ``RequestValidationError`` -> 400 INVALID_ARGUMENT (404 NOT_FOUND when a
  path id is malformed, since no such record can exist).
* Starlette HTTP errors      -> their status (unknown route, wrong verb).
"""

from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable
from typing import Any

import anyio
import anyio.from_thread
import anyio.to_thread
from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import Response as StarletteResponse

from settlement_kernel.exceptions import SettlementError
from settlement_kernel.logging_config import LogContext, get_logger
from settlement_services.dependencies import ACTOR_HEADER, TENANT_HEADER, header_uuid
from settlement_services.http import (
    JSON_CONTENT_TYPE,
    RequestContext,
    Response,
    error_body,
    error_response,
)
from settlement_services.idempotency import IdempotencyGuard

logger = get_logger("services.middleware")

CORRELATION_HEADER = "x-request-id"

CallNext = Callable[[Request], Awaitable[StarletteResponse]]


async def bind_request_context(request: Request, call_next: CallNext) -> StarletteResponse:
    """Bind request-scoped log fields for the duration of the request."""
    correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
    with LogContext.bind(
        correlation_id=correlation_id,
        tenant_id=header_uuid(request.headers, TENANT_HEADER),
        actor_id=header_uuid(request.headers, ACTOR_HEADER),
        request_path=request.url.path,
    ):
        logger.debug("request_started", extra={"method": request.method})
        response = await call_next(request)
        logger.info(
            "request_completed",
            extra={"method": request.method, "status_code": response.status_code},
        )
    response.headers[CORRELATION_HEADER] = correlation_id
    return response


async def _buffered(call_next: CallNext, request: Request) -> Response:
    response = await call_next(request)
    chunks = [chunk async for chunk in response.body_iterator]
    content = b"".join(c if isinstance(c, bytes) else c.encode("utf-8") for c in chunks)
    return Response(
        status_code=response.status_code,
        content=content.decode("utf-8"),
        headers={"content-type": response.headers.get("content-type", JSON_CONTENT_TYPE)},
    )


class IdempotencyMiddleware:
    """``BaseHTTPMiddleware`` dispatch that puts ``IdempotencyGuard`` in the stack."""

    def __init__(self, guard: IdempotencyGuard, max_threads: int = 40):
        self._guard = guard
        self._max_threads = max_threads
        self._limiter: anyio.CapacityLimiter | None = None

    async def __call__(self, request: Request, call_next: CallNext) -> StarletteResponse:
        if not self._guard.applies_to(request.method):
            return await call_next(request)

        if self._limiter is None:
            # separate pool: a waiting guard must not starve the route handlers
            self._limiter = anyio.CapacityLimiter(self._max_threads)

        ctx = RequestContext(
            method=request.method,
            path=request.url.path,
            headers=dict(request.headers),
            tenant_id=header_uuid(request.headers, TENANT_HEADER),
            actor_id=header_uuid(request.headers, ACTOR_HEADER),
        )

        def downstream(_: RequestContext) -> Response:
            return anyio.from_thread.run(_buffered, call_next, request)

        try:
            response = await anyio.to_thread.run_sync(
                self._guard, ctx, downstream, limiter=self._limiter
            )
        except SettlementError as exc:
            _log_rejection(exc)
            response = error_response(exc)
        return StarletteResponse(
            content=response.content,
            status_code=response.status_code,
            headers=response.headers,
        )


def _log_rejection(exc: SettlementError) -> None:
    logger.warning(
        "request_rejected",
        extra={"error_code": exc.code, "status_code": exc.http_status},
    )


# -----------------------------------------------------------------------------
# Exception handlers
# -----------------------------------------------------------------------------


async def settlement_error_handler(request: Request, exc: SettlementError) -> JSONResponse:
    _log_rejection(exc)
    return JSONResponse(
        status_code=exc.http_status,
        content=error_body(exc.code, str(exc), getattr(exc, "field", None)),
    )


def _field_path(loc: tuple[Any, ...]) -> str | None:
    parts = [str(p) for p in loc if not isinstance(p, int)]
    return ".".join(parts) or None


def _message(error: dict[str, Any], field_name: str | None) -> str:
    if error.get("type") == "value_error" and "error" in error.get("ctx", {}):
        return str(error["ctx"]["error"])
    if error.get("type") == "missing":
        return f"{field_name} is required"
    if field_name:
        return f"{field_name}: {error.get('msg')}"
    return str(error.get("msg"))


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    error = exc.errors()[0]
    location, *rest = error["loc"]
    field_name = _field_path(tuple(rest)) or (location if location == "body" else None)

    if location == "path":
        status_code, code = 404, "NOT_FOUND"
        message = f"{field_name} not found: {error.get('input')}"
    else:
        status_code, code = 400, "INVALID_ARGUMENT"
        message = _message(error, field_name)

    logger.warning(
        "request_invalid",
        extra={"error_code": code, "field": field_name, "error_count": len(exc.errors())},
    )
    return JSONResponse(status_code=status_code, content=error_body(code, message, field_name))


_HTTP_CODES = {404: "NOT_FOUND", 405: "METHOD_NOT_ALLOWED"}


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code = _HTTP_CODES.get(exc.status_code, "HTTP_ERROR")
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(code, str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )
