"""
Plain request/response types for the idempotency guard.

The guard is a synchronous middleware ``guard(ctx, call_next) -> Response``
over these types, so it can run on a worker thread and be exercised
without an ASGI server.  ``settlement_services.middleware`` adapts it to
FastAPI.  ``error_body`` is the one JSON error shape every layer answers
with.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Callable
from uuid import UUID

from settlement_kernel.exceptions import SettlementError

JSON_CONTENT_TYPE = "application/json"


@dataclass(frozen=True)
class RequestContext:
    method: str
    path: str
    headers: dict[str, str] = field(default_factory=dict)
    tenant_id: UUID | None = None
    actor_id: UUID | None = None

    def header(self, name: str) -> str | None:
        """Case-insensitive header lookup."""
        wanted = name.lower()
        for key, value in self.headers.items():
            if key.lower() == wanted:
                return value
        return None


@dataclass(frozen=True)
class Response:
    status_code: int
    content: str
    headers: dict[str, str] = field(default_factory=lambda: {"content-type": JSON_CONTENT_TYPE})

    def json(self) -> Any:
        return json.loads(self.content)


Handler = Callable[[RequestContext], Response]
Middleware = Callable[[RequestContext, Handler], Response]


def compose(handler: Handler, *middlewares: Middleware) -> Handler:
    """Wrap ``handler`` so that ``middlewares[0]`` runs first."""
    for middleware in reversed(middlewares):
        handler = partial(middleware, call_next=handler)
    return handler


def error_body(code: str, message: str, field_name: str | None = None) -> dict[str, Any]:
    """``{"error": {"code", "message", "field"?}}``"""
    body: dict[str, Any] = {"code": code, "message": message}
    if field_name:
        body["field"] = field_name
    return {"error": body}


def json_response(payload: Any, status_code: int = 200) -> Response:
    return Response(
        status_code=status_code,
        content=json.dumps(payload, separators=(",", ":")),
    )


def error_response(error: SettlementError) -> Response:
    return json_response(
        error_body(error.code, str(error), getattr(error, "field", None)),
        status_code=error.http_status,
    )
