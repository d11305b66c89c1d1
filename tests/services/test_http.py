"""
Tests for settlement_services.http -- plain request/response types and the
JSON error body.
"""

from decimal import Decimal
from uuid import UUID

from settlement_kernel.exceptions import (
    IdempotencyKeyMissingError,
    OverAllocationError,
)
from settlement_services.http import (
    RequestContext,
    compose,
    error_body,
    error_response,
    json_response,
)

ID = UUID("00000000-0000-0000-0000-000000000001")


class TestCompose:

    def test_first_middleware_runs_outermost(self):
        order = []

        def outer(ctx, call_next):
            order.append("outer")
            return call_next(ctx)

        def inner(ctx, call_next):
            order.append("inner")
            return call_next(ctx)

        def handler(ctx):
            order.append("handler")
            return json_response({})

        compose(handler, outer, inner)(RequestContext("GET", "/"))
        assert order == ["outer", "inner", "handler"]

    def test_middleware_can_short_circuit(self):
        def refuse(ctx, call_next):
            return json_response({"refused": True}, status_code=403)

        def handler(ctx):
            raise AssertionError("handler must not run")

        response = compose(handler, refuse)(RequestContext("POST", "/"))
        assert response.status_code == 403
        assert response.json() == {"refused": True}

    def test_header_lookup_is_case_insensitive(self):
        ctx = RequestContext("POST", "/", headers={"IDEMPOTENCY-KEY": "abc"})
        assert ctx.header("idempotency-key") == "abc"
        assert ctx.header("missing") is None


class TestErrorBody:

    def test_field_only_when_present(self):
        assert error_body("NOT_FOUND", "gone") == {"error": {"code": "NOT_FOUND", "message": "gone"}}
        assert error_body("INVALID_ARGUMENT", "bad", "amount")["error"]["field"] == "amount"

    def test_error_response_uses_status_and_code(self):
        response = error_response(OverAllocationError(str(ID), Decimal("1.00"), Decimal("2.00")))

        assert response.status_code == 409
        body = response.json()["error"]
        assert body["code"] == "OVER_ALLOCATION"
        assert "field" not in body

    def test_error_response_carries_field(self):
        response = error_response(IdempotencyKeyMissingError("idempotency-key"))

        assert response.status_code == 400
        assert response.json()["error"]["field"] == "idempotency-key"

    def test_json_is_compact(self):
        response = json_response({"a": [1, 2], "b": None})

        assert response.content == '{"a":[1,2],"b":null}'
        assert response.headers["content-type"] == "application/json"
