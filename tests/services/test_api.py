"""
End-to-end tests for settlement_services.api -- the FastAPI application.

Requests go through the full middleware stack (request context,
idempotency guard, exception handlers) against in-memory SQLite via
``TestClient``.
"""

from datetime import timedelta
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from settlement_config.schema import IdempotencyConfig, SettlementConfig
from settlement_services.api import create_app
from settlement_services.idempotency import REPLAY_HEADER


@pytest.fixture
def client(session_factory, clock, cache):
    return TestClient(create_app(session_factory, clock, cache, SettlementConfig()))


@pytest.fixture
def call(client, tenant_id):
    def _call(method, path, body=None, key="auto", tenant="default", query=None, headers=None):
        sent = dict(headers or {})
        if key == "auto":
            key = str(uuid4())
        if key is not None:
            sent["Idempotency-Key"] = key
        tenant = tenant_id if tenant == "default" else tenant
        if tenant is not None:
            sent["X-Tenant-Id"] = str(tenant)
        return client.request(method, path, json=body, headers=sent, params=query)

    return _call


@pytest.fixture
def create_payable(call, today):
    def _create(amount="100.00", count=1, due=None):
        response = call(
            "POST",
            "/payables",
            {
                "counterpartyId": str(uuid4()),
                "amount": amount,
                "dueDate": (due or today).isoformat(),
                "installmentCount": count,
            },
        )
        assert response.status_code == 201, response.text
        return response.json()

    return _create


def _quick(account_id, amount, today, **extra):
    body = {
        "type": "payable",
        "accountId": account_id,
        "amount": amount,
        "paymentDate": today.isoformat(),
        "method": "PIX",
    }
    body.update(extra)
    return body


class TestPayments:

    def test_create_payment(self, call, create_payable, today):
        payable = create_payable("100.00", count=2)
        first, second = payable["installments"]

        response = call(
            "POST",
            "/payments",
            {
                "amount": "75.00",
                "paymentDate": today.isoformat(),
                "method": "pix",
                "allocations": [
                    {"installmentId": first["id"], "amount": "50.00"},
                    {"installmentId": second["id"], "amount": "25.00"},
                ],
            },
        )

        assert response.status_code == 201
        body = response.json()
        assert body["amount"] == "75.00"
        assert body["method"] == "PIX"
        assert sorted(a["amount"] for a in body["allocations"]) == ["25.00", "50.00"]

        obligation = call("GET", f"/payables/{payable['id']}").json()
        assert obligation["status"] == "PARTIAL"
        assert obligation["settledAmount"] == "75.00"
        assert [i["status"] for i in obligation["installments"]] == ["PAID", "PARTIAL"]

    def test_replay_returns_identical_body(self, call, create_payable, today):
        payable = create_payable()
        body = {
            "amount": "10.00",
            "paymentDate": today.isoformat(),
            "method": "CASH",
            "allocations": [{"installmentId": payable["installments"][0]["id"], "amount": "10.00"}],
        }

        first = call("POST", "/payments", body, key="pay-1")
        second = call("POST", "/payments", body, key="pay-1")

        assert first.status_code == second.status_code == 201
        assert first.content == second.content
        assert second.headers[REPLAY_HEADER] == "true"
        assert REPLAY_HEADER not in first.headers
        history = call("GET", f"/payables/{payable['id']}/payments").json()["data"]
        assert len(history) == 1

    def test_missing_key_is_400(self, call):
        response = call("POST", "/payments", {}, key=None)
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "IDEMPOTENCY_KEY_MISSING"

    def test_amount_mismatch_is_400_and_not_cached(self, call, create_payable, today):
        payable = create_payable()
        iid = payable["installments"][0]["id"]
        bad = {
            "amount": "20.00",
            "paymentDate": today.isoformat(),
            "method": "PIX",
            "allocations": [{"installmentId": iid, "amount": "10.00"}],
        }

        assert call("POST", "/payments", bad, key="k").json()["error"]["code"] == "AMOUNT_MISMATCH"
        fixed = dict(bad, amount="10.00")
        assert call("POST", "/payments", fixed, key="k").status_code == 201

    def test_float_amount_rejected(self, call, create_payable, today):
        payable = create_payable()
        response = call(
            "POST",
            "/payments",
            {
                "amount": 10.5,
                "paymentDate": today.isoformat(),
                "method": "PIX",
                "allocations": [{"installmentId": payable["installments"][0]["id"], "amount": "10.50"}],
            },
        )
        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "INVALID_ARGUMENT"
        assert error["field"] == "amount"

    def test_nested_field_is_reported(self, call, today):
        response = call(
            "POST",
            "/payments",
            {
                "amount": "10.00",
                "paymentDate": today.isoformat(),
                "method": "PIX",
                "allocations": [{"installmentId": str(uuid4())}],
            },
        )
        assert response.status_code == 400
        assert response.json()["error"]["field"] == "allocations.amount"

    def test_unknown_method_rejected(self, call, create_payable, today):
        payable = create_payable()
        response = call("POST", "/payments/quick", _quick(payable["id"], "1.00", today, method="BARTER"))
        assert response.status_code == 400
        assert response.json()["error"]["field"] == "method"

    def test_over_allocation_is_409(self, call, create_payable, today):
        payable = create_payable("10.00")
        response = call("POST", "/payments/quick", _quick(payable["id"], "10.01", today))
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "OVER_ALLOCATION"

    def test_quick_settle_uses_payment_field_names(self, call, create_payable, today):
        single = create_payable("10.00")
        response = call(
            "POST",
            "/payments/quick",
            _quick(single["id"], "10.00", today, method="BOLETO", notes="settled at branch"),
        )
        assert response.status_code == 201
        body = response.json()
        assert body["notes"] == "settled at branch"
        assert body["paymentDate"] == today.isoformat()

    def test_quick_settle_requires_payment_date(self, call, create_payable, today):
        single = create_payable("10.00")
        body = _quick(single["id"], "10.00", today)
        del body["paymentDate"]
        response = call("POST", "/payments/quick", body)
        assert response.status_code == 400
        assert response.json()["error"]["field"] == "paymentDate"

    def test_quick_settle_ambiguity(self, call, create_payable, today):
        multi = create_payable("30.00", count=3)
        ambiguous = call("POST", "/payments/quick", _quick(multi["id"], "10.00", today))
        assert ambiguous.status_code == 400
        assert ambiguous.json()["error"]["code"] == "AMBIGUOUS_SETTLEMENT"
        assert ambiguous.json()["error"]["field"] == "accountId"

    def test_patch_and_delete_payment(self, call, create_payable, today):
        payable = create_payable("10.00")
        created = call("POST", "/payments/quick", _quick(payable["id"], "10.00", today)).json()

        patched = call("PATCH", f"/payments/{created['id']}", {"reference": "R-1"})
        assert patched.json()["reference"] == "R-1"

        refused = call("PATCH", f"/payments/{created['id']}", {"amount": "5.00"})
        assert refused.status_code == 400
        assert refused.json()["error"]["field"] == "amount"

        reversed_ = call("DELETE", f"/payments/{created['id']}", key=None)
        assert reversed_.status_code == 200
        assert reversed_.json()["installments"][0]["status"] == "PENDING"
        assert call("GET", f"/payments/{created['id']}").status_code == 404

    def test_malformed_payment_id_is_404(self, call):
        response = call("GET", "/payments/not-a-uuid")
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"

    def test_other_tenant_sees_404(self, call, create_payable):
        payable = create_payable()
        response = call("GET", f"/payables/{payable['id']}", tenant=uuid4())
        assert response.status_code == 404


class TestObligations:

    def test_wrong_kind_path_is_404(self, call, create_payable):
        payable = create_payable()
        assert call("GET", f"/receivables/{payable['id']}").status_code == 404

    def test_receivable_kind(self, call, today):
        response = call(
            "POST",
            "/receivables",
            {"counterpartyId": str(uuid4()), "amount": "10.00", "dueDate": today.isoformat()},
        )
        assert response.status_code == 201
        assert response.json()["kind"] == "RECEIVABLE"

    def test_due_dates_drive_the_schedule(self, call, today):
        dates = [today.isoformat(), (today + timedelta(days=10)).isoformat()]
        response = call(
            "POST",
            "/payables",
            {"counterpartyId": str(uuid4()), "amount": "10.00", "dueDates": dates},
        )
        assert response.status_code == 201
        assert [i["dueDate"] for i in response.json()["installments"]] == dates

    def test_missing_due_date(self, call):
        response = call("POST", "/payables", {"counterpartyId": str(uuid4()), "amount": "10.00"})
        assert response.status_code == 400
        assert response.json()["error"]["field"] == "dueDate"

    def test_edit_and_delete_installment(self, call, create_payable):
        payable = create_payable("30.00", count=3)
        first, second, third = payable["installments"]

        edited = call(
            "PATCH",
            f"/payables/{payable['id']}/installments/{third['id']}",
            {"amount": "12.00"},
        )
        assert edited.status_code == 200
        assert edited.json()["amount"] == "32.00"

        after = call(
            "DELETE", f"/payables/{payable['id']}/installments/{first['id']}", key=None
        ).json()
        assert [i["id"] for i in after["installments"]] == [second["id"], third["id"]]
        assert after["amount"] == "22.00"

    def test_cancel(self, call, create_payable):
        payable = create_payable()
        response = call("POST", f"/payables/{payable['id']}/cancel")
        assert response.json()["status"] == "CANCELLED"
        again = call("POST", f"/payables/{payable['id']}/cancel")
        assert again.status_code == 409

    def test_update_obligation(self, call, create_payable):
        payable = create_payable()
        response = call("PATCH", f"/payables/{payable['id']}", {"notes": "ok", "paymentMethod": "pix"})
        assert response.json()["notes"] == "ok"
        assert response.json()["paymentMethod"] == "PIX"

    def test_invalid_installment_count(self, call, today):
        response = call(
            "POST",
            "/receivables",
            {
                "counterpartyId": str(uuid4()),
                "amount": "10.00",
                "dueDate": today.isoformat(),
                "installmentCount": 0,
            },
        )
        assert response.status_code == 400


class TestAlertsAndRouting:

    def test_due_alerts(self, call, create_payable, today):
        create_payable("10.00", due=today - timedelta(days=1))
        create_payable("20.00", due=today + timedelta(days=2))

        response = call("GET", "/notifications/due-alerts", key=None, query={"limit": "1"})

        body = response.json()
        assert response.status_code == 200
        assert body["total"] == 2
        assert len(body["data"]) == 1
        assert body["data"][0]["isOverdue"] is True
        assert body["data"][0]["pendingAmount"] == "10.00"
        assert body["settings"]["leadDays"] == 7

    def test_invalid_limit(self, call):
        response = call("GET", "/notifications/due-alerts", key=None, query={"limit": "abc"})
        assert response.status_code == 400
        assert response.json()["error"]["field"] == "limit"

    def test_alert_settings(self, call):
        updated = call("PATCH", "/settings/notifications", {"notificationLeadDays": 14})
        assert updated.json()["leadDays"] == 14
        bad = call("PATCH", "/settings/notifications", {"notificationLeadDays": 90})
        assert bad.status_code == 400
        assert bad.json()["error"]["field"] == "notificationLeadDays"
        assert call("GET", "/settings/notifications", key=None).json()["leadDays"] == 14

    def test_show_overdue_must_be_boolean(self, call):
        response = call("PATCH", "/settings/notifications", {"showOverdue": "yes"})
        assert response.status_code == 400
        assert response.json()["error"]["field"] == "showOverdue"

    def test_unknown_route(self, call):
        response = call("GET", "/nothing/here", key=None)
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "NOT_FOUND"

    def test_wrong_verb(self, call):
        response = call("PUT", "/payments", {})
        assert response.status_code == 405
        assert response.json()["error"]["code"] == "METHOD_NOT_ALLOWED"

    def test_tenant_required(self, call):
        response = call("GET", "/notifications/due-alerts", key=None, tenant=None)
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "TENANT_REQUIRED"

    def test_malformed_tenant_is_401(self, client):
        response = client.get("/settings/notifications", headers={"X-Tenant-Id": "acme"})
        assert response.status_code == 401

    def test_correlation_id_echoed_and_logged(self, call, captured_logs):
        response = call("GET", "/settings/notifications", key=None, headers={"X-Request-Id": "req-42"})

        assert response.headers["x-request-id"] == "req-42"
        completed = [r for r in captured_logs() if r["message"] == "request_completed"]
        assert completed[-1]["correlation_id"] == "req-42"
        assert completed[-1]["request_path"] == "/settings/notifications"


class TestSqlIdempotencyStore:

    def test_replay_through_sql_store(self, session_factory, clock, cache, tenant_id, today):
        config = SettlementConfig(idempotency=IdempotencyConfig(store="sql"))
        client = TestClient(create_app(session_factory, clock, cache, config))
        headers = {"Idempotency-Key": "same", "X-Tenant-Id": str(tenant_id)}
        body = {
            "counterpartyId": str(uuid4()),
            "amount": "10.00",
            "dueDate": today.isoformat(),
        }

        first = client.post("/payables", json=body, headers=headers)
        second = client.post("/payables", json=body, headers=headers)

        assert first.status_code == 201
        assert second.content == first.content
        assert second.headers[REPLAY_HEADER] == "true"
