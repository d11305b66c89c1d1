"""
Tests for settlement_services.idempotency -- IdempotencyGuard and its stores.

The handler under guard counts invocations, so "at most once" is observed
directly.  Concurrency tests use the in-process store; the SQL store is
exercised sequentially on SQLite.
"""

import threading
import time
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from settlement_config.schema import IdempotencyConfig
from settlement_kernel.exceptions import IdempotencyConflictError, IdempotencyKeyMissingError
from settlement_services.http import RequestContext, Response, compose, json_response
from settlement_services.idempotency import (
    REPLAY_HEADER,
    CachedResponse,
    IdempotencyGuard,
    IdempotencyScope,
    MemoryIdempotencyStore,
    ReservationOutcome,
    SqlIdempotencyStore,
)
from settlement_services.orm import IdempotencyRecordModel


class CountingHandler:
    """Returns a body that differs per invocation, so replays are detectable."""

    def __init__(self, status_code=201, delay=0.0, error=None):
        self.calls = 0
        self.status_code = status_code
        self.delay = delay
        self.error = error
        self._lock = threading.Lock()

    def __call__(self, ctx):
        with self._lock:
            self.calls += 1
            n = self.calls
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return json_response({"call": n, "id": str(uuid4())}, status_code=self.status_code)


@pytest.fixture
def memory_store(cache):
    return MemoryIdempotencyStore(cache)


@pytest.fixture
def sql_store(session_factory, clock):
    return SqlIdempotencyStore(session_factory, clock, poll_interval_seconds=0.01)


@pytest.fixture(params=["memory", "sql"])
def store(request, memory_store, sql_store):
    return memory_store if request.param == "memory" else sql_store


def _guarded(handler, store, **config):
    return compose(handler, IdempotencyGuard(store, IdempotencyConfig(**config)))


def _ctx(tenant_id, key="k-1", method="POST", path="/payments"):
    headers = {"Idempotency-Key": key} if key is not None else {}
    return RequestContext(method=method, path=path, headers=headers, tenant_id=tenant_id)


class TestGuard:

    def test_replay_is_byte_identical(self, store, tenant_id):
        handler = CountingHandler()
        app = _guarded(handler, store)

        first = app(_ctx(tenant_id))
        second = app(_ctx(tenant_id))

        assert handler.calls == 1
        assert second.status_code == first.status_code == 201
        assert second.content == first.content
        assert second.headers[REPLAY_HEADER] == "true"
        assert REPLAY_HEADER not in first.headers

    def test_key_is_scoped_by_tenant_method_and_path(self, store, tenant_id, other_tenant_id):
        handler = CountingHandler()
        app = _guarded(handler, store)

        app(_ctx(tenant_id))
        app(_ctx(other_tenant_id))
        app(_ctx(tenant_id, path="/payments/quick"))
        app(_ctx(tenant_id, method="PATCH"))

        assert handler.calls == 4

    def test_missing_key_rejected(self, store, tenant_id):
        handler = CountingHandler()
        with pytest.raises(IdempotencyKeyMissingError) as exc_info:
            _guarded(handler, store)(_ctx(tenant_id, key=None))
        assert exc_info.value.http_status == 400
        assert handler.calls == 0

    def test_blank_key_rejected(self, store, tenant_id):
        with pytest.raises(IdempotencyKeyMissingError):
            _guarded(CountingHandler(), store)(_ctx(tenant_id, key="   "))

    @pytest.mark.parametrize("method", ["GET", "DELETE"])
    def test_unguarded_methods_pass_through(self, store, tenant_id, method):
        handler = CountingHandler(status_code=200)
        app = _guarded(handler, store)
        app(_ctx(tenant_id, key=None, method=method))
        app(_ctx(tenant_id, key=None, method=method))
        assert handler.calls == 2

    def test_no_tenant_bypasses_guard(self, store):
        handler = CountingHandler()
        app = _guarded(handler, store)
        app(_ctx(None, key=None))
        app(_ctx(None, key=None))
        assert handler.calls == 2

    def test_error_response_not_cached(self, store, tenant_id):
        handler = CountingHandler(status_code=409)
        app = _guarded(handler, store)

        app(_ctx(tenant_id))
        response = app(_ctx(tenant_id))

        assert handler.calls == 2
        assert REPLAY_HEADER not in response.headers

    def test_exception_releases_reservation(self, store, tenant_id):
        handler = CountingHandler(error=RuntimeError("boom"))
        app = _guarded(handler, store)

        with pytest.raises(RuntimeError):
            app(_ctx(tenant_id))
        handler.error = None
        response = app(_ctx(tenant_id))

        assert response.status_code == 201
        assert handler.calls == 2

    def test_expired_entry_runs_again(self, store, tenant_id, clock):
        handler = CountingHandler()
        app = _guarded(handler, store, ttl_seconds=60)

        app(_ctx(tenant_id))
        clock.advance(61)
        app(_ctx(tenant_id))

        assert handler.calls == 2

    def test_logs_replay(self, store, tenant_id, captured_logs):
        app = _guarded(CountingHandler(), store)
        app(_ctx(tenant_id, key="abc"))
        app(_ctx(tenant_id, key="abc"))

        replays = [r for r in captured_logs() if r["message"] == "idempotent_replay"]
        assert len(replays) == 1
        assert replays[0]["idempotency_key"] == "abc"


class TestInFlight:

    def test_in_flight_twin_conflicts_after_wait(self, memory_store, tenant_id):
        scope = IdempotencyScope(tenant_id, "k-1", "POST", "/payments")
        assert memory_store.begin(scope, 60).outcome is ReservationOutcome.ACQUIRED

        app = _guarded(CountingHandler(), memory_store, wait_timeout_seconds=0.05)
        with pytest.raises(IdempotencyConflictError) as exc_info:
            app(_ctx(tenant_id))
        assert exc_info.value.http_status == 409

    def test_waiter_replays_completed_twin(self, memory_store, tenant_id):
        scope = IdempotencyScope(tenant_id, "k-1", "POST", "/payments")
        memory_store.begin(scope, 60)
        stored = CachedResponse(status_code=201, content='{"id":"first"}')
        timer = threading.Timer(0.05, memory_store.complete, args=(scope, stored, 60))
        timer.start()

        try:
            response = _guarded(CountingHandler(), memory_store)(_ctx(tenant_id))
        finally:
            timer.cancel()

        assert response.content == '{"id":"first"}'
        assert response.headers[REPLAY_HEADER] == "true"

    def test_sql_in_flight_row_conflicts(self, sql_store, tenant_id):
        scope = IdempotencyScope(tenant_id, "k-1", "POST", "/payments")
        assert sql_store.begin(scope, 60).outcome is ReservationOutcome.ACQUIRED
        assert sql_store.begin(scope, 60).outcome is ReservationOutcome.IN_FLIGHT

        app = _guarded(CountingHandler(), sql_store, wait_timeout_seconds=0.05)
        with pytest.raises(IdempotencyConflictError):
            app(_ctx(tenant_id))

        sql_store.release(scope)
        assert sql_store.begin(scope, 60).outcome is ReservationOutcome.ACQUIRED

    def test_concurrent_identical_requests_run_once(self, memory_store, tenant_id):
        handler = CountingHandler(delay=0.1)
        app = _guarded(handler, memory_store, wait_timeout_seconds=5)
        barrier = threading.Barrier(6)
        responses = []
        errors = []

        def send():
            barrier.wait()
            try:
                responses.append(app(_ctx(tenant_id)))
            except Exception as exc:
                errors.append(exc)

        threads = [threading.Thread(target=send) for _ in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert handler.calls == 1
        assert len({r.content for r in responses}) == 1
        assert sum(1 for r in responses if REPLAY_HEADER in r.headers) == 5


class TestSqlStorePurge:

    def _count(self, session_factory):
        with session_factory() as session:
            return session.execute(
                select(func.count()).select_from(IdempotencyRecordModel)
            ).scalar_one()

    def test_expired_rows_deleted_in_bulk(self, sql_store, session_factory, tenant_id, clock):
        for i in range(20):
            scope = IdempotencyScope(tenant_id, f"k-{i}", "POST", "/payments")
            sql_store.begin(scope, 60)
            sql_store.complete(scope, CachedResponse(201, "{}"), 60)
        live = IdempotencyScope(tenant_id, "live", "POST", "/payments")
        clock.advance(30)
        sql_store.begin(live, 3600)

        clock.advance(60)
        assert sql_store.purge_expired() == 20
        assert self._count(session_factory) == 1

    def test_begin_purges_once_per_interval(self, session_factory, tenant_id, clock):
        store = SqlIdempotencyStore(session_factory, clock, purge_interval_seconds=600)
        for i in range(5):
            store.begin(IdempotencyScope(tenant_id, f"k-{i}", "POST", "/payments"), 60)

        clock.advance(120)
        store.begin(IdempotencyScope(tenant_id, "later", "POST", "/payments"), 60)
        assert self._count(session_factory) == 6

        clock.advance(600)
        store.begin(IdempotencyScope(tenant_id, "much-later", "POST", "/payments"), 60)
        assert self._count(session_factory) == 1
