"""
Concurrent writers against the same installments and obligations.

Threads race to pay one installment, or to pay an obligation while it is
being cancelled.  Row locks taken before the balance check must serialize
them: the installment never ends up over-allocated, the two writers never
deadlock, and every rejected writer sees a domain error.

Requires PostgreSQL (SQLite has no row locks); set
SETTLEMENT_TEST_DATABASE_URL to run.
"""

import os
from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from threading import Barrier
from uuid import uuid4

import pytest

from settlement_engines.scheduling import InstallmentScheduler
from settlement_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from settlement_kernel.domain.clock import SystemClock
from settlement_kernel.domain.values import ObligationKind, PaymentMethod, SettlementStatus
from settlement_kernel.exceptions import InvalidStateError, OverAllocationError
from settlement_kernel.services.cache_service import CacheService
from settlement_modules.obligations.service import ObligationService
from settlement_modules.payments.models import AllocationTarget, PaymentRequest
from settlement_modules.payments.service import AllocationEngine

pytestmark = pytest.mark.postgres

DATABASE_URL = os.environ.get("SETTLEMENT_TEST_DATABASE_URL")

WORKERS = 8


@pytest.fixture
def pg_session_factory():
    if not DATABASE_URL:
        pytest.skip("SETTLEMENT_TEST_DATABASE_URL not set")
    eng = init_engine_from_url(DATABASE_URL, pool_size=WORKERS + 2)
    drop_tables(eng)
    create_tables(eng)
    yield get_session_factory()
    drop_tables(eng)
    reset_engine()


def test_racing_payments_never_over_allocate(pg_session_factory):
    clock = SystemClock()
    cache = CacheService(clock)
    tenant_id = uuid4()
    today = clock.today()

    with pg_session_factory() as session:
        obligation = ObligationService(session, clock, InstallmentScheduler(), cache).create_obligation(
            tenant_id, ObligationKind.PAYABLE, uuid4(), Decimal("100.00"), today
        )
    installment_id = obligation.installments[0].id
    barrier = Barrier(WORKERS)

    def pay(_):
        with pg_session_factory() as session:
            engine = AllocationEngine(session, clock, cache)
            barrier.wait()
            try:
                engine.create(
                    tenant_id,
                    PaymentRequest(Decimal("30.00"), today, PaymentMethod.PIX),
                    [AllocationTarget(installment_id, Decimal("30.00"))],
                )
                return "ok"
            except OverAllocationError:
                return "rejected"

    with ThreadPoolExecutor(max_workers=WORKERS) as pool:
        results = list(pool.map(pay, range(WORKERS)))

    assert results.count("ok") == 3
    assert results.count("rejected") == WORKERS - 3

    with pg_session_factory() as session:
        after = ObligationService(session, clock, InstallmentScheduler(), cache).get_obligation(
            tenant_id, obligation.id
        )
    assert after.settled_amount == Decimal("90.00")
    assert after.status == SettlementStatus.PARTIAL


def test_payment_racing_cancellation_resolves_without_deadlock(pg_session_factory):
    clock = SystemClock()
    cache = CacheService(clock)
    tenant_id = uuid4()
    today = clock.today()

    for _ in range(10):
        with pg_session_factory() as session:
            obligation = ObligationService(
                session, clock, InstallmentScheduler(), cache
            ).create_obligation(
                tenant_id,
                ObligationKind.RECEIVABLE,
                uuid4(),
                Decimal("200.00"),
                today,
                installment_count=2,
            )
        first, second = obligation.installments
        barrier = Barrier(2)

        def pay():
            with pg_session_factory() as session:
                engine = AllocationEngine(session, clock, cache)
                barrier.wait()
                try:
                    engine.create(
                        tenant_id,
                        PaymentRequest(Decimal("150.00"), today, PaymentMethod.PIX),
                        [
                            AllocationTarget(first.id, Decimal("100.00")),
                            AllocationTarget(second.id, Decimal("50.00")),
                        ],
                    )
                    return "paid"
                except InvalidStateError:
                    return "rejected"

        def cancel():
            with pg_session_factory() as session:
                service = ObligationService(session, clock, InstallmentScheduler(), cache)
                barrier.wait()
                try:
                    service.cancel_obligation(tenant_id, obligation.id)
                    return "cancelled"
                except InvalidStateError:
                    return "rejected"

        with ThreadPoolExecutor(max_workers=2) as pool:
            paid = pool.submit(pay)
            cancelled = pool.submit(cancel)
            outcome = (paid.result(timeout=30), cancelled.result(timeout=30))

        assert outcome in (("paid", "rejected"), ("rejected", "cancelled"))

        with pg_session_factory() as session:
            after = ObligationService(
                session, clock, InstallmentScheduler(), cache
            ).get_obligation(tenant_id, obligation.id)
        if outcome[0] == "paid":
            assert after.settled_amount == Decimal("150.00")
            assert after.status == SettlementStatus.PARTIAL
        else:
            assert after.settled_amount == Decimal("0.00")
            assert after.status == SettlementStatus.CANCELLED
