"""
Pytest fixtures for the settlement test suite.

Provides:
- In-memory SQLite engine and sessions (fresh schema per test)
- Deterministic clock, cache and service fixtures
- Small builders for obligations and payments
- Captured structured logs

Environment Variables:
- SETTLEMENT_TEST_DATABASE_URL: PostgreSQL URL for tests marked ``postgres``.
  Those tests are skipped when it is not set.
"""

import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from settlement_config import reset_active_config
from settlement_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from settlement_kernel.domain.clock import DeterministicClock
from settlement_kernel.domain.values import ObligationKind, PaymentMethod
from settlement_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from settlement_kernel.services.cache_service import CacheService
from settlement_engines.scheduling import InstallmentScheduler
from settlement_modules.obligations.service import ObligationService
from settlement_modules.payments.models import AllocationTarget, PaymentRequest
from settlement_modules.payments.service import AllocationEngine

# Fixed "now" for the suite: 2025-03-10 12:00 UTC
TEST_NOW = datetime(2025, 3, 10, 12, 0, 0, tzinfo=timezone.utc)
TODAY = TEST_NOW.date()

TEST_ACTOR_ID = uuid4()


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture(autouse=True)
def _reset_config():
    reset_active_config()
    yield
    reset_active_config()


@pytest.fixture
def captured_logs():
    """
    Capture settlement_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, allocation_engine):
            allocation_engine.create(...)
            logs = captured_logs()
            assert any(r["message"] == "payment_created" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("settlement_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture
def engine():
    """Fresh in-memory database with every table created."""
    eng = init_engine_from_url("sqlite://")
    create_tables(eng)
    yield eng
    drop_tables(eng)
    reset_engine()


@pytest.fixture
def session_factory(engine):
    return get_session_factory()


@pytest.fixture
def session(session_factory):
    sess = session_factory()
    yield sess
    sess.rollback()
    sess.close()


# =============================================================================
# Services
# =============================================================================


@pytest.fixture
def clock():
    return DeterministicClock(TEST_NOW)


@pytest.fixture
def cache(clock):
    return CacheService(clock, default_ttl_seconds=300)


@pytest.fixture
def tenant_id():
    return uuid4()


@pytest.fixture
def other_tenant_id():
    return uuid4()


@pytest.fixture
def obligation_service(session, clock, cache):
    return ObligationService(session, clock, InstallmentScheduler(), cache)


@pytest.fixture
def allocation_engine(session, clock, cache):
    return AllocationEngine(session, clock, cache)


# =============================================================================
# Builders
# =============================================================================


@pytest.fixture
def make_obligation(obligation_service, tenant_id):
    """
    Create an obligation and return its DTO.

    Defaults: a 100.00 payable due today, one installment.
    """

    def _make(
        amount="100.00",
        installments=1,
        kind=ObligationKind.PAYABLE,
        first_due=TODAY,
        tenant=None,
        **kwargs,
    ):
        return obligation_service.create_obligation(
            tenant or tenant_id,
            kind,
            kwargs.pop("counterparty_id", uuid4()),
            Decimal(amount),
            first_due,
            installment_count=installments,
            actor_id=TEST_ACTOR_ID,
            **kwargs,
        )

    return _make


@pytest.fixture
def pay(allocation_engine, tenant_id):
    """
    Record a payment from ``(installment_id, amount)`` pairs.

    The payment amount is the sum of the allocations.
    """

    def _pay(*targets, payment_date=TODAY, method=PaymentMethod.PIX, tenant=None):
        allocations = [AllocationTarget(iid, Decimal(amount)) for iid, amount in targets]
        total = sum((a.amount for a in allocations), Decimal("0"))
        return allocation_engine.create(
            tenant or tenant_id,
            PaymentRequest(amount=total, payment_date=payment_date, method=method),
            allocations,
            actor_id=TEST_ACTOR_ID,
        )

    return _pay


@pytest.fixture
def today():
    return TODAY
