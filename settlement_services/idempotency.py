"""
IdempotencyGuard -- at-most-once execution of mutating requests.

Contract:
    For a guarded method (POST/PUT/PATCH by default) carrying an
    ``idempotency-key`` header, the handler runs at most once per
    (tenant, key, method, path) within the TTL.  Later identical requests
    receive the stored response byte for byte.  Concurrent identical
    requests wait for the first one to finish and then replay its response.

Invariants enforced:
    - Reservation is an atomic insert-if-absent in the store, so of N
      concurrent identical requests exactly one reaches the handler.
    - Only 2xx responses are stored.  Errors and exceptions release the
      reservation so the client may retry with the same key.
    - Requests without tenant context bypass the guard entirely.

Failure modes:
    - ``IdempotencyKeyMissingError`` -- guarded request without the header.
    - ``IdempotencyConflictError``   -- the in-flight twin did not finish
      within ``wait_timeout_seconds``.

Two stores are provided.  ``MemoryIdempotencyStore`` keeps reservations in
the process-local ``CacheService``; ``SqlIdempotencyStore`` keeps them in
``idempotency_records`` so several processes can share them.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Callable
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from settlement_config.schema import IdempotencyConfig
from settlement_kernel.domain.clock import Clock, SystemClock
from settlement_kernel.exceptions import IdempotencyConflictError, IdempotencyKeyMissingError
from settlement_kernel.logging_config import LogContext, get_logger
from settlement_kernel.services.cache_service import CacheService
from settlement_kernel.utils.idempotency import generate_idempotency_key
from settlement_services.http import Handler, RequestContext, Response
from settlement_services.orm import (
    STATE_COMPLETED,
    STATE_IN_FLIGHT,
    IdempotencyRecordModel,
)

logger = get_logger("services.idempotency")

REPLAY_HEADER = "idempotent-replayed"


class ReservationOutcome(str, Enum):
    ACQUIRED = "ACQUIRED"
    CACHED = "CACHED"
    IN_FLIGHT = "IN_FLIGHT"


@dataclass(frozen=True)
class IdempotencyScope:
    """The (tenant, key, method, path) tuple a client key is unique within."""

    tenant_id: UUID
    client_key: str
    method: str
    path: str

    @property
    def cache_key(self) -> str:
        return generate_idempotency_key(self.tenant_id, self.client_key, self.method, self.path)


@dataclass(frozen=True)
class CachedResponse:
    status_code: int
    content: str
    content_type: str = "application/json"


@dataclass(frozen=True)
class Reservation:
    outcome: ReservationOutcome
    response: CachedResponse | None = None


class IdempotencyStore(ABC):
    """Reservation store used by ``IdempotencyGuard``."""

    @abstractmethod
    def begin(self, scope: IdempotencyScope, ttl_seconds: int) -> Reservation:
        """Reserve the scope, or report the stored response / in-flight twin."""

    @abstractmethod
    def complete(self, scope: IdempotencyScope, response: CachedResponse, ttl_seconds: int) -> None:
        """Store the response for replay and end the reservation."""

    @abstractmethod
    def release(self, scope: IdempotencyScope) -> None:
        """Drop the reservation without storing anything."""

    @abstractmethod
    def wait(self, scope: IdempotencyScope, timeout_seconds: float) -> CachedResponse | None:
        """
        Block until the in-flight twin finishes.

        Returns its stored response, or None if it released the reservation.
        Raises TimeoutError when the twin is still running at the deadline.
        """


# -----------------------------------------------------------------------------
# In-process store
# -----------------------------------------------------------------------------


class _InFlight:
    def __repr__(self) -> str:
        return "<in-flight>"


_IN_FLIGHT = _InFlight()


class MemoryIdempotencyStore(IdempotencyStore):

    def __init__(self, cache: CacheService):
        self._cache = cache

    def begin(self, scope: IdempotencyScope, ttl_seconds: int) -> Reservation:
        key = scope.cache_key
        while True:
            if self._cache.add(key, _IN_FLIGHT, ttl_seconds):
                return Reservation(ReservationOutcome.ACQUIRED)
            current = self._cache.get(key)
            if isinstance(current, CachedResponse):
                return Reservation(ReservationOutcome.CACHED, current)
            if current is _IN_FLIGHT:
                return Reservation(ReservationOutcome.IN_FLIGHT)
            # Released or expired between add() and get(); try again.

    def complete(self, scope: IdempotencyScope, response: CachedResponse, ttl_seconds: int) -> None:
        self._cache.set(scope.cache_key, response, ttl_seconds)

    def release(self, scope: IdempotencyScope) -> None:
        self._cache.delete(scope.cache_key)

    def wait(self, scope: IdempotencyScope, timeout_seconds: float) -> CachedResponse | None:
        value = self._cache.wait_for(
            scope.cache_key,
            lambda current: current is not _IN_FLIGHT,
            timeout_seconds,
        )
        return value if isinstance(value, CachedResponse) else None


# -----------------------------------------------------------------------------
# Shared SQL store
# -----------------------------------------------------------------------------


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class SqlIdempotencyStore(IdempotencyStore):
    """
    Reservations as rows in ``idempotency_records``.

    The unique constraint on the scope columns turns the INSERT into the
    atomic reservation; an IntegrityError means another process holds it.
    Each call uses its own short session so reservations are visible to
    other processes immediately.

    Expired rows are deleted in bulk by ``purge_expired``, which ``begin``
    runs at most once per ``purge_interval_seconds``.
    """

    MAX_RESERVE_ATTEMPTS = 3

    def __init__(
        self,
        session_factory: Callable[[], Session],
        clock: Clock | None = None,
        poll_interval_seconds: float = 0.05,
        purge_interval_seconds: int = 300,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._poll_interval = poll_interval_seconds
        self._purge_interval = timedelta(seconds=purge_interval_seconds)
        self._next_purge = self._clock.now_utc()

    def purge_expired(self, now: datetime | None = None) -> int:
        """Delete every record whose ``expires_at`` has passed; returns the count."""
        now = now or self._clock.now_utc()
        with self._session_factory() as session:
            removed = session.execute(
                delete(IdempotencyRecordModel).where(IdempotencyRecordModel.expires_at <= now)
            ).rowcount
            session.commit()
        self._next_purge = now + self._purge_interval
        if removed:
            logger.info("idempotency_records_purged", extra={"removed": removed})
        return removed

    def _find(self, session: Session, scope: IdempotencyScope) -> IdempotencyRecordModel | None:
        return session.execute(
            select(IdempotencyRecordModel).where(
                IdempotencyRecordModel.tenant_id == str(scope.tenant_id),
                IdempotencyRecordModel.idempotency_key == scope.client_key,
                IdempotencyRecordModel.method == scope.method,
                IdempotencyRecordModel.path == scope.path,
            )
        ).scalar_one_or_none()

    @staticmethod
    def _to_response(record: IdempotencyRecordModel) -> CachedResponse:
        return CachedResponse(status_code=record.status_code, content=record.content or "")

    def begin(self, scope: IdempotencyScope, ttl_seconds: int) -> Reservation:
        if self._clock.now_utc() >= self._next_purge:
            self.purge_expired()
        for _ in range(self.MAX_RESERVE_ATTEMPTS):
            now = self._clock.now_utc()
            with self._session_factory() as session:
                record = self._find(session, scope)
                if record is not None:
                    if _as_utc(record.expires_at) <= now:
                        session.delete(record)
                        session.commit()
                        continue
                    if record.state == STATE_COMPLETED:
                        return Reservation(ReservationOutcome.CACHED, self._to_response(record))
                    return Reservation(ReservationOutcome.IN_FLIGHT)

                session.add(
                    IdempotencyRecordModel(
                        tenant_id=str(scope.tenant_id),
                        idempotency_key=scope.client_key,
                        method=scope.method,
                        path=scope.path,
                        state=STATE_IN_FLIGHT,
                        expires_at=now + timedelta(seconds=ttl_seconds),
                    )
                )
                try:
                    session.commit()
                except IntegrityError:
                    session.rollback()
                    logger.debug("idempotency_reservation_race", extra={"path": scope.path})
                    continue
                return Reservation(ReservationOutcome.ACQUIRED)
        return Reservation(ReservationOutcome.IN_FLIGHT)

    def complete(self, scope: IdempotencyScope, response: CachedResponse, ttl_seconds: int) -> None:
        with self._session_factory() as session:
            record = self._find(session, scope)
            if record is None:
                return
            record.state = STATE_COMPLETED
            record.status_code = response.status_code
            record.content = response.content
            record.expires_at = self._clock.now_utc() + timedelta(seconds=ttl_seconds)
            session.commit()

    def release(self, scope: IdempotencyScope) -> None:
        with self._session_factory() as session:
            session.execute(
                delete(IdempotencyRecordModel).where(
                    IdempotencyRecordModel.tenant_id == str(scope.tenant_id),
                    IdempotencyRecordModel.idempotency_key == scope.client_key,
                    IdempotencyRecordModel.method == scope.method,
                    IdempotencyRecordModel.path == scope.path,
                    IdempotencyRecordModel.state == STATE_IN_FLIGHT,
                )
            )
            session.commit()

    def wait(self, scope: IdempotencyScope, timeout_seconds: float) -> CachedResponse | None:
        deadline = time.monotonic() + timeout_seconds
        while True:
            with self._session_factory() as session:
                record = self._find(session, scope)
                if record is None:
                    return None
                if record.state == STATE_COMPLETED:
                    return self._to_response(record)
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise TimeoutError(scope.cache_key)
            time.sleep(min(self._poll_interval, remaining))


def build_store(
    config: IdempotencyConfig,
    cache: CacheService,
    session_factory: Callable[[], Session],
    clock: Clock | None = None,
) -> IdempotencyStore:
    """Pick the store named by ``idempotency.store``."""
    if config.store == "sql":
        return SqlIdempotencyStore(
            session_factory, clock, purge_interval_seconds=config.purge_interval_seconds
        )
    return MemoryIdempotencyStore(cache)


# -----------------------------------------------------------------------------
# Middleware
# -----------------------------------------------------------------------------


class IdempotencyGuard:
    """Middleware: ``guard(ctx, call_next) -> Response``."""

    def __init__(self, store: IdempotencyStore, config: IdempotencyConfig | None = None):
        self._store = store
        self._config = config or IdempotencyConfig()
        self._guarded = frozenset(m.upper() for m in self._config.guarded_methods)

    def applies_to(self, method: str) -> bool:
        return method.upper() in self._guarded

    def __call__(self, ctx: RequestContext, call_next: Handler) -> Response:
        method = ctx.method.upper()
        if not self.applies_to(method) or ctx.tenant_id is None:
            return call_next(ctx)

        client_key = (ctx.header(self._config.header_name) or "").strip()
        if not client_key:
            raise IdempotencyKeyMissingError(self._config.header_name)

        scope = IdempotencyScope(ctx.tenant_id, client_key, method, ctx.path)
        with LogContext.bind(idempotency_key=client_key):
            cached = self._reserve(scope)
            if cached is not None:
                logger.info(
                    "idempotent_replay",
                    extra={"status_code": cached.status_code, "path": ctx.path},
                )
                return self._replay(cached)

            try:
                response = call_next(ctx)
            except Exception:
                self._store.release(scope)
                raise

            if 200 <= response.status_code < 300:
                self._store.complete(
                    scope,
                    CachedResponse(
                        status_code=response.status_code,
                        content=response.content,
                        content_type=response.headers.get("content-type", "application/json"),
                    ),
                    self._config.ttl_seconds,
                )
                logger.debug("idempotent_response_stored", extra={"status_code": response.status_code})
            else:
                self._store.release(scope)
                logger.debug(
                    "idempotent_reservation_released",
                    extra={"status_code": response.status_code},
                )
            return response

    def _reserve(self, scope: IdempotencyScope) -> CachedResponse | None:
        """Acquire the scope (returns None) or return the response to replay."""
        deadline = time.monotonic() + self._config.wait_timeout_seconds
        while True:
            reservation = self._store.begin(scope, self._config.ttl_seconds)
            if reservation.outcome is ReservationOutcome.ACQUIRED:
                return None
            if reservation.outcome is ReservationOutcome.CACHED:
                return reservation.response

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            logger.info("idempotent_request_waiting", extra={"path": scope.path})
            try:
                cached = self._store.wait(scope, remaining)
            except TimeoutError:
                break
            if cached is not None:
                return cached
            # Twin failed and released its reservation; compete again.

        logger.warning("idempotency_conflict", extra={"path": scope.path})
        raise IdempotencyConflictError(scope.client_key)

    @staticmethod
    def _replay(cached: CachedResponse) -> Response:
        return Response(
            status_code=cached.status_code,
            content=cached.content,
            headers={"content-type": cached.content_type, REPLAY_HEADER: "true"},
        )
