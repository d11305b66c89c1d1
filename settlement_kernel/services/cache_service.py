"""
CacheService -- in-process TTL cache shared by request handlers.

Responsibility:
    Holds derived views (dashboard summaries, obligation lists) and the
    in-memory idempotency cache.  Entries expire lazily on read, and every
    write sweeps out all expired entries at most once per
    ``purge_interval_seconds``, so keys that are never read again do not
    accumulate.  Expiry is measured against the injected Clock so tests can
    move time.

Guarantees:
    - All operations are atomic with respect to each other (one lock).
    - ``add()`` is an atomic insert-if-absent: of N concurrent callers for
      the same absent key, exactly one gets True.
    - ``wait_for()`` blocks until a key changes to a value accepted by the
      predicate, the key disappears, or the timeout elapses.

Non-goals:
    - No persistence across restarts and no cross-process sharing.
"""

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable
from uuid import UUID

from settlement_kernel.domain.clock import Clock, SystemClock
from settlement_kernel.logging_config import get_logger

logger = get_logger("services.cache")

DASHBOARD_SUMMARY_PREFIX = "dashboard:summary"
PAYABLES_LIST_PREFIX = "payables:list"
RECEIVABLES_LIST_PREFIX = "receivables:list"


@dataclass(frozen=True)
class CacheStats:
    hits: int
    misses: int
    keys: int


@dataclass
class _Entry:
    value: Any
    expires_at: float | None


class CacheService:
    """Thread-safe key/value cache with per-entry TTL."""

    def __init__(
        self,
        clock: Clock | None = None,
        default_ttl_seconds: int = 300,
        purge_interval_seconds: int = 60,
    ):
        self._clock = clock or SystemClock()
        self._default_ttl = default_ttl_seconds
        self._purge_interval = purge_interval_seconds
        self._entries: dict[str, _Entry] = {}
        self._cond = threading.Condition()
        self._hits = 0
        self._misses = 0
        self._last_purge = self._now()

    def _now(self) -> float:
        return self._clock.now_utc().timestamp()

    def _live(self, key: str) -> _Entry | None:
        # Caller holds the lock.
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at is not None and entry.expires_at <= self._now():
            del self._entries[key]
            return None
        return entry

    def _purge_locked(self, now: float) -> int:
        expired = [
            k for k, e in self._entries.items()
            if e.expires_at is not None and e.expires_at <= now
        ]
        for k in expired:
            del self._entries[k]
        if expired:
            self._cond.notify_all()
        self._last_purge = now
        return len(expired)

    def _maybe_purge(self) -> None:
        # Caller holds the lock.
        now = self._now()
        if now - self._last_purge >= self._purge_interval:
            purged = self._purge_locked(now)
            if purged:
                logger.debug("cache_expired_purged", extra={"removed": purged})

    def _expiry(self, ttl_seconds: int | None) -> float | None:
        ttl = self._default_ttl if ttl_seconds is None else ttl_seconds
        if ttl <= 0:
            return None
        return self._now() + ttl

    def get(self, key: str) -> Any | None:
        with self._cond:
            entry = self._live(key)
            if entry is None:
                self._misses += 1
                return None
            self._hits += 1
            return entry.value

    def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        with self._cond:
            self._maybe_purge()
            self._entries[key] = _Entry(value, self._expiry(ttl_seconds))
            self._cond.notify_all()

    def add(self, key: str, value: Any, ttl_seconds: int | None = None) -> bool:
        """Store ``value`` only if ``key`` is absent (or expired)."""
        with self._cond:
            self._maybe_purge()
            if self._live(key) is not None:
                return False
            self._entries[key] = _Entry(value, self._expiry(ttl_seconds))
            self._cond.notify_all()
            return True

    def delete(self, key: str) -> bool:
        with self._cond:
            removed = self._entries.pop(key, None) is not None
            if removed:
                self._cond.notify_all()
            return removed

    def delete_prefix(self, prefix: str) -> int:
        """Delete every key starting with ``prefix``; returns the count."""
        with self._cond:
            doomed = [k for k in self._entries if k.startswith(prefix)]
            for k in doomed:
                del self._entries[k]
            if doomed:
                self._cond.notify_all()
            return len(doomed)

    def get_or_set(
        self,
        key: str,
        factory: Callable[[], Any],
        ttl_seconds: int | None = None,
    ) -> Any:
        cached = self.get(key)
        if cached is not None:
            return cached
        value = factory()
        self.set(key, value, ttl_seconds)
        return value

    def wait_for(
        self,
        key: str,
        predicate: Callable[[Any | None], bool],
        timeout_seconds: float,
    ) -> Any | None:
        """
        Block until ``predicate(current value)`` holds or the timeout elapses.

        Returns the value that satisfied the predicate (None if the key is
        absent), or raises TimeoutError.
        """
        deadline = time.monotonic() + timeout_seconds
        with self._cond:
            while True:
                entry = self._live(key)
                current = entry.value if entry is not None else None
                if predicate(current):
                    return current
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise TimeoutError(key)
                self._cond.wait(remaining)

    def purge_expired(self) -> int:
        """Drop every expired entry now; returns how many were removed."""
        with self._cond:
            return self._purge_locked(self._now())

    def flush(self) -> None:
        with self._cond:
            self._entries.clear()
            self._cond.notify_all()

    def stats(self) -> CacheStats:
        with self._cond:
            return CacheStats(hits=self._hits, misses=self._misses, keys=len(self._entries))


def invalidate_tenant_views(cache: CacheService | None, tenant_id: UUID | str) -> int:
    """
    Drop the tenant's derived views after a committed mutation.

    Removes the dashboard summary and every cached payable/receivable list
    (lists may carry query suffixes after the tenant id).
    """
    if cache is None:
        return 0
    removed = int(cache.delete(f"{DASHBOARD_SUMMARY_PREFIX}:{tenant_id}"))
    removed += cache.delete_prefix(f"{PAYABLES_LIST_PREFIX}:{tenant_id}")
    removed += cache.delete_prefix(f"{RECEIVABLES_LIST_PREFIX}:{tenant_id}")
    logger.debug(
        "tenant_views_invalidated",
        extra={"tenant_id": str(tenant_id), "removed": removed},
    )
    return removed
