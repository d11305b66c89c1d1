"""
Settlement configuration schema.

Frozen dataclasses with ``__post_init__`` validation.  A ``SettlementConfig``
is the only object runtime components receive; none of them read files or
environment variables themselves.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from settlement_modules.alerts.config import DueAlertConfig


@dataclass(frozen=True)
class DatabaseConfig:
    url: str = "sqlite:///settlement.db"
    echo: bool = False
    pool_size: int = 10

    def __post_init__(self):
        if not self.url:
            raise ValueError("database.url is required")
        if self.pool_size < 1:
            raise ValueError("database.pool_size must be >= 1")


@dataclass(frozen=True)
class IdempotencyConfig:
    ttl_seconds: int = 3600
    header_name: str = "idempotency-key"
    guarded_methods: tuple[str, ...] = ("POST", "PUT", "PATCH")
    wait_timeout_seconds: float = 10.0
    store: str = "memory"
    purge_interval_seconds: int = 300

    def __post_init__(self):
        if self.ttl_seconds < 1:
            raise ValueError("idempotency.ttl_seconds must be >= 1")
        if self.wait_timeout_seconds < 0:
            raise ValueError("idempotency.wait_timeout_seconds cannot be negative")
        if self.store not in ("memory", "sql"):
            raise ValueError("idempotency.store must be 'memory' or 'sql'")
        if not self.header_name:
            raise ValueError("idempotency.header_name is required")
        if self.purge_interval_seconds < 1:
            raise ValueError("idempotency.purge_interval_seconds must be >= 1")


@dataclass(frozen=True)
class SchedulingConfig:
    max_installments: int = 120

    def __post_init__(self):
        if self.max_installments < 1:
            raise ValueError("scheduling.max_installments must be >= 1")


@dataclass(frozen=True)
class SweepConfig:
    hour_utc: int = 0
    minute_utc: int = 5
    tick_interval_seconds: int = 60

    def __post_init__(self):
        if not 0 <= self.hour_utc <= 23:
            raise ValueError("sweep.hour_utc must be 0-23")
        if not 0 <= self.minute_utc <= 59:
            raise ValueError("sweep.minute_utc must be 0-59")
        if self.tick_interval_seconds < 1:
            raise ValueError("sweep.tick_interval_seconds must be >= 1")


@dataclass(frozen=True)
class CacheConfig:
    default_ttl_seconds: int = 300
    purge_interval_seconds: int = 60

    def __post_init__(self):
        if self.purge_interval_seconds < 1:
            raise ValueError("cache.purge_interval_seconds must be >= 1")


@dataclass(frozen=True)
class SettlementConfig:
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    idempotency: IdempotencyConfig = field(default_factory=IdempotencyConfig)
    scheduling: SchedulingConfig = field(default_factory=SchedulingConfig)
    sweep: SweepConfig = field(default_factory=SweepConfig)
    alerts: DueAlertConfig = field(default_factory=DueAlertConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
