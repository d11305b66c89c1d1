"""
settlement_config -- single public entrypoint for runtime configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration files
    or environment variables directly; they receive the frozen
    ``SettlementConfig`` (or one of its sections) by injection.

Sources, later wins:
    1. ``settlement_config/defaults.yaml`` (packaged)
    2. the YAML file named by ``SETTLEMENT_CONFIG_FILE``
    3. environment overrides (``SETTLEMENT_DATABASE_URL``, ``IDEMPOTENCY_TTL``,
       ``SETTLEMENT_IDEMPOTENCY_STORE``, ``SETTLEMENT_SWEEP_HOUR``,
       ``SETTLEMENT_ALERT_LEAD_DAYS``)

Audit relevance:
    Every load emits a ``SETTLEMENT_CONFIG_TRACE`` log entry with the
    checksum of the merged input.
"""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Mapping
from pathlib import Path

from settlement_config.loader import load_config
from settlement_config.schema import (
    CacheConfig,
    DatabaseConfig,
    IdempotencyConfig,
    SchedulingConfig,
    SettlementConfig,
    SweepConfig,
)

_logger = logging.getLogger("settlement_kernel.config")

_active: SettlementConfig | None = None
_lock = threading.Lock()

CONFIG_FILE_ENV = "SETTLEMENT_CONFIG_FILE"


def get_active_config(environ: Mapping[str, str] | None = None) -> SettlementConfig:
    """The ONLY public configuration entrypoint. Loaded once, then cached."""
    global _active
    with _lock:
        if _active is not None:
            return _active
        env = os.environ if environ is None else environ
        config_file = env.get(CONFIG_FILE_ENV)
        config, checksum = load_config(
            Path(config_file) if config_file else None,
            env,
        )
        _logger.info(
            "SETTLEMENT_CONFIG_TRACE",
            extra={
                "trace_type": "SETTLEMENT_CONFIG_TRACE",
                "checksum": checksum,
                "config_file": config_file,
                "idempotency_store": config.idempotency.store,
            },
        )
        _active = config
        return config


def reset_active_config() -> None:
    """Drop the cached config. FOR TESTING ONLY."""
    global _active
    with _lock:
        _active = None


__all__ = [
    "CacheConfig",
    "DatabaseConfig",
    "IdempotencyConfig",
    "SchedulingConfig",
    "SettlementConfig",
    "SweepConfig",
    "get_active_config",
    "reset_active_config",
]
