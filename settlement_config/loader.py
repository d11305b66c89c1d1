"""
YAML loader for settlement configuration.

Responsibility:
    Read the packaged defaults, overlay an optional site file, apply
    environment overrides and build the frozen ``SettlementConfig``.

Failure modes:
    * Missing override file  -> ``FileNotFoundError``.
    * Malformed YAML         -> ``yaml.YAMLError`` propagates.
    * Unknown keys or out-of-range values -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from settlement_config.schema import (
    CacheConfig,
    DatabaseConfig,
    IdempotencyConfig,
    SchedulingConfig,
    SettlementConfig,
    SweepConfig,
)
from settlement_modules.alerts.config import DueAlertConfig

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"

# environment variable -> (section, key, converter)
ENV_OVERRIDES: dict[str, tuple[str, str, Any]] = {
    "SETTLEMENT_DATABASE_URL": ("database", "url", str),
    "IDEMPOTENCY_TTL": ("idempotency", "ttl_seconds", int),
    "SETTLEMENT_IDEMPOTENCY_STORE": ("idempotency", "store", str),
    "SETTLEMENT_SWEEP_HOUR": ("sweep", "hour_utc", int),
    "SETTLEMENT_ALERT_LEAD_DAYS": ("alerts", "lead_days", int),
}

_SECTIONS: dict[str, type] = {
    "database": DatabaseConfig,
    "idempotency": IdempotencyConfig,
    "scheduling": SchedulingConfig,
    "sweep": SweepConfig,
    "alerts": DueAlertConfig,
    "cache": CacheConfig,
}


def load_yaml_file(path: Path) -> dict[str, Any]:
    with open(path) as f:
        return yaml.safe_load(f) or {}


def merge_config(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Recursive dict merge; ``override`` wins on scalar conflicts."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = merge_config(merged[key], value)
        else:
            merged[key] = value
    return merged


def apply_env_overrides(data: dict[str, Any], environ: Mapping[str, str]) -> dict[str, Any]:
    result = {section: dict(values or {}) for section, values in data.items()}
    for env_name, (section, key, convert) in ENV_OVERRIDES.items():
        raw = environ.get(env_name)
        if raw is None or raw == "":
            continue
        try:
            result.setdefault(section, {})[key] = convert(raw)
        except ValueError:
            raise ValueError(f"{env_name} has an invalid value: {raw!r}")
    return result


def parse_config(data: Mapping[str, Any]) -> SettlementConfig:
    unknown = set(data) - set(_SECTIONS)
    if unknown:
        raise ValueError(f"Unknown configuration sections: {sorted(unknown)}")

    sections: dict[str, Any] = {}
    for name, cls in _SECTIONS.items():
        values = dict(data.get(name) or {})
        if name == "idempotency" and "guarded_methods" in values:
            values["guarded_methods"] = tuple(m.upper() for m in values["guarded_methods"])
        try:
            sections[name] = cls(**values)
        except TypeError as exc:
            raise ValueError(f"Invalid keys in section '{name}': {exc}") from exc
    return SettlementConfig(**sections)


def compute_checksum(data: Mapping[str, Any]) -> str:
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def load_config(
    config_file: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> tuple[SettlementConfig, str]:
    """Build the config and return it with a checksum of the merged input."""
    data = load_yaml_file(DEFAULTS_PATH)
    if config_file is not None:
        data = merge_config(data, load_yaml_file(config_file))
    data = apply_env_overrides(data, environ or {})
    return parse_config(data), compute_checksum(data)
