"""
settlement_engines.tracer -- SETTLEMENT_ENGINE_TRACE records for pure engines.

``@traced_engine(name, version, fingerprint_fields=...)`` logs one record per
call with the engine name and version, the call duration and a fingerprint
of the selected arguments.  Two calls with equal inputs produce the same
fingerprint, so traces of a replayed computation can be matched up.

The decorator never alters arguments or results.

Usage:
    @traced_engine("money_splitter", "1.0", fingerprint_fields=("total", "count"))
    def split_amount(total, count):
        ...
"""

from __future__ import annotations

import functools
import hashlib
import inspect
import json
import time
from collections.abc import Callable, Mapping
from datetime import date
from typing import Any

from settlement_kernel.logging_config import get_logger

logger = get_logger("engines.tracer")

TRACE_MESSAGE = "SETTLEMENT_ENGINE_TRACE"


def _plain(value: Any) -> Any:
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Mapping):
        return {str(k): _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if value is None or isinstance(value, (bool, int, str)):
        return value
    return str(value)


def input_fingerprint(fields: tuple[str, ...], arguments: Mapping[str, Any]) -> str:
    """First 16 hex chars of SHA-256 over the named arguments (absent ones are null)."""
    selected = {name: _plain(arguments.get(name)) for name in fields}
    canonical = json.dumps(selected, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:

    def decorator(func: Callable) -> Callable:
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fingerprint = ""
            if fingerprint_fields:
                bound = signature.bind(*args, **kwargs)
                bound.apply_defaults()
                fingerprint = input_fingerprint(fingerprint_fields, bound.arguments)

            started = time.perf_counter()
            result = func(*args, **kwargs)
            logger.info(
                TRACE_MESSAGE,
                extra={
                    "trace_type": TRACE_MESSAGE,
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "input_fingerprint": fingerprint,
                    "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                    "function": func.__qualname__,
                },
            )
            return result

        return wrapper

    return decorator
