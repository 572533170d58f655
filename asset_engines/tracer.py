"""
asset_engines.tracer -- Engine invocation tracer emitting ASSET_ENGINE_TRACE.

Responsibility:
    Provide a lightweight decorator (``@traced_engine``) that wraps pure
    depreciation engine invocations with structured trace logging: engine
    name, engine version, a deterministic fingerprint of selected inputs,
    and duration.

Architecture position:
    Engines -- infrastructure support for the pure calculation layer.
    Emits a DEBUG log record only; never mutates inputs or results.

Invariants enforced:
    - Fingerprints are deterministic: ``_canonicalize`` produces stable
      strings for dates, Decimals, enums, dataclasses and containers, and
      the hash is a 16-hex-char SHA-256 prefix.

Failure modes:
    - Fingerprint fields missing from kwargs are recorded as "null".
"""

from __future__ import annotations

import dataclasses
import functools
import hashlib
import time
from collections.abc import Callable
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any

from asset_kernel.logging_config import get_logger

_logger = get_logger("engines.tracer")


def _canonicalize(value: Any) -> str:
    """Produce a stable string representation of a value for fingerprinting."""
    if value is None:
        return "null"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, (int, float, Decimal, str)):
        return str(value)
    if isinstance(value, date):
        return value.isoformat()
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return _canonicalize(
            {f.name: getattr(value, f.name) for f in dataclasses.fields(value)}
        )
    if isinstance(value, dict):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        return "{" + ",".join(f"{k}:{_canonicalize(v)}" for k, v in items) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_canonicalize(v) for v in value) + "]"
    return str(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    kwargs: dict[str, Any],
) -> str:
    """Deterministic SHA-256 prefix over the named keyword arguments."""
    parts = [
        f"{field}={_canonicalize(kwargs.get(field))}"
        for field in fingerprint_fields
    ]
    canonical = "|".join(parts)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """Decorator that emits ASSET_ENGINE_TRACE for pure engine invocations.

    Args:
        engine_name: Engine identifier (e.g., "amortization").
        engine_version: Engine version (e.g., "1.0").
        fingerprint_fields: Keyword argument names to include in the
            input fingerprint hash.
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fp = ""
            if fingerprint_fields:
                fp = compute_input_fingerprint(fingerprint_fields, kwargs)

            t0 = time.monotonic()
            result = func(*args, **kwargs)
            duration_ms = round((time.monotonic() - t0) * 1000, 2)

            _logger.debug(
                "ASSET_ENGINE_TRACE",
                extra={
                    "trace_type": "ASSET_ENGINE_TRACE",
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "input_fingerprint": fp,
                    "duration_ms": duration_ms,
                    "function": func.__qualname__,
                },
            )
            return result

        return wrapper

    return decorator
