"""
cylinder_engines.tracer -- CYLINDER_ENGINE_TRACE records for engine calls.

Responsibility:
    ``@traced_engine`` wraps a pure, keyword-only engine function and logs
    one record per call: engine name and version, a fingerprint of the
    inputs that determine the result, the tenant when one is passed, the
    number of anomalies the result carries, and the duration.  Two calls
    with the same fingerprint and version must produce the same result,
    which is what makes a recompute reproducible.

Architecture position:
    Engines -- the only logging the calculation layer does.  Uses plain
    ``logging`` under ``cylinder_kernel.engines`` so it needs nothing from
    the kernel.

Invariants enforced:
    - The fingerprint is order independent for mappings and sets and
      stable across processes (no ``id()`` or hash randomization).
    - Inputs are only read.

Failure modes:
    - A fingerprint field that was not passed is hashed as "null".
"""

from __future__ import annotations

import dataclasses
import functools
import hashlib
import logging
import time
from collections.abc import Callable, Mapping
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

_logger = logging.getLogger("cylinder_kernel.engines.tracer")

TRACE_MESSAGE = "CYLINDER_ENGINE_TRACE"


def _canonicalize(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (str, int, float, Decimal, UUID)):
        return str(value)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        fields = {f.name: getattr(value, f.name) for f in dataclasses.fields(value)}
        return type(value).__name__ + _canonicalize(fields)
    if isinstance(value, Mapping):
        entries = sorted(f"{_canonicalize(k)}:{_canonicalize(v)}" for k, v in value.items())
        return "{" + ",".join(entries) + "}"
    if isinstance(value, (set, frozenset)):
        return "[" + ",".join(sorted(_canonicalize(v) for v in value)) + "]"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_canonicalize(v) for v in value) + "]"
    return str(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    kwargs: Mapping[str, Any],
) -> str:
    """First 16 hex chars of SHA-256 over ``name=value`` of the selected kwargs."""
    canonical = "|".join(f"{name}={_canonicalize(kwargs.get(name))}" for name in fingerprint_fields)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """
    Decorate an engine entry point.

    Args:
        engine_name: e.g. "stock_ledger".
        engine_version: bumped whenever the same inputs would give a
            different result.
        fingerprint_fields: keyword arguments that determine the result.
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            started = time.monotonic()
            result = func(*args, **kwargs)
            extra: dict[str, Any] = {
                "trace_type": TRACE_MESSAGE,
                "engine_name": engine_name,
                "engine_version": engine_version,
                "input_fingerprint": compute_input_fingerprint(fingerprint_fields, kwargs),
                "duration_ms": round((time.monotonic() - started) * 1000, 2),
                "function": func.__qualname__,
                "anomaly_count": len(getattr(result, "anomalies", ())),
            }
            if "tenant_id" in kwargs:
                extra["engine_tenant_id"] = kwargs["tenant_id"]
            _logger.info(TRACE_MESSAGE, extra=extra)
            return result

        return wrapper

    return decorator
