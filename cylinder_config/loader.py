"""
Settings Loader (``cylinder_config.loader``).

Responsibility
--------------
Loads a YAML settings file and parses it into typed
``cylinder_config.schema`` dataclass instances.  Callers use
``cylinder_config.get_active_settings()``; this module is its tooling.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` with descriptive messages; unknown
  keys are rejected rather than ignored.
* Every parsed object is a frozen dataclass from ``schema.py``.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the
  parsed document for change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Wrong types, unknown keys or unknown strategy names -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from cylinder_config.schema import (
    KNOWN_SALE_TYPES,
    KNOWN_STRATEGIES,
    AllocationSettings,
    BatchSettings,
    FifoSettings,
    LedgerSettings,
    StockSettings,
)

_SECTIONS = ("version", "stock", "allocation", "fifo", "batch")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ValueError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: settings document must be a mapping")
    return data


def _section(data: dict[str, Any], name: str, allowed: tuple[str, ...]) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ValueError(f"'{name}' must be a mapping, got {type(section).__name__}")
    unknown = set(section) - set(allowed)
    if unknown:
        raise ValueError(f"Unknown keys in '{name}': {sorted(unknown)}")
    return section


def _bool(value: Any, key: str) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"'{key}' must be true or false, got {value!r}")
    return value


def parse_stock(data: dict[str, Any]) -> StockSettings:
    section = _section(data, "stock", ("carry_forward_across_gaps", "materialize_idle"))
    defaults = StockSettings()
    return StockSettings(
        carry_forward_across_gaps=_bool(
            section.get("carry_forward_across_gaps", defaults.carry_forward_across_gaps),
            "stock.carry_forward_across_gaps",
        ),
        materialize_idle=_bool(
            section.get("materialize_idle", defaults.materialize_idle),
            "stock.materialize_idle",
        ),
    )


def parse_allocation(data: dict[str, Any]) -> AllocationSettings:
    section = _section(data, "allocation", ("strategies", "redistribute_remainder"))
    defaults = AllocationSettings()
    strategies = section.get("strategies", list(defaults.strategies))
    if not isinstance(strategies, list) or not strategies:
        raise ValueError("'allocation.strategies' must be a non-empty list")
    unknown = [s for s in strategies if s not in KNOWN_STRATEGIES]
    if unknown:
        raise ValueError(
            f"Unknown allocation strategies {unknown}; "
            f"expected some of {sorted(KNOWN_STRATEGIES)}"
        )
    if len(set(strategies)) != len(strategies):
        raise ValueError("'allocation.strategies' must not repeat a strategy")
    return AllocationSettings(
        strategies=tuple(strategies),
        redistribute_remainder=_bool(
            section.get("redistribute_remainder", defaults.redistribute_remainder),
            "allocation.redistribute_remainder",
        ),
    )


def parse_fifo(data: dict[str, Any]) -> FifoSettings:
    section = _section(data, "fifo", ("default_sale_type",))
    sale_type = section.get("default_sale_type")
    if sale_type is not None and sale_type not in KNOWN_SALE_TYPES:
        raise ValueError(
            f"'fifo.default_sale_type' must be one of {sorted(KNOWN_SALE_TYPES)} or null, "
            f"got {sale_type!r}"
        )
    return FifoSettings(default_sale_type=sale_type)


def parse_batch(data: dict[str, Any]) -> BatchSettings:
    section = _section(data, "batch", ("max_workers", "lock_timeout_seconds"))
    defaults = BatchSettings()
    max_workers = section.get("max_workers", defaults.max_workers)
    if isinstance(max_workers, bool) or not isinstance(max_workers, int) or max_workers < 1:
        raise ValueError(f"'batch.max_workers' must be a positive integer, got {max_workers!r}")
    timeout = section.get("lock_timeout_seconds", defaults.lock_timeout_seconds)
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
        raise ValueError(
            f"'batch.lock_timeout_seconds' must be a positive number, got {timeout!r}"
        )
    return BatchSettings(max_workers=max_workers, lock_timeout_seconds=float(timeout))


def parse_settings(data: dict[str, Any]) -> LedgerSettings:
    """
    Parse a settings document into ``LedgerSettings``.

    Missing sections take the schema defaults.

    Raises:
        ValueError: on unknown sections, unknown keys or invalid values.
    """
    unknown = set(data) - set(_SECTIONS)
    if unknown:
        raise ValueError(f"Unknown settings sections: {sorted(unknown)}")
    version = data.get("version", 1)
    if version != 1:
        raise ValueError(f"Unsupported settings version {version!r}")
    return LedgerSettings(
        version=version,
        stock=parse_stock(data),
        allocation=parse_allocation(data),
        fifo=parse_fifo(data),
        batch=parse_batch(data),
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
