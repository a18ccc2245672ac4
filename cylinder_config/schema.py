"""
LedgerSettings schema.

Frozen dataclasses for the tunable behaviour of the ledger.  YAML files are
parsed into these types by ``cylinder_config.loader``; nothing else builds
them from raw data.
"""

from __future__ import annotations

from dataclasses import dataclass, field

KNOWN_STRATEGIES = frozenset({"baseline", "proportional", "equal", "empty"})
KNOWN_SALE_TYPES = frozenset({"PACKAGE", "REFILL"})


@dataclass(frozen=True)
class StockSettings:
    """Daily stock ledger behaviour."""

    # Use the latest older balance as prior when date - 1 is missing
    carry_forward_across_gaps: bool = False
    # Write zero rows for keys with no history and no activity
    materialize_idle: bool = False


@dataclass(frozen=True)
class AllocationSettings:
    """Per-size receivable breakdown behaviour."""

    strategies: tuple[str, ...] = ("baseline", "proportional", "equal", "empty")
    redistribute_remainder: bool = False


@dataclass(frozen=True)
class FifoSettings:
    """FIFO costing defaults."""

    # Sale type counted when the caller gives none; None counts every sale
    default_sale_type: str | None = None


@dataclass(frozen=True)
class BatchSettings:
    """Recompute runner tuning."""

    max_workers: int = 4
    lock_timeout_seconds: float = 30.0


@dataclass(frozen=True)
class LedgerSettings:
    """Root settings object returned by get_active_settings()."""

    version: int = 1
    stock: StockSettings = field(default_factory=StockSettings)
    allocation: AllocationSettings = field(default_factory=AllocationSettings)
    fifo: FifoSettings = field(default_factory=FifoSettings)
    batch: BatchSettings = field(default_factory=BatchSettings)
    checksum: str = ""
