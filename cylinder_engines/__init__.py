"""
Pure calculation engines for the cylinder ledger.

Engines take frozen domain values and return frozen results.  They never
touch the database; services resolve inputs and persist outputs.
"""

from cylinder_engines.availability import (
    LineAvailability,
    ResolvedLine,
    ShipmentAvailability,
    StockKind,
    check_availability,
)
from cylinder_engines.fifo import FifoResult, RemainingBatch, compute_fifo
from cylinder_engines.receivables import (
    PriorReceivable,
    ReceivableComputation,
    ReceivablePriorSource,
    StoredReceivable,
    compute_receivable_day,
    resolve_receivable_prior,
)
from cylinder_engines.size_allocation import (
    DEFAULT_STRATEGY_ORDER,
    STRATEGIES,
    AllocationInputs,
    AllocationResult,
    SizedRefill,
    SizeRef,
    allocate_by_size,
)
from cylinder_engines.stock import (
    EmptyStockLine,
    FullStockLine,
    PriorBalance,
    PriorSource,
    ProductRef,
    StockDayResult,
    compute_stock_day,
    resolve_prior,
)
from cylinder_engines.tracer import traced_engine

__all__ = [
    "AllocationInputs",
    "AllocationResult",
    "DEFAULT_STRATEGY_ORDER",
    "EmptyStockLine",
    "FifoResult",
    "FullStockLine",
    "LineAvailability",
    "PriorBalance",
    "PriorReceivable",
    "PriorSource",
    "ProductRef",
    "ReceivableComputation",
    "ReceivablePriorSource",
    "ResolvedLine",
    "RemainingBatch",
    "STRATEGIES",
    "SizeRef",
    "SizedRefill",
    "ShipmentAvailability",
    "StockDayResult",
    "StockKind",
    "StoredReceivable",
    "allocate_by_size",
    "check_availability",
    "compute_fifo",
    "compute_receivable_day",
    "compute_stock_day",
    "resolve_prior",
    "resolve_receivable_prior",
    "traced_engine",
]
