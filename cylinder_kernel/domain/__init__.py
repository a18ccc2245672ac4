"""Pure domain types for the cylinder ledger: facts, balances, anomalies, clock."""

from cylinder_kernel.domain.anomalies import (
    AnomalyKind,
    AnomalySeverity,
    LedgerAnomaly,
    log_anomalies,
)
from cylinder_kernel.domain.balances import (
    DriverSizeBaseline,
    EmptyStockBalance,
    LowStockStatus,
    ReceivableBalance,
    SizeBreakdown,
    StockBalance,
    StockLevels,
)
from cylinder_kernel.domain.clock import (
    Clock,
    DeterministicClock,
    SystemClock,
    day_bounds,
    end_of_day,
    ensure_utc,
)
from cylinder_kernel.domain.facts import (
    OpeningStock,
    SaleEvent,
    SaleType,
    ShipmentBatch,
    ShipmentLine,
    ShipmentStatus,
    ShipmentType,
)
from cylinder_kernel.domain.keys import ReceivableKey, StockKey, validate_tenant_id

__all__ = [
    "AnomalyKind",
    "AnomalySeverity",
    "Clock",
    "DeterministicClock",
    "DriverSizeBaseline",
    "EmptyStockBalance",
    "LedgerAnomaly",
    "LowStockStatus",
    "OpeningStock",
    "ReceivableBalance",
    "ReceivableKey",
    "SaleEvent",
    "SaleType",
    "ShipmentBatch",
    "ShipmentLine",
    "ShipmentStatus",
    "ShipmentType",
    "SizeBreakdown",
    "StockBalance",
    "StockKey",
    "StockLevels",
    "SystemClock",
    "day_bounds",
    "end_of_day",
    "ensure_utc",
    "log_anomalies",
    "validate_tenant_id",
]
