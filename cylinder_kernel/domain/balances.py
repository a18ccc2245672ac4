"""
Balance DTOs returned by selectors, ledger services and the facade.

All are frozen: a balance handed to a caller is a snapshot, never a live
ORM row.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

ZERO = Decimal("0")


@dataclass(frozen=True)
class StockBalance:
    """Full-cylinder stock for one product on one date."""

    tenant_id: str
    product_id: UUID
    balance_date: date
    opening_full: int
    purchases_qty: int
    sales_qty: int
    closing_full: int
    unclamped_closing_full: int

    @property
    def was_clamped(self) -> bool:
        return self.unclamped_closing_full != self.closing_full


@dataclass(frozen=True)
class EmptyStockBalance:
    """Empty-cylinder stock for one cylinder size on one date."""

    tenant_id: str
    cylinder_size_id: UUID
    balance_date: date
    opening_empty: int
    refill_sales_qty: int
    empty_net_buy_sell: int
    closing_empty: int
    unclamped_closing_empty: int

    @property
    def was_clamped(self) -> bool:
        return self.unclamped_closing_empty != self.closing_empty


@dataclass(frozen=True)
class ReceivableBalance:
    """Cash and cylinders owed by one driver at the end of one date."""

    tenant_id: str
    driver_id: UUID
    balance_date: date
    opening_cash: Decimal
    opening_cylinders: int
    cash_change: Decimal
    cylinder_change: int
    closing_cash: Decimal
    closing_cylinders: int
    is_onboarding_anchor: bool = False

    @classmethod
    def zero(cls, tenant_id: str, driver_id: UUID, balance_date: date | None = None) -> ReceivableBalance:
        return cls(
            tenant_id=tenant_id,
            driver_id=driver_id,
            balance_date=balance_date,
            opening_cash=ZERO,
            opening_cylinders=0,
            cash_change=ZERO,
            cylinder_change=0,
            closing_cash=ZERO,
            closing_cylinders=0,
        )


@dataclass(frozen=True)
class DriverSizeBaseline:
    """Known per-size cylinder holding of a driver at a point in time."""

    tenant_id: str
    driver_id: UUID
    cylinder_size_id: UUID
    size_label: str
    baseline_quantity: int
    established_at: datetime


@dataclass(frozen=True)
class StockLevels:
    """Current full and empty stock for a product.  Dates are None when nothing is recorded."""

    product_id: UUID
    cylinder_size_id: UUID
    full_quantity: int
    full_as_of: date | None
    empty_quantity: int
    empty_as_of: date | None


@dataclass(frozen=True)
class SizeBreakdown:
    """Empty cylinders of one size split into receivables and in-hand."""

    cylinder_size_id: UUID
    size_label: str
    empty_stock: int
    receivables: int
    empty_in_hand: int
    as_of: date | None


@dataclass(frozen=True)
class LowStockStatus:
    product_id: UUID
    is_low: bool
    level: int
    threshold: int
