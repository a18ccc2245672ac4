"""Read-only selectors for the cylinder ledger."""

from cylinder_kernel.selectors.balances import BalanceSelector
from cylinder_kernel.selectors.base import BaseSelector
from cylinder_kernel.selectors.catalog import (
    CatalogSelector,
    DriverInfo,
    ProductInfo,
    SizeInfo,
)
from cylinder_kernel.selectors.facts import FactSelector

__all__ = [
    "BalanceSelector",
    "BaseSelector",
    "CatalogSelector",
    "DriverInfo",
    "FactSelector",
    "ProductInfo",
    "SizeInfo",
]
