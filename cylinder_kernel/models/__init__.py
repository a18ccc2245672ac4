"""ORM models for the cylinder ledger kernel."""

from cylinder_kernel.models.balances import (
    EMPTY_STOCK_BALANCE_KEY,
    RECEIVABLE_BALANCE_KEY,
    STOCK_BALANCE_KEY,
    EmptyStockBalanceModel,
    ReceivableBalanceModel,
    StockBalanceModel,
)
from cylinder_kernel.models.baseline import DriverSizeBaselineModel
from cylinder_kernel.models.catalog import Company, CylinderSize, Driver, Product
from cylinder_kernel.models.facts import OpeningStockModel, SaleModel, ShipmentModel

__all__ = [
    "Company",
    "CylinderSize",
    "Driver",
    "DriverSizeBaselineModel",
    "EMPTY_STOCK_BALANCE_KEY",
    "EmptyStockBalanceModel",
    "OpeningStockModel",
    "Product",
    "RECEIVABLE_BALANCE_KEY",
    "ReceivableBalanceModel",
    "STOCK_BALANCE_KEY",
    "SaleModel",
    "ShipmentModel",
    "StockBalanceModel",
]
