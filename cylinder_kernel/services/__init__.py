"""Kernel services: fact ingestion, daily ledgers, baselines and catalog."""

from cylinder_kernel.services.baseline_service import BaselineService
from cylinder_kernel.services.catalog_service import CatalogService
from cylinder_kernel.services.ingestion_service import FactIngestionService
from cylinder_kernel.services.receivables_ledger_service import (
    ReceivableRecomputeResult,
    ReceivablesLedgerService,
)
from cylinder_kernel.services.stock_ledger_service import (
    StockLedgerService,
    StockRecomputeResult,
)

__all__ = [
    "BaselineService",
    "CatalogService",
    "FactIngestionService",
    "ReceivableRecomputeResult",
    "ReceivablesLedgerService",
    "StockLedgerService",
    "StockRecomputeResult",
]
