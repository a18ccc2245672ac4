"""
Module: cylinder_kernel.services.stock_ledger_service
Responsibility: RecomputeStock -- rebuild one tenant's full and empty stock
    balances for one date from facts and the prior day's balances.
Architecture position: Kernel > Services.  Reads through selectors, computes
    with cylinder_engines.stock, writes through db.upsert().  Never commits.

Invariants enforced:
    - Exactly one row per (tenant, product, date) and (tenant, size, date);
      recompute overwrites in place (same row id).
    - Idempotent: recomputing a date with unchanged facts and priors
      writes identical values.
    - Later dates are not touched.  Callers recompute forward when an
      earlier date changes.

Failure modes:
    - InvalidTenantError for a malformed tenant id.
    - Database errors propagate; the caller's transaction is rolled back.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta

from sqlalchemy.orm import Session

from cylinder_engines.stock import (
    EmptyStockLine,
    FullStockLine,
    ProductRef,
    compute_stock_day,
    resolve_prior,
)
from cylinder_kernel.db.upsert import upsert
from cylinder_kernel.domain.anomalies import LedgerAnomaly, log_anomalies
from cylinder_kernel.domain.balances import EmptyStockBalance, StockBalance
from cylinder_kernel.domain.clock import Clock, SystemClock
from cylinder_kernel.domain.keys import validate_tenant_id
from cylinder_kernel.logging_config import LogContext, get_logger
from cylinder_kernel.models.balances import (
    EMPTY_STOCK_BALANCE_KEY,
    STOCK_BALANCE_KEY,
    EmptyStockBalanceModel,
    StockBalanceModel,
)
from cylinder_kernel.selectors.balances import BalanceSelector
from cylinder_kernel.selectors.catalog import CatalogSelector
from cylinder_kernel.selectors.facts import FactSelector

logger = get_logger("services.stock_ledger")


@dataclass(frozen=True)
class StockRecomputeResult:
    tenant_id: str
    balance_date: date
    full: tuple[StockBalance, ...]
    empty: tuple[EmptyStockBalance, ...]
    anomalies: tuple[LedgerAnomaly, ...] = field(default=())


class StockLedgerService:
    """
    Daily stock ledger for full and empty cylinders.

    Contract:
        Receives Session and Clock via constructor injection.  The
        gap-handling and idle-key switches are plain values so the kernel
        stays independent of the settings package.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        *,
        carry_forward_across_gaps: bool = False,
        materialize_idle: bool = False,
    ):
        self.session = session
        self.clock = clock or SystemClock()
        self.carry_forward_across_gaps = carry_forward_across_gaps
        self.materialize_idle = materialize_idle
        self._catalog = CatalogSelector(session)
        self._facts = FactSelector(session)
        self._balances = BalanceSelector(session)

    def _priors(
        self,
        previous_day: dict,
        older: dict,
        opening: dict,
        keys,
    ) -> dict:
        return {
            key: resolve_prior(
                previous_day=previous_day.get(key),
                latest_older=older.get(key),
                opening_stock=opening.get(key),
                carry_forward_across_gaps=self.carry_forward_across_gaps,
            )
            for key in keys
        }

    def recompute(
        self,
        tenant_id: str,
        balance_date: date,
        materialize_idle: bool | None = None,
    ) -> StockRecomputeResult:
        """
        Recompute every active product's and size's balance for ``balance_date``.

        Postconditions:
            One row per materialized key exists for ``balance_date`` holding
            the returned values.
        """
        tenant_id = validate_tenant_id(tenant_id)
        if materialize_idle is None:
            materialize_idle = self.materialize_idle
        previous = balance_date - timedelta(days=1)

        with LogContext.bind(tenant_id=tenant_id, ledger_date=balance_date.isoformat()):
            logger.info("stock_recompute_started")

            products = self._catalog.list_products(tenant_id)
            sizes = self._catalog.list_sizes(tenant_id, active_only=True)
            product_refs = [
                ProductRef(p.product_id, p.cylinder_size_id, p.is_active) for p in products
            ]
            size_ids = [s.cylinder_size_id for s in sizes]

            full_priors: dict = self._priors(
                self._balances.full_closings_on(tenant_id, previous),
                self._balances.latest_full_closings_before(tenant_id, previous),
                self._facts.latest_opening_stock(tenant_id, balance_date, by_size=False),
                [p.product_id for p in products if p.is_active],
            )
            empty_priors: dict = self._priors(
                self._balances.empty_closings_on(tenant_id, previous),
                self._balances.latest_empty_closings_before(tenant_id, previous),
                self._facts.latest_opening_stock(tenant_id, balance_date, by_size=True),
                size_ids,
            )

            result = compute_stock_day(
                tenant_id=tenant_id,
                balance_date=balance_date,
                products=product_refs,
                active_size_ids=size_ids,
                full_priors=full_priors,
                empty_priors=empty_priors,
                sales=self._facts.sales_on(tenant_id, balance_date),
                shipments=self._facts.shipments_on(tenant_id, balance_date),
                materialize_idle=materialize_idle,
            )

            computed_at = self.clock.now()
            full = tuple(
                self._write_full(tenant_id, balance_date, line, computed_at)
                for line in result.full_lines
            )
            empty = tuple(
                self._write_empty(tenant_id, balance_date, line, computed_at)
                for line in result.empty_lines
            )
            self.session.flush()

            log_anomalies(logger, result.anomalies)
            logger.info(
                "stock_recompute_completed",
                extra={
                    "full_rows": len(full),
                    "empty_rows": len(empty),
                    "anomaly_count": len(result.anomalies),
                },
            )

        return StockRecomputeResult(
            tenant_id=tenant_id,
            balance_date=balance_date,
            full=full,
            empty=empty,
            anomalies=result.anomalies,
        )

    def _write_full(self, tenant_id, balance_date, line: FullStockLine, computed_at) -> StockBalance:
        upsert(
            self.session,
            StockBalanceModel.__table__,
            STOCK_BALANCE_KEY,
            {
                "tenant_id": tenant_id,
                "product_id": line.product_id,
                "balance_date": balance_date,
                "opening_full": line.opening_full,
                "purchases_qty": line.purchases_qty,
                "sales_qty": line.sales_qty,
                "closing_full": line.closing_full,
                "unclamped_closing_full": line.unclamped_closing_full,
                "computed_at": computed_at,
            },
        )
        return StockBalance(
            tenant_id=tenant_id,
            product_id=line.product_id,
            balance_date=balance_date,
            opening_full=line.opening_full,
            purchases_qty=line.purchases_qty,
            sales_qty=line.sales_qty,
            closing_full=line.closing_full,
            unclamped_closing_full=line.unclamped_closing_full,
        )

    def _write_empty(
        self, tenant_id, balance_date, line: EmptyStockLine, computed_at
    ) -> EmptyStockBalance:
        upsert(
            self.session,
            EmptyStockBalanceModel.__table__,
            EMPTY_STOCK_BALANCE_KEY,
            {
                "tenant_id": tenant_id,
                "cylinder_size_id": line.cylinder_size_id,
                "balance_date": balance_date,
                "opening_empty": line.opening_empty,
                "refill_sales_qty": line.refill_sales_qty,
                "empty_net_buy_sell": line.empty_net_buy_sell,
                "closing_empty": line.closing_empty,
                "unclamped_closing_empty": line.unclamped_closing_empty,
                "computed_at": computed_at,
            },
        )
        return EmptyStockBalance(
            tenant_id=tenant_id,
            cylinder_size_id=line.cylinder_size_id,
            balance_date=balance_date,
            opening_empty=line.opening_empty,
            refill_sales_qty=line.refill_sales_qty,
            empty_net_buy_sell=line.empty_net_buy_sell,
            closing_empty=line.closing_empty,
            unclamped_closing_empty=line.unclamped_closing_empty,
        )
