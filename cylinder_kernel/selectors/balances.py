"""
Module: cylinder_kernel.selectors.balances
Responsibility: Read-only access to stored stock and receivable balances
    and to the per-size driver baselines.
Architecture position: Kernel > Selectors.

Bulk methods return one entry per key in a single query so a tenant-wide
recompute does not issue one query per product.
"""

from __future__ import annotations

from datetime import date, timedelta
from uuid import UUID

from sqlalchemy import func, select

from cylinder_kernel.domain.balances import (
    DriverSizeBaseline,
    EmptyStockBalance,
    ReceivableBalance,
    StockBalance,
)
from cylinder_kernel.domain.clock import ensure_utc
from cylinder_kernel.models.balances import (
    EmptyStockBalanceModel,
    ReceivableBalanceModel,
    StockBalanceModel,
)
from cylinder_kernel.models.baseline import DriverSizeBaselineModel
from cylinder_kernel.models.catalog import CylinderSize
from cylinder_kernel.selectors.base import BaseSelector


def stock_to_dto(row: StockBalanceModel) -> StockBalance:
    return StockBalance(
        tenant_id=row.tenant_id,
        product_id=row.product_id,
        balance_date=row.balance_date,
        opening_full=row.opening_full,
        purchases_qty=row.purchases_qty,
        sales_qty=row.sales_qty,
        closing_full=row.closing_full,
        unclamped_closing_full=row.unclamped_closing_full,
    )


def empty_to_dto(row: EmptyStockBalanceModel) -> EmptyStockBalance:
    return EmptyStockBalance(
        tenant_id=row.tenant_id,
        cylinder_size_id=row.cylinder_size_id,
        balance_date=row.balance_date,
        opening_empty=row.opening_empty,
        refill_sales_qty=row.refill_sales_qty,
        empty_net_buy_sell=row.empty_net_buy_sell,
        closing_empty=row.closing_empty,
        unclamped_closing_empty=row.unclamped_closing_empty,
    )


def receivable_to_dto(row: ReceivableBalanceModel) -> ReceivableBalance:
    return ReceivableBalance(
        tenant_id=row.tenant_id,
        driver_id=row.driver_id,
        balance_date=row.balance_date,
        opening_cash=row.opening_cash,
        opening_cylinders=row.opening_cylinders,
        cash_change=row.cash_change,
        cylinder_change=row.cylinder_change,
        closing_cash=row.closing_cash,
        closing_cylinders=row.closing_cylinders,
        is_onboarding_anchor=row.is_onboarding_anchor,
    )


class BalanceSelector(BaseSelector[StockBalanceModel]):
    """Stored daily balances of one tenant."""

    def _execute(self, query):
        # Balance rows are rewritten by Core upserts; never serve stale identities
        return self.session.execute(query.execution_options(populate_existing=True))

    # -- full stock ---------------------------------------------------------

    def latest_stock(self, tenant_id: str, product_id: UUID) -> StockBalance | None:
        row = self._execute(
            self._for_tenant(StockBalanceModel, tenant_id)
            .where(
                StockBalanceModel.product_id == product_id,
            )
            .order_by(StockBalanceModel.balance_date.desc())
            .limit(1)
        ).scalar_one_or_none()
        return stock_to_dto(row) if row is not None else None

    def full_closings_on(self, tenant_id: str, day: date) -> dict[UUID, int]:
        rows = self._execute(
            select(StockBalanceModel.product_id, StockBalanceModel.closing_full).where(
                StockBalanceModel.tenant_id == tenant_id,
                StockBalanceModel.balance_date == day,
            )
        ).all()
        return {product_id: closing for product_id, closing in rows}

    def latest_full_closings_before(
        self, tenant_id: str, before: date
    ) -> dict[UUID, tuple[date, int]]:
        """Per product, (date, closing) of the newest row dated before ``before``."""
        latest = (
            select(
                StockBalanceModel.product_id.label("key"),
                func.max(StockBalanceModel.balance_date).label("max_date"),
            )
            .where(
                StockBalanceModel.tenant_id == tenant_id,
                StockBalanceModel.balance_date < before,
            )
            .group_by(StockBalanceModel.product_id)
            .subquery()
        )
        rows = self._execute(
            select(
                StockBalanceModel.product_id,
                StockBalanceModel.balance_date,
                StockBalanceModel.closing_full,
            ).join(
                latest,
                (StockBalanceModel.product_id == latest.c.key)
                & (StockBalanceModel.balance_date == latest.c.max_date),
            ).where(StockBalanceModel.tenant_id == tenant_id)
        ).all()
        return {product_id: (d, closing) for product_id, d, closing in rows}

    # -- empty stock --------------------------------------------------------

    def latest_empty_stock(
        self, tenant_id: str, cylinder_size_id: UUID
    ) -> EmptyStockBalance | None:
        row = self._execute(
            self._for_tenant(EmptyStockBalanceModel, tenant_id)
            .where(
                EmptyStockBalanceModel.cylinder_size_id == cylinder_size_id,
            )
            .order_by(EmptyStockBalanceModel.balance_date.desc())
            .limit(1)
        ).scalar_one_or_none()
        return empty_to_dto(row) if row is not None else None

    def empty_closings_on(self, tenant_id: str, day: date) -> dict[UUID, int]:
        rows = self._execute(
            select(
                EmptyStockBalanceModel.cylinder_size_id,
                EmptyStockBalanceModel.closing_empty,
            ).where(
                EmptyStockBalanceModel.tenant_id == tenant_id,
                EmptyStockBalanceModel.balance_date == day,
            )
        ).all()
        return {size_id: closing for size_id, closing in rows}

    def latest_empty_closings_before(
        self, tenant_id: str, before: date
    ) -> dict[UUID, tuple[date, int]]:
        latest = (
            select(
                EmptyStockBalanceModel.cylinder_size_id.label("key"),
                func.max(EmptyStockBalanceModel.balance_date).label("max_date"),
            )
            .where(
                EmptyStockBalanceModel.tenant_id == tenant_id,
                EmptyStockBalanceModel.balance_date < before,
            )
            .group_by(EmptyStockBalanceModel.cylinder_size_id)
            .subquery()
        )
        rows = self._execute(
            select(
                EmptyStockBalanceModel.cylinder_size_id,
                EmptyStockBalanceModel.balance_date,
                EmptyStockBalanceModel.closing_empty,
            ).join(
                latest,
                (EmptyStockBalanceModel.cylinder_size_id == latest.c.key)
                & (EmptyStockBalanceModel.balance_date == latest.c.max_date),
            ).where(EmptyStockBalanceModel.tenant_id == tenant_id)
        ).all()
        return {size_id: (d, closing) for size_id, d, closing in rows}

    def latest_empty_closings(self, tenant_id: str) -> dict[UUID, int]:
        """Latest closing_empty per cylinder size, whatever its date."""
        return {
            size_id: closing
            for size_id, (_, closing) in self.latest_empty_closings_before(
                tenant_id, date.max
            ).items()
        }

    def count_size_references(self, tenant_id: str, cylinder_size_id: UUID) -> int:
        return self._execute(
            select(func.count()).select_from(EmptyStockBalanceModel).where(
                EmptyStockBalanceModel.tenant_id == tenant_id,
                EmptyStockBalanceModel.cylinder_size_id == cylinder_size_id,
            )
        ).scalar_one()

    # -- receivables --------------------------------------------------------

    def receivable_on(
        self, tenant_id: str, driver_id: UUID, day: date
    ) -> ReceivableBalance | None:
        row = self._execute(
            self._for_tenant(ReceivableBalanceModel, tenant_id).where(
                ReceivableBalanceModel.driver_id == driver_id,
                ReceivableBalanceModel.balance_date == day,
            )
        ).scalar_one_or_none()
        return receivable_to_dto(row) if row is not None else None

    def latest_receivable_on_or_before(
        self, tenant_id: str, driver_id: UUID, day: date
    ) -> ReceivableBalance | None:
        row = self._execute(
            self._for_tenant(ReceivableBalanceModel, tenant_id)
            .where(
                ReceivableBalanceModel.driver_id == driver_id,
                ReceivableBalanceModel.balance_date <= day,
            )
            .order_by(ReceivableBalanceModel.balance_date.desc())
            .limit(1)
        ).scalar_one_or_none()
        return receivable_to_dto(row) if row is not None else None

    def latest_receivable_before(
        self, tenant_id: str, driver_id: UUID, day: date
    ) -> ReceivableBalance | None:
        return self.latest_receivable_on_or_before(
            tenant_id, driver_id, day - timedelta(days=1)
        )

    def earliest_receivable(self, tenant_id: str, driver_id: UUID) -> ReceivableBalance | None:
        row = self._execute(
            self._for_tenant(ReceivableBalanceModel, tenant_id)
            .where(
                ReceivableBalanceModel.driver_id == driver_id,
            )
            .order_by(ReceivableBalanceModel.balance_date.asc())
            .limit(1)
        ).scalar_one_or_none()
        return receivable_to_dto(row) if row is not None else None

    def latest_receivable(self, tenant_id: str, driver_id: UUID) -> ReceivableBalance | None:
        return self.latest_receivable_on_or_before(tenant_id, driver_id, date.max)

    def latest_cylinder_totals(self, tenant_id: str) -> dict[UUID, int]:
        """Latest closing_cylinders per driver (every driver with a balance)."""
        latest = (
            select(
                ReceivableBalanceModel.driver_id.label("key"),
                func.max(ReceivableBalanceModel.balance_date).label("max_date"),
            )
            .where(ReceivableBalanceModel.tenant_id == tenant_id)
            .group_by(ReceivableBalanceModel.driver_id)
            .subquery()
        )
        rows = self._execute(
            select(
                ReceivableBalanceModel.driver_id,
                ReceivableBalanceModel.closing_cylinders,
            ).join(
                latest,
                (ReceivableBalanceModel.driver_id == latest.c.key)
                & (ReceivableBalanceModel.balance_date == latest.c.max_date),
            ).where(ReceivableBalanceModel.tenant_id == tenant_id)
        ).all()
        return {driver_id: closing for driver_id, closing in rows}

    # -- baselines ----------------------------------------------------------

    def baselines_for_driver(self, tenant_id: str, driver_id: UUID) -> list[DriverSizeBaseline]:
        rows = self._execute(
            select(DriverSizeBaselineModel, CylinderSize.label)
            .join(CylinderSize, DriverSizeBaselineModel.cylinder_size_id == CylinderSize.id)
            .where(
                DriverSizeBaselineModel.tenant_id == tenant_id,
                DriverSizeBaselineModel.driver_id == driver_id,
            )
            .order_by(CylinderSize.label)
        ).all()
        return [
            DriverSizeBaseline(
                tenant_id=row.tenant_id,
                driver_id=row.driver_id,
                cylinder_size_id=row.cylinder_size_id,
                size_label=label,
                baseline_quantity=row.baseline_quantity,
                established_at=ensure_utc(row.established_at),
            )
            for row, label in rows
        ]
