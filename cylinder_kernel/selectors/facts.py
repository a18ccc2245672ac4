"""
Module: cylinder_kernel.selectors.facts
Responsibility: Read-only access to sales, shipments and opening stock,
    returned as the same frozen fact DTOs ingestion validates.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - A ledger "day" is the half-open UTC interval [date 00:00, date+1 00:00).
      Ingestion stores every timestamp in UTC so the same bounds hold on
      every backend.
"""

from __future__ import annotations

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import select

from cylinder_kernel.domain.clock import day_bounds, ensure_utc
from cylinder_kernel.domain.facts import (
    SaleEvent,
    SaleType,
    ShipmentBatch,
    ShipmentStatus,
    ShipmentType,
)
from cylinder_kernel.models.catalog import CylinderSize, Product
from cylinder_kernel.models.facts import OpeningStockModel, SaleModel, ShipmentModel
from cylinder_kernel.selectors.base import BaseSelector


def sale_to_dto(row: SaleModel) -> SaleEvent:
    return SaleEvent(
        sale_id=row.id,
        tenant_id=row.tenant_id,
        driver_id=row.driver_id,
        product_id=row.product_id,
        sale_type=SaleType(row.sale_type),
        quantity=row.quantity,
        unit_price=row.unit_price,
        sale_date=ensure_utc(row.sale_date),
        discount=row.discount,
        cash_deposited=row.cash_deposited,
        cylinders_deposited=row.cylinders_deposited,
    )


def shipment_to_dto(row: ShipmentModel) -> ShipmentBatch:
    return ShipmentBatch(
        shipment_id=row.id,
        tenant_id=row.tenant_id,
        product_id=row.product_id,
        shipment_type=ShipmentType(row.shipment_type),
        quantity=row.quantity,
        shipment_date=ensure_utc(row.shipment_date),
        status=ShipmentStatus(row.status),
        unit_cost=row.unit_cost,
    )


class FactSelector(BaseSelector[SaleModel]):
    """Sales, shipments and opening stock of one tenant."""

    def sales_on(self, tenant_id: str, day: date, driver_id: UUID | None = None) -> list[SaleEvent]:
        start, end = day_bounds(day)
        query = self._for_tenant(SaleModel, tenant_id).where(
            SaleModel.sale_date >= start,
            SaleModel.sale_date < end,
        )
        if driver_id is not None:
            query = query.where(SaleModel.driver_id == driver_id)
        rows = self.session.execute(query.order_by(SaleModel.sale_date, SaleModel.id)).scalars()
        return [sale_to_dto(r) for r in rows]

    def shipments_on(self, tenant_id: str, day: date) -> list[ShipmentBatch]:
        start, end = day_bounds(day)
        rows = self.session.execute(
            self._for_tenant(ShipmentModel, tenant_id)
            .where(
                ShipmentModel.shipment_date >= start,
                ShipmentModel.shipment_date < end,
            )
            .order_by(ShipmentModel.shipment_date, ShipmentModel.id)
        ).scalars()
        return [shipment_to_dto(r) for r in rows]

    def sales_for_product_until(
        self, tenant_id: str, product_id: UUID, as_of: datetime
    ) -> list[SaleEvent]:
        rows = self.session.execute(
            self._for_tenant(SaleModel, tenant_id)
            .where(
                SaleModel.product_id == product_id,
                SaleModel.sale_date <= as_of,
            )
            .order_by(SaleModel.sale_date, SaleModel.id)
        ).scalars()
        return [sale_to_dto(r) for r in rows]

    def cost_shipments_for_product_until(
        self, tenant_id: str, product_id: UUID, as_of: datetime
    ) -> list[ShipmentBatch]:
        """COMPLETED INCOMING_FULL shipments carrying a unit cost."""
        rows = self.session.execute(
            self._for_tenant(ShipmentModel, tenant_id)
            .where(
                ShipmentModel.product_id == product_id,
                ShipmentModel.shipment_type == ShipmentType.INCOMING_FULL.value,
                ShipmentModel.status == ShipmentStatus.COMPLETED.value,
                ShipmentModel.unit_cost.is_not(None),
                ShipmentModel.shipment_date <= as_of,
            )
            .order_by(ShipmentModel.shipment_date, ShipmentModel.id)
        ).scalars()
        return [shipment_to_dto(r) for r in rows]

    def refill_sales_for_driver_since(
        self, tenant_id: str, driver_id: UUID, since: datetime
    ) -> list[tuple[SaleEvent, UUID, str]]:
        """REFILL sales with the sold product's (cylinder_size_id, label)."""
        rows = self.session.execute(
            select(SaleModel, CylinderSize.id, CylinderSize.label)
            .join(Product, SaleModel.product_id == Product.id)
            .join(CylinderSize, Product.cylinder_size_id == CylinderSize.id)
            .where(
                SaleModel.tenant_id == tenant_id,
                SaleModel.driver_id == driver_id,
                SaleModel.sale_type == SaleType.REFILL.value,
                SaleModel.sale_date >= since,
            )
            .order_by(SaleModel.sale_date, SaleModel.id)
        ).all()
        return [(sale_to_dto(sale), size_id, label) for sale, size_id, label in rows]

    def latest_opening_stock(
        self,
        tenant_id: str,
        on_or_before: date,
        *,
        by_size: bool,
    ) -> dict[UUID, tuple[date, int]]:
        """
        Latest opening stock per product (``by_size=False``) or per cylinder
        size (``by_size=True``) dated on or before ``on_or_before``.
        """
        key_col = OpeningStockModel.cylinder_size_id if by_size else OpeningStockModel.product_id
        rows = self.session.execute(
            select(key_col, OpeningStockModel.balance_date, OpeningStockModel.quantity)
            .where(
                OpeningStockModel.tenant_id == tenant_id,
                key_col.is_not(None),
                OpeningStockModel.balance_date <= on_or_before,
            )
            .order_by(OpeningStockModel.balance_date)
        ).all()
        latest: dict[UUID, tuple[date, int]] = {}
        for key, balance_date, quantity in rows:
            latest[key] = (balance_date, quantity)
        return latest
