"""
Module: cylinder_kernel.selectors.catalog
Responsibility: Read-only access to tenant reference data (products,
    cylinder sizes, drivers) as frozen DTOs.

Failure modes:
    - ProductNotFoundError / DriverNotFoundError / CylinderSizeNotFoundError
      from the get_* methods when the id is unknown for the tenant.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select, union

from cylinder_kernel.exceptions import (
    CylinderSizeNotFoundError,
    DriverNotFoundError,
    ProductNotFoundError,
)
from cylinder_kernel.models.catalog import CylinderSize, Driver, Product
from cylinder_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class ProductInfo:
    product_id: UUID
    name: str
    cylinder_size_id: UUID
    size_label: str
    unit_price: Decimal
    low_stock_threshold: int
    is_active: bool


@dataclass(frozen=True)
class SizeInfo:
    cylinder_size_id: UUID
    label: str
    is_active: bool


@dataclass(frozen=True)
class DriverInfo:
    driver_id: UUID
    name: str
    is_active: bool


def _product_info(product: Product) -> ProductInfo:
    return ProductInfo(
        product_id=product.id,
        name=product.name,
        cylinder_size_id=product.cylinder_size_id,
        size_label=product.cylinder_size.label,
        unit_price=product.unit_price,
        low_stock_threshold=product.low_stock_threshold,
        is_active=product.is_active,
    )


class CatalogSelector(BaseSelector[Product]):
    """Products, cylinder sizes and drivers of one tenant."""

    def get_product(self, tenant_id: str, product_id: UUID) -> ProductInfo:
        product = self._get_owned(Product, tenant_id, product_id)
        if product is None:
            raise ProductNotFoundError(tenant_id, str(product_id))
        return _product_info(product)

    def list_products(self, tenant_id: str, active_only: bool = False) -> list[ProductInfo]:
        query = self._for_tenant(Product, tenant_id)
        if active_only:
            query = query.where(Product.is_active.is_(True))
        products = self.session.execute(query.order_by(Product.name, Product.id)).scalars()
        return [_product_info(p) for p in products]

    def get_size(self, tenant_id: str, cylinder_size_id: UUID) -> SizeInfo:
        size = self._get_owned(CylinderSize, tenant_id, cylinder_size_id)
        if size is None:
            raise CylinderSizeNotFoundError(tenant_id, str(cylinder_size_id))
        return SizeInfo(size.id, size.label, size.is_active)

    def list_sizes(self, tenant_id: str, active_only: bool = True) -> list[SizeInfo]:
        query = self._for_tenant(CylinderSize, tenant_id)
        if active_only:
            query = query.where(CylinderSize.is_active.is_(True))
        sizes = self.session.execute(query.order_by(CylinderSize.label)).scalars()
        return [SizeInfo(s.id, s.label, s.is_active) for s in sizes]

    def get_driver(self, tenant_id: str, driver_id: UUID) -> DriverInfo:
        driver = self._get_owned(Driver, tenant_id, driver_id)
        if driver is None:
            raise DriverNotFoundError(tenant_id, str(driver_id))
        return DriverInfo(driver.id, driver.name, driver.is_active)

    def list_drivers(self, tenant_id: str, active_only: bool = True) -> list[DriverInfo]:
        query = self._for_tenant(Driver, tenant_id)
        if active_only:
            query = query.where(Driver.is_active.is_(True))
        drivers = self.session.execute(query.order_by(Driver.name, Driver.id)).scalars()
        return [DriverInfo(d.id, d.name, d.is_active) for d in drivers]

    def list_tenant_ids(self) -> list[str]:
        """Every tenant that owns at least one product or driver."""
        query = union(
            select(Product.tenant_id),
            select(Driver.tenant_id),
        )
        return sorted(self.session.execute(query).scalars())
