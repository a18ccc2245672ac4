"""
Module: cylinder_kernel.services.catalog_service
Responsibility: Create and retire tenant reference data (companies, cylinder
    sizes, products, drivers).
Architecture position: Kernel > Services.  Never commits.

Invariants enforced:
    - A cylinder size referenced by balance rows is never hard-deleted; it
      is deactivated instead and drops out of recompute and allocation.
    - A product always points at a size and company of its own tenant.

Failure modes:
    - CylinderSizeReferencedError from delete_cylinder_size.
    - CylinderSizeNotFoundError / DriverNotFoundError / ProductNotFoundError.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from cylinder_kernel.domain.keys import validate_tenant_id
from cylinder_kernel.exceptions import (
    CatalogError,
    CylinderSizeNotFoundError,
    CylinderSizeReferencedError,
)
from cylinder_kernel.logging_config import get_logger
from cylinder_kernel.models.catalog import Company, CylinderSize, Driver, Product
from cylinder_kernel.selectors.balances import BalanceSelector
from cylinder_kernel.selectors.catalog import CatalogSelector, DriverInfo, ProductInfo, SizeInfo

logger = get_logger("services.catalog")


class CatalogService:
    """Tenant reference data."""

    def __init__(self, session: Session):
        self.session = session
        self._catalog = CatalogSelector(session)
        self._balances = BalanceSelector(session)

    def create_company(self, tenant_id: str, name: str, actor_id: UUID) -> UUID:
        tenant_id = validate_tenant_id(tenant_id)
        company = Company(tenant_id=tenant_id, name=name, created_by_id=actor_id)
        self.session.add(company)
        self.session.flush()
        return company.id

    def create_cylinder_size(self, tenant_id: str, label: str, actor_id: UUID) -> SizeInfo:
        tenant_id = validate_tenant_id(tenant_id)
        size = CylinderSize(tenant_id=tenant_id, label=label, created_by_id=actor_id)
        self.session.add(size)
        self.session.flush()
        logger.info("cylinder_size_created", extra={"tenant_id": tenant_id, "label": label})
        return SizeInfo(size.id, size.label, True)

    def create_product(
        self,
        tenant_id: str,
        company_id: UUID,
        cylinder_size_id: UUID,
        name: str,
        actor_id: UUID,
        unit_price: Decimal = Decimal("0"),
        low_stock_threshold: int = 0,
    ) -> ProductInfo:
        tenant_id = validate_tenant_id(tenant_id)
        self._catalog.get_size(tenant_id, cylinder_size_id)
        company = self.session.get(Company, company_id)
        if company is None or company.tenant_id != tenant_id:
            raise CatalogError(f"Company {company_id} not found for tenant {tenant_id}")
        product = Product(
            tenant_id=tenant_id,
            company_id=company_id,
            cylinder_size_id=cylinder_size_id,
            name=name,
            unit_price=unit_price,
            low_stock_threshold=low_stock_threshold,
            created_by_id=actor_id,
        )
        self.session.add(product)
        self.session.flush()
        return self._catalog.get_product(tenant_id, product.id)

    def create_driver(self, tenant_id: str, name: str, actor_id: UUID) -> DriverInfo:
        tenant_id = validate_tenant_id(tenant_id)
        driver = Driver(tenant_id=tenant_id, name=name, created_by_id=actor_id)
        self.session.add(driver)
        self.session.flush()
        return DriverInfo(driver.id, driver.name, True)

    def _size_row(self, tenant_id: str, cylinder_size_id: UUID) -> CylinderSize:
        size = self.session.execute(
            select(CylinderSize).where(
                CylinderSize.tenant_id == tenant_id,
                CylinderSize.id == cylinder_size_id,
            )
        ).scalar_one_or_none()
        if size is None:
            raise CylinderSizeNotFoundError(tenant_id, str(cylinder_size_id))
        return size

    def deactivate_cylinder_size(self, tenant_id: str, cylinder_size_id: UUID, actor_id: UUID) -> None:
        """Soft-delete: the size keeps its history but leaves every active list."""
        size = self._size_row(validate_tenant_id(tenant_id), cylinder_size_id)
        size.is_active = False
        size.updated_by_id = actor_id
        self.session.flush()
        logger.info(
            "cylinder_size_deactivated",
            extra={"tenant_id": tenant_id, "cylinder_size_id": str(cylinder_size_id)},
        )

    def delete_cylinder_size(self, tenant_id: str, cylinder_size_id: UUID) -> None:
        """
        Hard-delete a size that no balance row references.

        Raises:
            CylinderSizeReferencedError: if any empty-stock balance uses it.
        """
        tenant_id = validate_tenant_id(tenant_id)
        size = self._size_row(tenant_id, cylinder_size_id)
        references = self._balances.count_size_references(tenant_id, cylinder_size_id)
        if references:
            raise CylinderSizeReferencedError(str(cylinder_size_id), references)
        self.session.delete(size)
        self.session.flush()
        logger.info(
            "cylinder_size_deleted",
            extra={"tenant_id": tenant_id, "cylinder_size_id": str(cylinder_size_id)},
        )
