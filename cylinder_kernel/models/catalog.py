"""
Module: cylinder_kernel.models.catalog
Responsibility: ORM persistence for tenant reference data: companies,
    cylinder sizes, products and drivers.
Architecture position: Kernel > Models.  May import from db/base.py only.
    MUST NOT import from services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - Every row is tenant scoped; lookups always filter on tenant_id.
    - A cylinder size label is unique within a tenant (uq_cylinder_size_label).
    - A cylinder size referenced by a balance row is never hard-deleted;
      CatalogService deactivates it instead.

Failure modes:
    - IntegrityError on duplicate size label or unknown foreign key.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from cylinder_kernel.db.base import TrackedBase, UUIDString


class Company(TrackedBase):
    """Tenant-scoped owner of products (a gas brand or supplier)."""

    __tablename__ = "companies"

    __table_args__ = (
        Index("idx_company_tenant", "tenant_id"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)


class CylinderSize(TrackedBase):
    """
    A cylinder capacity class (e.g. "12L").

    Empty-cylinder stock and per-size receivable breakdowns are keyed by
    size, not by product: an empty 12L cylinder can be refilled as any 12L
    product.
    """

    __tablename__ = "cylinder_sizes"

    __table_args__ = (
        UniqueConstraint("tenant_id", "label", name="uq_cylinder_size_label"),
        Index("idx_cylinder_size_active", "tenant_id", "is_active"),
    )

    label: Mapped[str] = mapped_column(String(50), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<CylinderSize {self.label} active={self.is_active}>"


class Product(TrackedBase):
    """
    A sellable full cylinder: one company's gas in one cylinder size.

    ``unit_price`` is the current list price only; sales carry their own
    price.  ``low_stock_threshold`` drives CheckLowStock.
    """

    __tablename__ = "products"

    __table_args__ = (
        Index("idx_product_tenant_active", "tenant_id", "is_active"),
        Index("idx_product_size", "tenant_id", "cylinder_size_id"),
    )

    company_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("companies.id"),
        nullable=False,
    )

    cylinder_size_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("cylinder_sizes.id"),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    unit_price: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    low_stock_threshold: Mapped[int] = mapped_column(nullable=False, default=0)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    company: Mapped[Company] = relationship(Company, lazy="joined")

    cylinder_size: Mapped[CylinderSize] = relationship(CylinderSize, lazy="joined")

    def __repr__(self) -> str:
        return f"<Product {self.name} size={self.cylinder_size_id}>"


class Driver(TrackedBase):
    """A delivery driver who sells cylinders and owes cash and empties."""

    __tablename__ = "drivers"

    __table_args__ = (
        Index("idx_driver_tenant_active", "tenant_id", "is_active"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
