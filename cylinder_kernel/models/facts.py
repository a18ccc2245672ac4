"""
Module: cylinder_kernel.models.facts
Responsibility: ORM persistence for the immutable input facts: sales,
    shipments and manual opening stock.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Sales and shipments are append-only; the fact id is the primary key,
      so re-ingesting the same fact cannot duplicate it.
    - Enum columns are stored as their string values.
    - An opening-stock row targets a product (full) or a cylinder size
      (empty), never both (ck_opening_stock_target).

Failure modes:
    - IntegrityError on duplicate fact id or unknown foreign key.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from cylinder_kernel.db.base import TrackedBase, UUIDString


class SaleModel(TrackedBase):
    """One sale of full cylinders by a driver."""

    __tablename__ = "sales"

    __table_args__ = (
        Index("idx_sale_tenant_date", "tenant_id", "sale_date"),
        Index("idx_sale_driver_date", "tenant_id", "driver_id", "sale_date"),
        Index("idx_sale_product_date", "tenant_id", "product_id", "sale_date"),
    )

    driver_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("drivers.id"), nullable=False
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("products.id"), nullable=False
    )

    # PACKAGE | REFILL
    sale_type: Mapped[str] = mapped_column(String(20), nullable=False)

    quantity: Mapped[int] = mapped_column(nullable=False)

    unit_price: Mapped[Decimal] = mapped_column(nullable=False)

    discount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    cash_deposited: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    cylinders_deposited: Mapped[int] = mapped_column(nullable=False, default=0)

    sale_date: Mapped[datetime] = mapped_column(nullable=False)


class ShipmentModel(TrackedBase):
    """One shipment of full or empty cylinders in or out of the depot."""

    __tablename__ = "shipments"

    __table_args__ = (
        Index("idx_shipment_tenant_date", "tenant_id", "shipment_date"),
        Index("idx_shipment_product_date", "tenant_id", "product_id", "shipment_date"),
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("products.id"), nullable=False
    )

    # INCOMING_FULL | OUTGOING_FULL | INCOMING_EMPTY | OUTGOING_EMPTY
    shipment_type: Mapped[str] = mapped_column(String(20), nullable=False)

    # PENDING | COMPLETED | CANCELLED
    status: Mapped[str] = mapped_column(String(20), nullable=False)

    quantity: Mapped[int] = mapped_column(nullable=False)

    unit_cost: Mapped[Decimal | None] = mapped_column(nullable=True)

    shipment_date: Mapped[datetime] = mapped_column(nullable=False)


class OpeningStockModel(TrackedBase):
    """Manually recorded opening balance for a product or a cylinder size."""

    __tablename__ = "opening_stocks"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "product_id", "balance_date",
            name="uq_opening_stock_product",
        ),
        UniqueConstraint(
            "tenant_id", "cylinder_size_id", "balance_date",
            name="uq_opening_stock_size",
        ),
        CheckConstraint(
            "(product_id IS NULL) <> (cylinder_size_id IS NULL)",
            name="ck_opening_stock_target",
        ),
    )

    product_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("products.id"), nullable=True
    )

    cylinder_size_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("cylinder_sizes.id"), nullable=True
    )

    balance_date: Mapped[date] = mapped_column(nullable=False)

    quantity: Mapped[int] = mapped_column(nullable=False)
