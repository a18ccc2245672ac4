"""
Module: cylinder_kernel.models.balances
Responsibility: ORM persistence for the derived daily balances: full stock
    per product, empty stock per cylinder size and receivables per driver.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Exactly one row per (tenant, entity, date), enforced by the unique
      constraints below.  Ledger services write these rows only through
      db.upsert(), whose ON CONFLICT target is the same column list.
    - Rows are derived data: a full recompute of a date overwrites every
      value column.  Nothing else mutates them.
    - closing_full / closing_empty are never negative; the unclamped value
      is kept alongside for diagnosis.  Receivable closings are stored
      unclamped.

Failure modes:
    - IntegrityError if a writer bypasses upsert() and inserts a duplicate key.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from cylinder_kernel.db.base import BalanceBase, UUIDString

STOCK_BALANCE_KEY = ("tenant_id", "product_id", "balance_date")
EMPTY_STOCK_BALANCE_KEY = ("tenant_id", "cylinder_size_id", "balance_date")
RECEIVABLE_BALANCE_KEY = ("tenant_id", "driver_id", "balance_date")


class StockBalanceModel(BalanceBase):
    """Full-cylinder stock for one product at the end of one day."""

    __tablename__ = "stock_balances"

    __table_args__ = (
        UniqueConstraint(*STOCK_BALANCE_KEY, name="uq_stock_balance_key"),
        CheckConstraint("closing_full >= 0", name="ck_stock_balance_non_negative"),
        Index("idx_stock_balance_tenant_date", "tenant_id", "balance_date"),
    )

    product_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("products.id"), nullable=False
    )

    opening_full: Mapped[int] = mapped_column(nullable=False, default=0)

    purchases_qty: Mapped[int] = mapped_column(nullable=False, default=0)

    sales_qty: Mapped[int] = mapped_column(nullable=False, default=0)

    closing_full: Mapped[int] = mapped_column(nullable=False, default=0)

    unclamped_closing_full: Mapped[int] = mapped_column(nullable=False, default=0)


class EmptyStockBalanceModel(BalanceBase):
    """Empty-cylinder stock for one cylinder size at the end of one day."""

    __tablename__ = "empty_stock_balances"

    __table_args__ = (
        UniqueConstraint(*EMPTY_STOCK_BALANCE_KEY, name="uq_empty_stock_balance_key"),
        CheckConstraint("closing_empty >= 0", name="ck_empty_stock_balance_non_negative"),
        Index("idx_empty_stock_balance_tenant_date", "tenant_id", "balance_date"),
    )

    cylinder_size_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("cylinder_sizes.id"), nullable=False
    )

    opening_empty: Mapped[int] = mapped_column(nullable=False, default=0)

    refill_sales_qty: Mapped[int] = mapped_column(nullable=False, default=0)

    empty_net_buy_sell: Mapped[int] = mapped_column(nullable=False, default=0)

    closing_empty: Mapped[int] = mapped_column(nullable=False, default=0)

    unclamped_closing_empty: Mapped[int] = mapped_column(nullable=False, default=0)


class ReceivableBalanceModel(BalanceBase):
    """Cash and cylinders owed by one driver at the end of one day."""

    __tablename__ = "receivable_balances"

    __table_args__ = (
        UniqueConstraint(*RECEIVABLE_BALANCE_KEY, name="uq_receivable_balance_key"),
        Index("idx_receivable_balance_tenant_date", "tenant_id", "balance_date"),
    )

    driver_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("drivers.id"), nullable=False
    )

    opening_cash: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    opening_cylinders: Mapped[int] = mapped_column(nullable=False, default=0)

    cash_change: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    cylinder_change: Mapped[int] = mapped_column(nullable=False, default=0)

    closing_cash: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    closing_cylinders: Mapped[int] = mapped_column(nullable=False, default=0)

    # The driver's first known balance, seeded by onboarding
    is_onboarding_anchor: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
