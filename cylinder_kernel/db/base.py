"""
Module: cylinder_kernel.db.base
Responsibility: Declarative bases shared by every ledger table.  Three kinds
    of row exist: tenant reference data and input facts (``TrackedBase``,
    written by an actor), and derived daily balances (``BalanceBase``,
    written only by a recompute).
Architecture position: Kernel > DB.  Lowest-level import target within the
    kernel.  MUST NOT import from models/, services/, selectors/, domain/,
    or outer layers.

Invariants enforced:
    - Primary keys are uuid4 values stored as String(36).
    - Decimal columns are Numeric(38, 9); cash never touches float.
    - Every row carries ``tenant_id``; there is no global row.
    - Balance rows record when they were computed, not who wrote them.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, Date, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

TENANT_ID_COLUMN_LENGTH = 100


class UUIDString(TypeDecorator):
    """UUID bound as its canonical string and read back as ``uuid.UUID``."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else UUID(value)


class Base(DeclarativeBase):
    """Declarative root: uuid4 ``id`` plus the column type conventions."""

    type_annotation_map: ClassVar[dict] = {
        UUID: UUIDString(),
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        date: Date,
        int: BigInteger,
    }

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TenantScoped:
    """Mixin adding the owning tenant."""

    tenant_id: Mapped[str] = mapped_column(String(TENANT_ID_COLUMN_LENGTH), nullable=False)


class TrackedBase(TenantScoped, Base):
    """
    Actor-written row: catalog entries, facts, baselines.

    ``created_by_id`` is required; ``updated_*`` change on every UPDATE.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )
    created_by_id: Mapped[UUID] = mapped_column(nullable=False)
    updated_by_id: Mapped[UUID | None] = mapped_column(nullable=True)


class BalanceBase(TenantScoped, Base):
    """
    Derived daily balance row.

    Keyed by (tenant, entity, ``balance_date``); rewritten in place by the
    recompute that owns it, stamped with the injected clock.
    """

    __abstract__ = True

    balance_date: Mapped[date] = mapped_column(nullable=False)
    computed_at: Mapped[datetime] = mapped_column(nullable=False)
