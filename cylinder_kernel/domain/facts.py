"""
Module: cylinder_kernel.domain.facts
Responsibility: Closed set of typed, immutable fact DTOs consumed by the
    ledgers: SaleEvent, ShipmentBatch and OpeningStock.  Every field is
    validated once, at construction (ingestion), so downstream consumers
    never see a malformed fact.
Architecture position: Kernel > Domain.  Pure, zero I/O.  May import from
    exceptions and domain/keys only.

Invariants enforced:
    - Quantities are non-negative integers (sale and shipment quantities
      strictly positive).
    - Money fields are finite, non-negative Decimals.
    - cylinders_deposited is only meaningful for REFILL sales but is accepted
      on PACKAGE sales (drivers return stray empties); it is never negative.
    - OpeningStock targets exactly one of product or cylinder size.

Failure modes:
    - FactValidationError naming the fact type and field.
    - InvalidTenantError for a missing/malformed tenant id.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from uuid import UUID

from cylinder_kernel.domain.keys import validate_tenant_id
from cylinder_kernel.exceptions import FactValidationError

ZERO = Decimal("0")


class SaleType(str, Enum):
    """Kind of sale as seen by the stock ledgers."""

    PACKAGE = "PACKAGE"  # full cylinder out, no empty back
    REFILL = "REFILL"    # full cylinder out, empty cylinder back


class ShipmentType(str, Enum):
    """Direction and content of a shipment."""

    INCOMING_FULL = "INCOMING_FULL"
    OUTGOING_FULL = "OUTGOING_FULL"
    INCOMING_EMPTY = "INCOMING_EMPTY"
    OUTGOING_EMPTY = "OUTGOING_EMPTY"

    @property
    def is_full(self) -> bool:
        return self in (ShipmentType.INCOMING_FULL, ShipmentType.OUTGOING_FULL)

    @property
    def sign(self) -> int:
        """+1 for incoming, -1 for outgoing."""
        if self in (ShipmentType.INCOMING_FULL, ShipmentType.INCOMING_EMPTY):
            return 1
        return -1


class ShipmentStatus(str, Enum):
    """Shipment lifecycle.  Only COMPLETED shipments move stock."""

    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


def _coerce_enum(enum_cls, value, fact_type: str, field_name: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        raise FactValidationError(
            fact_type, field_name, f"unknown value {value!r}"
        ) from None


def _coerce_money(value, fact_type: str, field_name: str) -> Decimal:
    if isinstance(value, float):
        value = str(value)
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise FactValidationError(
            fact_type, field_name, f"not a decimal amount: {value!r}"
        ) from None
    if not amount.is_finite():
        raise FactValidationError(fact_type, field_name, "must be finite")
    if amount < 0:
        raise FactValidationError(fact_type, field_name, f"must be >= 0, got {amount}")
    return amount


def _check_quantity(value, fact_type: str, field_name: str, *, positive: bool) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise FactValidationError(
            fact_type, field_name, f"must be an integer, got {value!r}"
        )
    if positive and value <= 0:
        raise FactValidationError(fact_type, field_name, f"must be > 0, got {value}")
    if value < 0:
        raise FactValidationError(fact_type, field_name, f"must be >= 0, got {value}")


def _check_uuid(value, fact_type: str, field_name: str) -> None:
    if not isinstance(value, UUID):
        raise FactValidationError(fact_type, field_name, f"must be a UUID, got {value!r}")


@dataclass(frozen=True)
class SaleEvent:
    """
    Immutable sale fact.

    Contract:
        Constructed by the sales API (collaborator) and handed to
        FactIngestionService.record_sale().  Validated on construction.
    Guarantees:
        - revenue == quantity * unit_price.
        - Money fields are non-negative Decimals.
    """

    sale_id: UUID
    tenant_id: str
    driver_id: UUID
    product_id: UUID
    sale_type: SaleType
    quantity: int
    unit_price: Decimal
    sale_date: datetime
    discount: Decimal = ZERO
    cash_deposited: Decimal = ZERO
    cylinders_deposited: int = 0

    def __post_init__(self) -> None:
        fact = "SaleEvent"
        object.__setattr__(self, "tenant_id", validate_tenant_id(self.tenant_id))
        _check_uuid(self.sale_id, fact, "sale_id")
        _check_uuid(self.driver_id, fact, "driver_id")
        _check_uuid(self.product_id, fact, "product_id")
        object.__setattr__(
            self, "sale_type", _coerce_enum(SaleType, self.sale_type, fact, "sale_type")
        )
        _check_quantity(self.quantity, fact, "quantity", positive=True)
        _check_quantity(self.cylinders_deposited, fact, "cylinders_deposited", positive=False)
        object.__setattr__(self, "unit_price", _coerce_money(self.unit_price, fact, "unit_price"))
        object.__setattr__(self, "discount", _coerce_money(self.discount, fact, "discount"))
        object.__setattr__(
            self, "cash_deposited", _coerce_money(self.cash_deposited, fact, "cash_deposited")
        )
        if not isinstance(self.sale_date, datetime):
            raise FactValidationError(fact, "sale_date", "must be a datetime")

    @property
    def revenue(self) -> Decimal:
        return self.unit_price * self.quantity

    @property
    def is_refill(self) -> bool:
        return self.sale_type == SaleType.REFILL


@dataclass(frozen=True)
class ShipmentBatch:
    """
    Immutable shipment fact (purchase or empty-cylinder buy/sell).

    ``unit_cost`` is optional: FIFO costing ignores shipments without one.
    """

    shipment_id: UUID
    tenant_id: str
    product_id: UUID
    shipment_type: ShipmentType
    quantity: int
    shipment_date: datetime
    status: ShipmentStatus = ShipmentStatus.COMPLETED
    unit_cost: Decimal | None = None

    def __post_init__(self) -> None:
        fact = "ShipmentBatch"
        object.__setattr__(self, "tenant_id", validate_tenant_id(self.tenant_id))
        _check_uuid(self.shipment_id, fact, "shipment_id")
        _check_uuid(self.product_id, fact, "product_id")
        object.__setattr__(
            self,
            "shipment_type",
            _coerce_enum(ShipmentType, self.shipment_type, fact, "shipment_type"),
        )
        object.__setattr__(
            self, "status", _coerce_enum(ShipmentStatus, self.status, fact, "status")
        )
        _check_quantity(self.quantity, fact, "quantity", positive=True)
        if self.unit_cost is not None:
            object.__setattr__(
                self, "unit_cost", _coerce_money(self.unit_cost, fact, "unit_cost")
            )
        if not isinstance(self.shipment_date, datetime):
            raise FactValidationError(fact, "shipment_date", "must be a datetime")

    @property
    def is_completed(self) -> bool:
        return self.status == ShipmentStatus.COMPLETED


@dataclass(frozen=True)
class OpeningStock:
    """
    Manually recorded opening balance for a product (full) or size (empty).

    Used as the prior balance of the first ledger day when no earlier
    balance row exists.
    """

    tenant_id: str
    balance_date: date
    quantity: int
    product_id: UUID | None = None
    cylinder_size_id: UUID | None = None

    def __post_init__(self) -> None:
        fact = "OpeningStock"
        object.__setattr__(self, "tenant_id", validate_tenant_id(self.tenant_id))
        if (self.product_id is None) == (self.cylinder_size_id is None):
            raise FactValidationError(
                fact, "product_id", "exactly one of product_id or cylinder_size_id is required"
            )
        _check_quantity(self.quantity, fact, "quantity", positive=False)
        if isinstance(self.balance_date, datetime) or not isinstance(self.balance_date, date):
            raise FactValidationError(fact, "balance_date", "must be a date")

    @property
    def is_full(self) -> bool:
        return self.product_id is not None


@dataclass(frozen=True)
class ShipmentLine:
    """One line of a proposed shipment, checked for availability before it is recorded."""

    product_id: UUID
    quantity: int

    def __post_init__(self) -> None:
        _check_uuid(self.product_id, "ShipmentLine", "product_id")
        _check_quantity(self.quantity, "ShipmentLine", "quantity", positive=True)
