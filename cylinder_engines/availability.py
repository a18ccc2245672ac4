"""
cylinder_engines.availability -- Can the stock on hand cover a shipment?

Responsibility:
    Check the lines of a proposed shipment against current stock before it
    is recorded.  Outgoing full cylinders draw on the product's full stock.
    Outgoing empties draw on the size's empty stock, and so does an
    incoming full (refill) purchase, which swaps empties for fulls.
    Incoming empties need nothing.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The facade resolves the
    products and current levels and passes them in.

Invariants enforced:
    - Lines drawing on the same stock are checked against their running
      total, in line order; ``available`` on a line is what earlier lines
      left.
    - A line that needs more than is left is an error; one that takes
      exactly what is left is a warning.
    - Read-only: the result is advisory and never blocks ingestion.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from cylinder_engines.tracer import traced_engine
from cylinder_kernel.domain.facts import ShipmentType


class StockKind(str, Enum):
    FULL = "full"
    EMPTY = "empty"


_DRAWS_ON = {
    ShipmentType.OUTGOING_FULL: StockKind.FULL,
    ShipmentType.OUTGOING_EMPTY: StockKind.EMPTY,
    ShipmentType.INCOMING_FULL: StockKind.EMPTY,
    ShipmentType.INCOMING_EMPTY: None,
}


@dataclass(frozen=True)
class ResolvedLine:
    """A requested shipment line with its product's name and cylinder size filled in."""

    product_id: UUID
    product_name: str
    cylinder_size_id: UUID
    size_label: str
    quantity: int


@dataclass(frozen=True)
class LineAvailability:
    product_id: UUID
    cylinder_size_id: UUID
    stock_kind: StockKind | None
    required: int
    available: int | None  # None when the line draws on no stock

    @property
    def sufficient(self) -> bool:
        return self.available is None or self.available >= self.required


@dataclass(frozen=True)
class ShipmentAvailability:
    shipment_type: ShipmentType
    lines: tuple[LineAvailability, ...]
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()

    @property
    def is_valid(self) -> bool:
        return not self.errors


def _describe(kind: StockKind, line: ResolvedLine) -> str:
    if kind == StockKind.FULL:
        return f"full cylinders of {line.product_name}"
    return f"empty cylinders of size {line.size_label}"


@traced_engine(
    "shipment_availability",
    "1.0",
    fingerprint_fields=("shipment_type", "lines", "full_stock", "empty_stock"),
)
def check_availability(
    *,
    shipment_type: ShipmentType,
    lines: Sequence[ResolvedLine],
    full_stock: Mapping[UUID, int],
    empty_stock: Mapping[UUID, int],
) -> ShipmentAvailability:
    """
    Args:
        full_stock: current full cylinders by product id.
        empty_stock: current empty cylinders by cylinder size id.
    """
    kind = _DRAWS_ON[shipment_type]
    used: dict[UUID, int] = {}
    results: list[LineAvailability] = []
    errors: list[str] = []
    warnings: list[str] = []

    for line in lines:
        if kind is None:
            results.append(LineAvailability(
                line.product_id, line.cylinder_size_id, None, line.quantity, None
            ))
            continue

        key = line.product_id if kind == StockKind.FULL else line.cylinder_size_id
        stock = full_stock if kind == StockKind.FULL else empty_stock
        left = max(0, stock.get(key, 0) - used.get(key, 0))
        used[key] = used.get(key, 0) + line.quantity
        results.append(LineAvailability(
            line.product_id, line.cylinder_size_id, kind, line.quantity, left
        ))

        what = _describe(kind, line)
        if left == 0:
            errors.append(f"No {what} available. Required: {line.quantity}, Available: 0")
        elif left < line.quantity:
            errors.append(
                f"Insufficient {what}. Required: {line.quantity}, Available: {left}"
            )
        elif left == line.quantity:
            warnings.append(
                f"Using all available {what} ({left} units). No stock will remain."
            )

    return ShipmentAvailability(
        shipment_type=shipment_type,
        lines=tuple(results),
        errors=tuple(errors),
        warnings=tuple(warnings),
    )
