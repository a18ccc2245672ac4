"""
cylinder_engines.fifo -- First-in, first-out cost of goods sold.

Responsibility:
    Match a product's sales against its purchase batches oldest-first and
    report cost of goods sold, average buying and selling price and the
    value of what is left on hand.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import cylinder_kernel/domain.  Read-only: never produces
    ledger rows.

Invariants enforced:
    - Only COMPLETED INCOMING_FULL shipments with a unit cost, dated at or
      before ``as_of``, are cost batches.  Batches are consumed in
      (shipment_date, shipment_id) order; sales in (sale_date, sale_id) order.
    - Every sale dated at or before ``as_of`` consumes inventory, even when
      it is outside the reporting window (``since``, ``sale_type``,
      ``driver_id``), so FIFO order is identical for every window.
    - Conservation: units matched + units remaining == units purchased
      (up to ``as_of``).
    - A sale only draws on batches dated at or before the sale.  Adding a
      batch dated after a sale cannot change the cost, or the shortfall,
      attributed to that sale.

Failure modes:
    - None raised.  Selling more than had been purchased by the time of
      the sale yields an INSUFFICIENT_INVENTORY anomaly; the unmatched
      units carry zero cost.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from cylinder_engines.tracer import traced_engine
from cylinder_kernel.domain.anomalies import LedgerAnomaly
from cylinder_kernel.domain.clock import ensure_utc
from cylinder_kernel.domain.facts import SaleEvent, SaleType, ShipmentBatch, ShipmentType

ZERO = Decimal("0")
PRICE_QUANTUM = Decimal("0.01")


@dataclass(slots=True)
class _OpenBatch:
    shipment_id: UUID
    shipment_date: datetime
    unit_cost: Decimal
    remaining: int


@dataclass(frozen=True, slots=True)
class RemainingBatch:
    shipment_id: UUID
    shipment_date: datetime
    unit_cost: Decimal
    remaining_quantity: int

    @property
    def value(self) -> Decimal:
        return self.unit_cost * self.remaining_quantity


@dataclass(frozen=True, slots=True)
class FifoResult:
    """
    Outcome of one FIFO run for one product.

    ``units_sold`` counts sales inside the reporting window, including any
    shortfall.  ``units_matched`` is the part of it that found a batch.
    """

    tenant_id: str
    product_id: UUID
    as_of: datetime
    total_cogs: Decimal
    units_sold: int
    units_matched: int
    average_buying_price: Decimal
    total_sales_revenue: Decimal
    average_selling_price: Decimal
    remaining_inventory_value: Decimal
    remaining_batches: tuple[RemainingBatch, ...]
    shortfall_units: int = 0
    anomalies: tuple[LedgerAnomaly, ...] = field(default=())

    @property
    def remaining_units(self) -> int:
        return sum(b.remaining_quantity for b in self.remaining_batches)


def _average(total: Decimal, units: int) -> Decimal:
    if units <= 0:
        return ZERO
    return (total / units).quantize(PRICE_QUANTUM, rounding=ROUND_HALF_UP)


def cost_batches(shipments: Sequence[ShipmentBatch], as_of: datetime) -> list[_OpenBatch]:
    cutoff = ensure_utc(as_of)
    batches = [
        _OpenBatch(s.shipment_id, ensure_utc(s.shipment_date), s.unit_cost, s.quantity)
        for s in shipments
        if s.shipment_type == ShipmentType.INCOMING_FULL
        and s.is_completed
        and s.unit_cost is not None
        and ensure_utc(s.shipment_date) <= cutoff
    ]
    batches.sort(key=lambda b: (b.shipment_date, str(b.shipment_id)))
    return batches


@traced_engine(
    "fifo_cost",
    "1.1",
    fingerprint_fields=(
        "tenant_id",
        "product_id",
        "shipments",
        "sales",
        "as_of",
        "since",
        "sale_type",
        "driver_id",
    ),
)
def compute_fifo(
    *,
    tenant_id: str,
    product_id: UUID,
    shipments: Sequence[ShipmentBatch],
    sales: Sequence[SaleEvent],
    as_of: datetime,
    since: datetime | None = None,
    sale_type: SaleType | None = None,
    driver_id: UUID | None = None,
) -> FifoResult:
    """
    Run FIFO for one product up to and including ``as_of``.

    Args:
        shipments: the product's shipments; non-cost ones are ignored.
        sales: the product's sales; ones after ``as_of`` are ignored.
        since: reporting window start (inclusive).  Earlier sales still
            consume batches but are not counted.
        sale_type: count only this sale type.
        driver_id: count only this driver's sales.
    """
    cutoff = ensure_utc(as_of)
    window_start = ensure_utc(since) if since is not None else None
    batches = cost_batches(shipments, cutoff)

    ordered_sales = sorted(
        (s for s in sales if s.product_id == product_id and ensure_utc(s.sale_date) <= cutoff),
        key=lambda s: (ensure_utc(s.sale_date), str(s.sale_id)),
    )

    total_cogs = ZERO
    revenue = ZERO
    units_sold = 0
    units_matched = 0
    shortfall = 0
    cursor = 0

    for sale in ordered_sales:
        sold_at = ensure_utc(sale.sale_date)
        counted = (
            (window_start is None or sold_at >= window_start)
            and (sale_type is None or sale.sale_type == sale_type)
            and (driver_id is None or sale.driver_id == driver_id)
        )
        need = sale.quantity
        cost = ZERO
        while need > 0 and cursor < len(batches):
            batch = batches[cursor]
            if batch.shipment_date > sold_at:
                break
            taken = min(need, batch.remaining)
            cost += batch.unit_cost * taken
            batch.remaining -= taken
            need -= taken
            if batch.remaining == 0:
                cursor += 1
        matched = sale.quantity - need

        if counted:
            units_sold += sale.quantity
            units_matched += matched
            total_cogs += cost
            revenue += sale.unit_price * matched
            shortfall += need

    remaining = tuple(
        RemainingBatch(b.shipment_id, b.shipment_date, b.unit_cost, b.remaining)
        for b in batches
        if b.remaining > 0
    )

    anomalies: tuple[LedgerAnomaly, ...] = ()
    if shortfall > 0:
        anomalies = (LedgerAnomaly.insufficient_inventory(
            tenant_id=tenant_id,
            product_id=product_id,
            as_of=cutoff,
            shortfall_units=shortfall,
        ),)

    return FifoResult(
        tenant_id=tenant_id,
        product_id=product_id,
        as_of=cutoff,
        total_cogs=total_cogs,
        units_sold=units_sold,
        units_matched=units_matched,
        average_buying_price=_average(total_cogs, units_sold),
        total_sales_revenue=revenue,
        average_selling_price=_average(revenue, units_matched),
        remaining_inventory_value=sum((b.value for b in remaining), ZERO),
        remaining_batches=remaining,
        shortfall_units=shortfall,
        anomalies=anomalies,
    )
