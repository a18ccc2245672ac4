"""
cylinder_engines.stock -- Daily full and empty cylinder stock calculation.

Responsibility:
    Given the prior balance of every product and cylinder size, and the
    day's sales and shipments, compute one day of the stock ledger:
    opening, movements, clamped closing and the unclamped diagnostic value.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import cylinder_kernel/domain.  StockLedgerService resolves
    priors from the database, calls compute_stock_day() and persists lines.

Invariants enforced:
    - closing_full(d) = max(0, opening_full(d) + purchases_qty(d) - sales_qty(d))
    - closing_empty(d) = max(0, opening_empty(d) + refill_sales_qty(d)
      + empty_net_buy_sell(d))
    - Only COMPLETED shipments move stock.
    - purchases_qty is the net full-cylinder shipment inflow
      (INCOMING_FULL minus OUTGOING_FULL).
    - A key with no history and no activity produces no line unless
      materialize_idle is set.

Failure modes:
    - None raised.  Clamping yields a STOCK_SHORTFALL anomaly; a prior
      resolved across a missing day yields a LEDGER_GAP anomaly.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from uuid import UUID

from cylinder_engines.tracer import traced_engine
from cylinder_kernel.domain.anomalies import LedgerAnomaly
from cylinder_kernel.domain.facts import SaleEvent, ShipmentBatch


class PriorSource(str, Enum):
    """Where a key's opening balance came from."""

    PREVIOUS_DAY = "previous_day"
    OPENING_STOCK = "opening_stock"
    CARRIED_ACROSS_GAP = "carried_across_gap"
    GAP = "gap"  # older balance exists but is not carried; opening is 0
    NONE = "none"


@dataclass(frozen=True, slots=True)
class PriorBalance:
    """Resolved opening balance for one stock key."""

    quantity: int
    source: PriorSource
    gap_from: date | None = None

    @property
    def has_history(self) -> bool:
        return self.source != PriorSource.NONE

    @property
    def is_gap(self) -> bool:
        return self.source in (PriorSource.GAP, PriorSource.CARRIED_ACROSS_GAP)

    @classmethod
    def none(cls) -> PriorBalance:
        return cls(0, PriorSource.NONE)


def resolve_prior(
    *,
    previous_day: int | None,
    latest_older: tuple[date, int] | None,
    opening_stock: tuple[date, int] | None,
    carry_forward_across_gaps: bool = False,
) -> PriorBalance:
    """
    Pick the opening balance for a stock key.

    Args:
        previous_day: closing of the row dated exactly ``date - 1``.
        latest_older: (date, closing) of the most recent row before
            ``date - 1``.
        opening_stock: (date, quantity) of the latest manual opening stock
            dated on or before ``date``.
        carry_forward_across_gaps: carry ``latest_older`` across the gap
            instead of restarting from zero.

    An opening stock recorded after the last balance row supersedes that
    row, so a manual recount never counts as a gap.
    """
    if previous_day is not None:
        return PriorBalance(previous_day, PriorSource.PREVIOUS_DAY)
    if opening_stock is not None and (
        latest_older is None or opening_stock[0] > latest_older[0]
    ):
        return PriorBalance(opening_stock[1], PriorSource.OPENING_STOCK)
    if latest_older is not None:
        older_date, older_closing = latest_older
        if carry_forward_across_gaps:
            return PriorBalance(older_closing, PriorSource.CARRIED_ACROSS_GAP, older_date)
        return PriorBalance(0, PriorSource.GAP, older_date)
    return PriorBalance.none()


@dataclass(frozen=True, slots=True)
class ProductRef:
    """The slice of a product the stock engine needs."""

    product_id: UUID
    cylinder_size_id: UUID
    is_active: bool = True


@dataclass(frozen=True, slots=True)
class FullStockLine:
    product_id: UUID
    opening_full: int
    purchases_qty: int
    sales_qty: int
    closing_full: int
    unclamped_closing_full: int


@dataclass(frozen=True, slots=True)
class EmptyStockLine:
    cylinder_size_id: UUID
    opening_empty: int
    refill_sales_qty: int
    empty_net_buy_sell: int
    closing_empty: int
    unclamped_closing_empty: int


@dataclass(frozen=True, slots=True)
class StockDayResult:
    tenant_id: str
    balance_date: date
    full_lines: tuple[FullStockLine, ...]
    empty_lines: tuple[EmptyStockLine, ...]
    anomalies: tuple[LedgerAnomaly, ...] = field(default=())


@dataclass(slots=True)
class _DayMovements:
    purchases: dict[UUID, int] = field(default_factory=lambda: defaultdict(int))
    sales: dict[UUID, int] = field(default_factory=lambda: defaultdict(int))
    refills_by_size: dict[UUID, int] = field(default_factory=lambda: defaultdict(int))
    empty_net_by_size: dict[UUID, int] = field(default_factory=lambda: defaultdict(int))
    touched_products: set[UUID] = field(default_factory=set)
    touched_sizes: set[UUID] = field(default_factory=set)


def _aggregate_movements(
    products: Sequence[ProductRef],
    sales: Sequence[SaleEvent],
    shipments: Sequence[ShipmentBatch],
) -> _DayMovements:
    size_of = {p.product_id: p.cylinder_size_id for p in products}
    moves = _DayMovements()

    for sale in sales:
        moves.sales[sale.product_id] += sale.quantity
        moves.touched_products.add(sale.product_id)
        if sale.is_refill:
            size_id = size_of.get(sale.product_id)
            if size_id is not None:
                moves.refills_by_size[size_id] += sale.quantity
                moves.touched_sizes.add(size_id)

    for shipment in shipments:
        if not shipment.is_completed:
            continue
        signed = shipment.shipment_type.sign * shipment.quantity
        if shipment.shipment_type.is_full:
            moves.purchases[shipment.product_id] += signed
            moves.touched_products.add(shipment.product_id)
        else:
            size_id = size_of.get(shipment.product_id)
            if size_id is not None:
                moves.empty_net_by_size[size_id] += signed
                moves.touched_sizes.add(size_id)

    return moves


@traced_engine(
    "stock_ledger",
    "1.0",
    fingerprint_fields=("tenant_id", "balance_date", "full_priors", "empty_priors", "sales", "shipments"),
)
def compute_stock_day(
    *,
    tenant_id: str,
    balance_date: date,
    products: Sequence[ProductRef],
    active_size_ids: Sequence[UUID],
    full_priors: Mapping[UUID, PriorBalance],
    empty_priors: Mapping[UUID, PriorBalance],
    sales: Sequence[SaleEvent],
    shipments: Sequence[ShipmentBatch],
    materialize_idle: bool = False,
) -> StockDayResult:
    """
    Compute one day of full and empty stock for a tenant.

    Preconditions:
        ``sales`` and ``shipments`` are the tenant's facts dated on
        ``balance_date``.  ``products`` includes inactive products so their
        sales still reach the right cylinder size.
    Postconditions:
        One FullStockLine per active product and one EmptyStockLine per
        active size that has history or activity (or every one, with
        ``materialize_idle``).  Lines are ordered as the inputs.
    """
    moves = _aggregate_movements(products, sales, shipments)
    anomalies: list[LedgerAnomaly] = []

    full_lines: list[FullStockLine] = []
    for product in products:
        if not product.is_active:
            continue
        prior = full_priors.get(product.product_id, PriorBalance.none())
        if not (
            materialize_idle
            or prior.has_history
            or product.product_id in moves.touched_products
        ):
            continue
        if prior.is_gap:
            anomalies.append(LedgerAnomaly.ledger_gap(
                tenant_id=tenant_id,
                ledger="full_stock",
                product_id=product.product_id,
                balance_date=balance_date,
                last_balance_date=prior.gap_from,
                carried_forward=prior.source == PriorSource.CARRIED_ACROSS_GAP,
            ))
        purchases = moves.purchases.get(product.product_id, 0)
        sold = moves.sales.get(product.product_id, 0)
        unclamped = prior.quantity + purchases - sold
        closing = max(0, unclamped)
        if unclamped < 0:
            anomalies.append(LedgerAnomaly.stock_shortfall(
                tenant_id=tenant_id,
                ledger="full_stock",
                product_id=product.product_id,
                balance_date=balance_date,
                unclamped_closing=unclamped,
            ))
        full_lines.append(FullStockLine(
            product_id=product.product_id,
            opening_full=prior.quantity,
            purchases_qty=purchases,
            sales_qty=sold,
            closing_full=closing,
            unclamped_closing_full=unclamped,
        ))

    empty_lines: list[EmptyStockLine] = []
    for size_id in active_size_ids:
        prior = empty_priors.get(size_id, PriorBalance.none())
        if not (materialize_idle or prior.has_history or size_id in moves.touched_sizes):
            continue
        if prior.is_gap:
            anomalies.append(LedgerAnomaly.ledger_gap(
                tenant_id=tenant_id,
                ledger="empty_stock",
                cylinder_size_id=size_id,
                balance_date=balance_date,
                last_balance_date=prior.gap_from,
                carried_forward=prior.source == PriorSource.CARRIED_ACROSS_GAP,
            ))
        refills = moves.refills_by_size.get(size_id, 0)
        net_buy_sell = moves.empty_net_by_size.get(size_id, 0)
        unclamped = prior.quantity + refills + net_buy_sell
        closing = max(0, unclamped)
        if unclamped < 0:
            anomalies.append(LedgerAnomaly.stock_shortfall(
                tenant_id=tenant_id,
                ledger="empty_stock",
                cylinder_size_id=size_id,
                balance_date=balance_date,
                unclamped_closing=unclamped,
            ))
        empty_lines.append(EmptyStockLine(
            cylinder_size_id=size_id,
            opening_empty=prior.quantity,
            refill_sales_qty=refills,
            empty_net_buy_sell=net_buy_sell,
            closing_empty=closing,
            unclamped_closing_empty=unclamped,
        ))

    return StockDayResult(
        tenant_id=tenant_id,
        balance_date=balance_date,
        full_lines=tuple(full_lines),
        empty_lines=tuple(empty_lines),
        anomalies=tuple(anomalies),
    )
