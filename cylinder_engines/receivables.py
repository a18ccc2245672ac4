"""
cylinder_engines.receivables -- Daily driver receivables calculation.

Responsibility:
    Compute one day of a driver's receivables: the cash and the cylinders
    the driver owes, layered on the resolved prior balance.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import cylinder_kernel/domain.

Invariants enforced:
    - cash_change = sum(quantity * unit_price) - sum(cash_deposited) - sum(discount)
    - cylinder_change = sum(REFILL quantity) - sum(cylinders_deposited)
    - closing = prior + change, stored unclamped.
    - An onboarding anchor row is recomputed from its own opening values,
      so re-running the anchor date layers that day's sales on the seed.

Failure modes:
    - None raised.  A negative closing yields a NEGATIVE_RECEIVABLE anomaly.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from cylinder_engines.tracer import traced_engine
from cylinder_kernel.domain.anomalies import LedgerAnomaly
from cylinder_kernel.domain.facts import SaleEvent

ZERO = Decimal("0")


class ReceivablePriorSource(str, Enum):
    PREVIOUS_BALANCE = "previous_balance"
    ONBOARDING_ANCHOR = "onboarding_anchor"
    EARLIEST_OPENING = "earliest_opening"
    NONE = "none"


@dataclass(frozen=True, slots=True)
class PriorReceivable:
    cash: Decimal
    cylinders: int
    source: ReceivablePriorSource

    @classmethod
    def zero(cls) -> PriorReceivable:
        return cls(ZERO, 0, ReceivablePriorSource.NONE)


@dataclass(frozen=True, slots=True)
class StoredReceivable:
    """The fields of a persisted balance row that prior resolution reads."""

    balance_date: date
    opening_cash: Decimal
    opening_cylinders: int
    closing_cash: Decimal
    closing_cylinders: int
    is_onboarding_anchor: bool = False


def resolve_receivable_prior(
    *,
    balance_date: date,
    existing: StoredReceivable | None,
    latest_before: StoredReceivable | None,
    earliest: StoredReceivable | None,
) -> PriorReceivable:
    """
    Pick the prior balance for a driver's receivable on ``balance_date``.

    Args:
        existing: the row already stored for ``balance_date``, if any.
        latest_before: the most recent row dated <= ``balance_date - 1``.
        earliest: the driver's earliest row overall.

    Order:
        1. The existing row is an onboarding anchor: its own opening values.
        2. The most recent earlier row: its closing values.
        3. The earliest row: its opening values (the driver's very first
           balance is the initial value, not a delta).
        4. Zero.
    """
    if existing is not None and existing.is_onboarding_anchor:
        return PriorReceivable(
            existing.opening_cash,
            existing.opening_cylinders,
            ReceivablePriorSource.ONBOARDING_ANCHOR,
        )
    if latest_before is not None:
        return PriorReceivable(
            latest_before.closing_cash,
            latest_before.closing_cylinders,
            ReceivablePriorSource.PREVIOUS_BALANCE,
        )
    if earliest is not None:
        return PriorReceivable(
            earliest.opening_cash,
            earliest.opening_cylinders,
            ReceivablePriorSource.EARLIEST_OPENING,
        )
    return PriorReceivable.zero()


@dataclass(frozen=True, slots=True)
class DriverDayChange:
    """Totals of one driver's sales on one day."""

    revenue: Decimal
    cash_deposited: Decimal
    discount: Decimal
    refill_quantity: int
    cylinders_deposited: int

    @property
    def cash_change(self) -> Decimal:
        return self.revenue - self.cash_deposited - self.discount

    @property
    def cylinder_change(self) -> int:
        return self.refill_quantity - self.cylinders_deposited


def summarize_sales(sales: Sequence[SaleEvent]) -> DriverDayChange:
    revenue = ZERO
    deposited = ZERO
    discount = ZERO
    refills = 0
    returned = 0
    for sale in sales:
        revenue += sale.revenue
        deposited += sale.cash_deposited
        discount += sale.discount
        if sale.is_refill:
            refills += sale.quantity
        returned += sale.cylinders_deposited
    return DriverDayChange(revenue, deposited, discount, refills, returned)


@dataclass(frozen=True, slots=True)
class ReceivableComputation:
    opening_cash: Decimal
    opening_cylinders: int
    cash_change: Decimal
    cylinder_change: int
    closing_cash: Decimal
    closing_cylinders: int
    prior_source: ReceivablePriorSource
    anomalies: tuple[LedgerAnomaly, ...] = field(default=())


@traced_engine(
    "receivables_ledger",
    "1.0",
    fingerprint_fields=("tenant_id", "driver_id", "balance_date", "prior", "sales"),
)
def compute_receivable_day(
    *,
    tenant_id: str,
    driver_id: UUID,
    balance_date: date,
    prior: PriorReceivable,
    sales: Sequence[SaleEvent],
) -> ReceivableComputation:
    """Layer one day of the driver's sales onto ``prior``."""
    change = summarize_sales(sales)
    closing_cash = prior.cash + change.cash_change
    closing_cylinders = prior.cylinders + change.cylinder_change

    anomalies: list[LedgerAnomaly] = []
    if closing_cash < 0 or closing_cylinders < 0:
        anomalies.append(LedgerAnomaly.negative_receivable(
            tenant_id=tenant_id,
            driver_id=driver_id,
            balance_date=balance_date,
            closing_cash=closing_cash,
            closing_cylinders=closing_cylinders,
        ))

    return ReceivableComputation(
        opening_cash=prior.cash,
        opening_cylinders=prior.cylinders,
        cash_change=change.cash_change,
        cylinder_change=change.cylinder_change,
        closing_cash=closing_cash,
        closing_cylinders=closing_cylinders,
        prior_source=prior.source,
        anomalies=tuple(anomalies),
    )
