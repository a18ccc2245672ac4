"""
cylinder_engines.size_allocation -- Per-size breakdown of a driver's cylinder receivables.

Responsibility:
    Sales record which product (and so which size) went out, but cylinder
    returns are not tagged by size.  This engine estimates how many
    cylinders of each size a driver owes, using an explicit ordered list of
    strategies.  The first strategy that applies produces the result.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import cylinder_kernel/domain.

Strategies (default order):
    baseline      Applies when the driver has per-size baselines.  Start
                  from each baseline and add quantity - cylinders_deposited
                  of every REFILL sale dated at or after the baseline.
    proportional  Applies when tenant and driver totals are positive.
                  floor(empty_stock_for_size * driver_total / tenant_total)
                  per active size.
    equal         Applies when the driver total is positive.
                  floor(driver_total / n) per active size.
    empty         Always applies.  No breakdown.

Invariants enforced:
    - Non-positive quantities are omitted from every strategy's output.
    - A fallback strategy (proportional, equal) never allocates more than
      the driver total; proportional shares are scaled down when they would.
    - Units lost to flooring are reported as ALLOCATION_ROUNDING_LOSS, or
      handed out one per size in label order when redistribution is on.

Failure modes:
    - ValueError for an unknown strategy name.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections import defaultdict
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from cylinder_engines.tracer import traced_engine
from cylinder_kernel.domain.anomalies import LedgerAnomaly
from cylinder_kernel.domain.balances import DriverSizeBaseline
from cylinder_kernel.domain.clock import ensure_utc


@dataclass(frozen=True, slots=True)
class SizeRef:
    cylinder_size_id: UUID
    label: str


@dataclass(frozen=True, slots=True)
class SizedRefill:
    """A REFILL sale reduced to what the baseline strategy layers on."""

    cylinder_size_id: UUID
    size_label: str
    quantity: int
    cylinders_deposited: int
    sale_date: datetime


@dataclass(frozen=True, slots=True)
class AllocationInputs:
    """
    Everything the strategies may look at.

    ``driver_total`` is the driver's latest closing_cylinders.
    ``tenant_total`` is the sum of latest positive closing_cylinders across
    the tenant's drivers.  ``empty_stock`` maps size id to latest closing
    empty stock.
    """

    tenant_id: str
    driver_id: UUID
    driver_total: int
    tenant_total: int
    active_sizes: tuple[SizeRef, ...]
    baselines: tuple[DriverSizeBaseline, ...] = ()
    refills: tuple[SizedRefill, ...] = ()
    empty_stock: Mapping[UUID, int] = field(default_factory=dict)

    @property
    def sizes_by_label(self) -> tuple[SizeRef, ...]:
        return tuple(sorted(self.active_sizes, key=lambda s: s.label))


@dataclass(frozen=True)
class AllocationResult:
    strategy: str
    allocation: dict[str, int]
    driver_total: int
    anomalies: tuple[LedgerAnomaly, ...] = ()

    @property
    def allocated_total(self) -> int:
        return sum(self.allocation.values())


class AllocationStrategy(ABC):
    """One way of splitting a driver's cylinders by size."""

    name: str = ""
    is_fallback: bool = True

    @abstractmethod
    def allocate(self, inputs: AllocationInputs) -> dict[str, int] | None:
        """Return label -> quantity, or None when not applicable."""


class BaselineStrategy(AllocationStrategy):
    name = "baseline"
    is_fallback = False

    def allocate(self, inputs: AllocationInputs) -> dict[str, int] | None:
        if not inputs.baselines:
            return None

        established = {
            b.cylinder_size_id: ensure_utc(b.established_at) for b in inputs.baselines
        }
        earliest = min(established.values())

        totals: dict[str, int] = defaultdict(int)
        for baseline in inputs.baselines:
            totals[baseline.size_label] += baseline.baseline_quantity

        for refill in inputs.refills:
            since = established.get(refill.cylinder_size_id, earliest)
            if ensure_utc(refill.sale_date) >= since:
                totals[refill.size_label] += refill.quantity - refill.cylinders_deposited

        return {label: qty for label, qty in totals.items() if qty > 0}


class ProportionalStrategy(AllocationStrategy):
    name = "proportional"

    def allocate(self, inputs: AllocationInputs) -> dict[str, int] | None:
        if inputs.tenant_total <= 0 or inputs.driver_total <= 0:
            return None

        shares = {
            size.label: inputs.empty_stock.get(size.cylinder_size_id, 0)
            * inputs.driver_total // inputs.tenant_total
            for size in inputs.sizes_by_label
        }
        shares = {label: qty for label, qty in shares.items() if qty > 0}

        share_total = sum(shares.values())
        if share_total > inputs.driver_total:
            shares = {
                label: qty * inputs.driver_total // share_total
                for label, qty in shares.items()
            }
            shares = {label: qty for label, qty in shares.items() if qty > 0}
        return shares


class EqualStrategy(AllocationStrategy):
    name = "equal"

    def allocate(self, inputs: AllocationInputs) -> dict[str, int] | None:
        if inputs.driver_total <= 0 or not inputs.active_sizes:
            return None
        each = inputs.driver_total // len(inputs.active_sizes)
        if each <= 0:
            return {}
        return {size.label: each for size in inputs.sizes_by_label}


class EmptyStrategy(AllocationStrategy):
    name = "empty"

    def allocate(self, inputs: AllocationInputs) -> dict[str, int] | None:
        return {}


STRATEGIES: dict[str, AllocationStrategy] = {
    s.name: s
    for s in (BaselineStrategy(), ProportionalStrategy(), EqualStrategy(), EmptyStrategy())
}

DEFAULT_STRATEGY_ORDER = ("baseline", "proportional", "equal", "empty")


def _redistribute(
    allocation: dict[str, int], sizes: Sequence[SizeRef], missing: int
) -> dict[str, int]:
    result = dict(allocation)
    labels = [s.label for s in sizes]
    i = 0
    while missing > 0 and labels:
        label = labels[i % len(labels)]
        result[label] = result.get(label, 0) + 1
        missing -= 1
        i += 1
    return result


@traced_engine(
    "size_allocation",
    "1.0",
    fingerprint_fields=("inputs", "strategy_order", "redistribute_remainder"),
)
def allocate_by_size(
    *,
    inputs: AllocationInputs,
    strategy_order: Sequence[str] = DEFAULT_STRATEGY_ORDER,
    redistribute_remainder: bool = False,
) -> AllocationResult:
    """
    Run the strategies in order and return the first applicable result.

    Raises:
        ValueError: if ``strategy_order`` names an unknown strategy.
    """
    for name in strategy_order:
        strategy = STRATEGIES.get(name)
        if strategy is None:
            raise ValueError(f"Unknown allocation strategy: {name!r}")

        allocation = strategy.allocate(inputs)
        if allocation is None:
            continue

        anomalies: list[LedgerAnomaly] = []
        if strategy.is_fallback and inputs.driver_total > 0:
            missing = inputs.driver_total - sum(allocation.values())
            if missing > 0 and redistribute_remainder:
                allocation = _redistribute(allocation, inputs.sizes_by_label, missing)
                missing = inputs.driver_total - sum(allocation.values())
            if missing > 0:
                anomalies.append(LedgerAnomaly.allocation_rounding_loss(
                    tenant_id=inputs.tenant_id,
                    driver_id=inputs.driver_id,
                    strategy=name,
                    driver_total=inputs.driver_total,
                    allocated=sum(allocation.values()),
                    lost=missing,
                ))

        return AllocationResult(
            strategy=name,
            allocation=allocation,
            driver_total=inputs.driver_total,
            anomalies=tuple(anomalies),
        )

    return AllocationResult(strategy="empty", allocation={}, driver_total=inputs.driver_total)
