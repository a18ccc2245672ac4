"""
cylinder_services.reconciliation_service -- Public facade over the cylinder ledgers.

Responsibility:
    One entry point for callers (API handlers, the batch runner's users,
    scripts) that wires settings into the kernel services and the pure
    engines: stock and receivables recompute, onboarding seeds and
    baselines, current levels and per-size breakdowns, size allocation,
    FIFO cost of goods sold, low-stock checks and shipment availability
    checks.

Architecture position:
    Services -- stateful orchestration over engines + kernel.  The only
    layer that reads ``cylinder_config``; kernel services receive plain
    values.

Invariants enforced:
    - Recomputes of the same ledger key are serialized through the shared
      ``KeyLockRegistry``.
    - Read paths (levels, breakdowns, allocation, COGS, availability) run
      inside the caller's session and never write.
    - Never commits; the caller owns the transaction.

Failure modes:
    - InvalidTenantError, ProductNotFoundError, DriverNotFoundError,
      CylinderSizeNotFoundError from the kernel.
    - RecomputeLockTimeoutError when a same-key recompute holds the lock
      past ``batch.lock_timeout_seconds``.
    - ValueError for an unknown allocation strategy, shipment type or an
      invalid month.

Usage:
    settings = get_active_settings()
    with session_scope() as session:
        svc = ReconciliationService(session, settings)
        svc.recompute_stock("acme", date(2024, 3, 1))
        levels = svc.get_current_stock_levels("acme", product_id)
"""

from __future__ import annotations

import calendar
from collections.abc import Mapping, Sequence
from datetime import date, datetime, time, timezone
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from cylinder_batch.services.coordination import KeyLockRegistry
from cylinder_config import LedgerSettings, get_active_settings
from cylinder_engines.availability import (
    ResolvedLine,
    ShipmentAvailability,
    check_availability,
)
from cylinder_engines.fifo import FifoResult, compute_fifo
from cylinder_engines.size_allocation import (
    AllocationInputs,
    AllocationResult,
    SizedRefill,
    SizeRef,
    allocate_by_size,
)
from cylinder_kernel.domain.anomalies import log_anomalies
from cylinder_kernel.domain.balances import (
    DriverSizeBaseline,
    LowStockStatus,
    ReceivableBalance,
    SizeBreakdown,
    StockLevels,
)
from cylinder_kernel.domain.clock import Clock, SystemClock, day_bounds, end_of_day
from cylinder_kernel.domain.facts import OpeningStock, SaleType, ShipmentLine, ShipmentType
from cylinder_kernel.domain.keys import ReceivableKey, StockKey, validate_tenant_id
from cylinder_kernel.logging_config import get_logger
from cylinder_kernel.selectors.balances import BalanceSelector
from cylinder_kernel.selectors.catalog import CatalogSelector
from cylinder_kernel.selectors.facts import FactSelector
from cylinder_kernel.services.baseline_service import BaselineService
from cylinder_kernel.services.ingestion_service import FactIngestionService
from cylinder_kernel.services.receivables_ledger_service import (
    ReceivableRecomputeResult,
    ReceivablesLedgerService,
)
from cylinder_kernel.services.stock_ledger_service import (
    StockLedgerService,
    StockRecomputeResult,
)

logger = get_logger("services.reconciliation")

_DEFAULT = object()


def _as_sale_type(value: SaleType | str | None) -> SaleType | None:
    if value is None or isinstance(value, SaleType):
        return value
    return SaleType(value.upper())


def _as_cutoff(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        return value
    return end_of_day(value)


def _as_start(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        return value
    return day_bounds(value)[0]


class ReconciliationService:
    """
    Facade over the stock ledger, receivables ledger, size allocation and
    FIFO cost engines.

    Contract:
        Receives Session, LedgerSettings and Clock via constructor
        injection.  Pass the same ``lock_registry`` to every instance that
        may recompute concurrently within one process.
    """

    def __init__(
        self,
        session: Session,
        settings: LedgerSettings | None = None,
        clock: Clock | None = None,
        lock_registry: KeyLockRegistry | None = None,
    ):
        self.session = session
        self.settings = settings or get_active_settings()
        self.clock = clock or SystemClock()
        self.locks = lock_registry or KeyLockRegistry(self.settings.batch.lock_timeout_seconds)

        self._catalog = CatalogSelector(session)
        self._facts = FactSelector(session)
        self._balances = BalanceSelector(session)
        self._stock = StockLedgerService(
            session,
            self.clock,
            carry_forward_across_gaps=self.settings.stock.carry_forward_across_gaps,
            materialize_idle=self.settings.stock.materialize_idle,
        )
        self._receivables = ReceivablesLedgerService(session, self.clock)
        self._baselines = BaselineService(session, self.clock)
        self._ingestion = FactIngestionService(session)

    # -------------------------------------------------------------------------
    # Ledger writes
    # -------------------------------------------------------------------------

    def recompute_stock(
        self,
        tenant_id: str,
        balance_date: date,
        materialize_idle: bool | None = None,
    ) -> StockRecomputeResult:
        """Rebuild the tenant's full and empty stock balances for one date."""
        tenant_id = validate_tenant_id(tenant_id)
        with self.locks.hold(str(StockKey(tenant_id, balance_date))):
            return self._stock.recompute(tenant_id, balance_date, materialize_idle)

    def recompute_receivables(
        self, tenant_id: str, driver_id: UUID, balance_date: date
    ) -> ReceivableRecomputeResult:
        """Rebuild one driver's receivable balance for one date."""
        tenant_id = validate_tenant_id(tenant_id)
        with self.locks.hold(str(ReceivableKey(tenant_id, driver_id, balance_date))):
            return self._receivables.recompute(tenant_id, driver_id, balance_date)

    def seed_receivables(
        self,
        tenant_id: str,
        driver_id: UUID,
        balance_date: date,
        cash: Decimal | str | int,
        cylinders: int,
    ) -> ReceivableBalance:
        """Write a driver's onboarding anchor."""
        tenant_id = validate_tenant_id(tenant_id)
        with self.locks.hold(str(ReceivableKey(tenant_id, driver_id, balance_date))):
            return self._receivables.seed(tenant_id, driver_id, balance_date, cash, cylinders)

    def record_baseline(
        self,
        tenant_id: str,
        driver_id: UUID,
        quantities: Mapping[UUID, int],
        actor_id: UUID,
        established_at: datetime | None = None,
    ) -> list[DriverSizeBaseline]:
        return self._baselines.record_baseline(
            tenant_id, driver_id, quantities, actor_id, established_at
        )

    def correct_baseline(
        self,
        tenant_id: str,
        driver_id: UUID,
        cylinder_size_id: UUID,
        quantity: int,
        actor_id: UUID,
        established_at: datetime | None = None,
    ) -> DriverSizeBaseline:
        return self._baselines.correct_baseline(
            tenant_id, driver_id, cylinder_size_id, quantity, actor_id, established_at
        )

    def record_opening_stock(self, opening: OpeningStock, actor_id: UUID) -> None:
        self._ingestion.record_opening_stock(opening, actor_id)

    # -------------------------------------------------------------------------
    # Read paths
    # -------------------------------------------------------------------------

    def get_current_stock_levels(self, tenant_id: str, product_id: UUID) -> StockLevels:
        """Latest full stock of the product and latest empty stock of its size."""
        tenant_id = validate_tenant_id(tenant_id)
        product = self._catalog.get_product(tenant_id, product_id)
        full = self._balances.latest_stock(tenant_id, product_id)
        empty = self._balances.latest_empty_stock(tenant_id, product.cylinder_size_id)
        return StockLevels(
            product_id=product_id,
            cylinder_size_id=product.cylinder_size_id,
            full_quantity=full.closing_full if full else 0,
            full_as_of=full.balance_date if full else None,
            empty_quantity=empty.closing_empty if empty else 0,
            empty_as_of=empty.balance_date if empty else None,
        )

    def get_current_receivables(self, tenant_id: str, driver_id: UUID) -> ReceivableBalance:
        return self._receivables.current(tenant_id, driver_id)

    def allocate_by_size(self, tenant_id: str, driver_id: UUID) -> AllocationResult:
        """
        Split the driver's latest cylinder receivable across sizes.

        Returns:
            AllocationResult naming the strategy that applied, the
            label -> quantity allocation and any rounding-loss anomaly.
        """
        tenant_id = validate_tenant_id(tenant_id)
        self._catalog.get_driver(tenant_id, driver_id)
        tenant_totals = self._balances.latest_cylinder_totals(tenant_id)
        return self._allocate(
            tenant_id,
            driver_id,
            tenant_totals=tenant_totals,
            active_sizes=self._active_sizes(tenant_id),
            empty_stock=self._balances.latest_empty_closings(tenant_id),
        )

    def get_current_size_breakdown(self, tenant_id: str, cylinder_size_id: UUID) -> SizeBreakdown:
        """
        Empty stock for one size against the cylinders drivers owe in it.

        ``receivables`` sums every active driver's allocation for the size;
        ``empty_in_hand`` is what remains of the empty stock, floored at 0.
        """
        tenant_id = validate_tenant_id(tenant_id)
        size = self._catalog.get_size(tenant_id, cylinder_size_id)
        empty = self._balances.latest_empty_stock(tenant_id, cylinder_size_id)
        empty_qty = empty.closing_empty if empty else 0

        tenant_totals = self._balances.latest_cylinder_totals(tenant_id)
        active_sizes = self._active_sizes(tenant_id)
        empty_stock = self._balances.latest_empty_closings(tenant_id)
        owed = 0
        for driver in self._catalog.list_drivers(tenant_id, active_only=True):
            result = self._allocate(
                tenant_id,
                driver.driver_id,
                tenant_totals=tenant_totals,
                active_sizes=active_sizes,
                empty_stock=empty_stock,
            )
            owed += result.allocation.get(size.label, 0)

        breakdown = SizeBreakdown(
            cylinder_size_id=cylinder_size_id,
            size_label=size.label,
            empty_stock=empty_qty,
            receivables=owed,
            empty_in_hand=max(0, empty_qty - owed),
            as_of=empty.balance_date if empty else None,
        )
        logger.debug(
            "size_breakdown_computed",
            extra={
                "tenant_id": tenant_id,
                "size_label": size.label,
                "empty_stock": empty_qty,
                "receivables": owed,
            },
        )
        return breakdown

    def compute_cogs(
        self,
        tenant_id: str,
        product_id: UUID,
        as_of: date | datetime,
        sale_type: SaleType | str | None | object = _DEFAULT,
        since: date | datetime | None = None,
        driver_id: UUID | None = None,
    ) -> FifoResult:
        """
        FIFO cost of goods sold for one product up to ``as_of``.

        A ``date`` cutoff includes the whole day.  ``sale_type`` defaults
        to ``fifo.default_sale_type``; pass None explicitly to count every
        sale.
        """
        tenant_id = validate_tenant_id(tenant_id)
        self._catalog.get_product(tenant_id, product_id)
        if sale_type is _DEFAULT:
            sale_type = self.settings.fifo.default_sale_type
        cutoff = _as_cutoff(as_of)

        result = compute_fifo(
            tenant_id=tenant_id,
            product_id=product_id,
            shipments=self._facts.cost_shipments_for_product_until(tenant_id, product_id, cutoff),
            sales=self._facts.sales_for_product_until(tenant_id, product_id, cutoff),
            as_of=cutoff,
            since=_as_start(since) if since is not None else None,
            sale_type=_as_sale_type(sale_type),
            driver_id=driver_id,
        )
        log_anomalies(logger, result.anomalies)
        return result

    def compute_monthly_cogs(
        self,
        tenant_id: str,
        year: int,
        month: int,
        sale_type: SaleType | str | None | object = _DEFAULT,
    ) -> dict[UUID, FifoResult]:
        """FIFO result per active product for sales within one calendar month."""
        tenant_id = validate_tenant_id(tenant_id)
        if not 1 <= month <= 12:
            raise ValueError(f"month must be 1-12, got {month}")
        first = date(year, month, 1)
        last = date(year, month, calendar.monthrange(year, month)[1])

        results = {
            product.product_id: self.compute_cogs(
                tenant_id,
                product.product_id,
                as_of=last,
                sale_type=sale_type,
                since=datetime.combine(first, time.min, tzinfo=timezone.utc),
            )
            for product in self._catalog.list_products(tenant_id, active_only=True)
        }
        logger.info(
            "monthly_cogs_computed",
            extra={
                "tenant_id": tenant_id,
                "period": f"{year:04d}-{month:02d}",
                "product_count": len(results),
                "total_cogs": sum((r.total_cogs for r in results.values()), Decimal("0")),
            },
        )
        return results

    def check_low_stock(self, tenant_id: str, product_id: UUID) -> LowStockStatus:
        """Compare the product's current full level with its threshold."""
        tenant_id = validate_tenant_id(tenant_id)
        product = self._catalog.get_product(tenant_id, product_id)
        level = self.get_current_stock_levels(tenant_id, product_id).full_quantity
        status = LowStockStatus(
            product_id=product_id,
            is_low=level <= product.low_stock_threshold,
            level=level,
            threshold=product.low_stock_threshold,
        )
        if status.is_low:
            logger.warning(
                "low_stock_detected",
                extra={
                    "tenant_id": tenant_id,
                    "product_id": str(product_id),
                    "level": level,
                    "threshold": product.low_stock_threshold,
                },
            )
        return status

    def check_shipment_availability(
        self,
        tenant_id: str,
        shipment_type: ShipmentType | str,
        lines: Sequence[ShipmentLine],
    ) -> ShipmentAvailability:
        """
        Check a proposed shipment against current stock before recording it.

        OUTGOING_FULL lines draw on the product's full stock; OUTGOING_EMPTY
        and INCOMING_FULL (refill purchase) lines on the empty stock of the
        product's size.  The result carries per-line required and available
        quantities, errors for lines that cannot be covered and warnings for
        lines that use up the stock.
        """
        tenant_id = validate_tenant_id(tenant_id)
        if not isinstance(shipment_type, ShipmentType):
            shipment_type = ShipmentType(shipment_type.upper())

        resolved: list[ResolvedLine] = []
        full_stock: dict[UUID, int] = {}
        empty_stock: dict[UUID, int] = {}
        for line in lines:
            product = self._catalog.get_product(tenant_id, line.product_id)
            resolved.append(ResolvedLine(
                product_id=product.product_id,
                product_name=product.name,
                cylinder_size_id=product.cylinder_size_id,
                size_label=product.size_label,
                quantity=line.quantity,
            ))
            if product.product_id not in full_stock:
                levels = self.get_current_stock_levels(tenant_id, product.product_id)
                full_stock[product.product_id] = levels.full_quantity
                empty_stock[product.cylinder_size_id] = levels.empty_quantity

        result = check_availability(
            shipment_type=shipment_type,
            lines=tuple(resolved),
            full_stock=full_stock,
            empty_stock=empty_stock,
        )
        if not result.is_valid:
            logger.warning(
                "shipment_stock_insufficient",
                extra={
                    "tenant_id": tenant_id,
                    "shipment_type": shipment_type.value,
                    "error_count": len(result.errors),
                },
            )
        return result

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _active_sizes(self, tenant_id: str) -> tuple[SizeRef, ...]:
        return tuple(
            SizeRef(s.cylinder_size_id, s.label)
            for s in self._catalog.list_sizes(tenant_id, active_only=True)
        )

    def _allocate(
        self,
        tenant_id: str,
        driver_id: UUID,
        *,
        tenant_totals: Mapping[UUID, int],
        active_sizes: tuple[SizeRef, ...],
        empty_stock: Mapping[UUID, int],
    ) -> AllocationResult:
        baselines = tuple(self._balances.baselines_for_driver(tenant_id, driver_id))
        refills: tuple[SizedRefill, ...] = ()
        if baselines:
            since = min(b.established_at for b in baselines)
            refills = tuple(
                SizedRefill(
                    cylinder_size_id=size_id,
                    size_label=label,
                    quantity=sale.quantity,
                    cylinders_deposited=sale.cylinders_deposited,
                    sale_date=sale.sale_date,
                )
                for sale, size_id, label in self._facts.refill_sales_for_driver_since(
                    tenant_id, driver_id, since
                )
            )

        inputs = AllocationInputs(
            tenant_id=tenant_id,
            driver_id=driver_id,
            driver_total=tenant_totals.get(driver_id, 0),
            tenant_total=sum(v for v in tenant_totals.values() if v > 0),
            active_sizes=active_sizes,
            baselines=baselines,
            refills=refills,
            empty_stock=dict(empty_stock),
        )
        result = allocate_by_size(
            inputs=inputs,
            strategy_order=self.settings.allocation.strategies,
            redistribute_remainder=self.settings.allocation.redistribute_remainder,
        )
        log_anomalies(logger, result.anomalies)
        return result
