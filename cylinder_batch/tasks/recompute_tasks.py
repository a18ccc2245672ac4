"""
Recompute tasks: tenant stock ledger and per-driver receivables ledger.
"""

from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy.orm import Session

from cylinder_batch.tasks.base import RecomputeTaskResult, RecomputeUnitInput
from cylinder_kernel.domain.clock import Clock
from cylinder_kernel.domain.keys import ReceivableKey, StockKey, validate_tenant_id
from cylinder_kernel.selectors.catalog import CatalogSelector
from cylinder_kernel.services.receivables_ledger_service import ReceivablesLedgerService
from cylinder_kernel.services.stock_ledger_service import StockLedgerService


class StockRecomputeTask:
    """One unit per tenant: every product's full stock and every size's empty stock."""

    def __init__(self, *, carry_forward_across_gaps: bool = False, materialize_idle: bool = False):
        self.carry_forward_across_gaps = carry_forward_across_gaps
        self.materialize_idle = materialize_idle

    @property
    def task_type(self) -> str:
        return "ledger.stock"

    @property
    def description(self) -> str:
        return "Recompute full and empty stock balances for one date"

    def prepare_units(
        self,
        tenant_id: str,
        balance_date: date,
        session: Session,
    ) -> tuple[RecomputeUnitInput, ...]:
        tenant_id = validate_tenant_id(tenant_id)
        return (
            RecomputeUnitInput(
                unit_index=0,
                unit_key=str(StockKey(tenant_id, balance_date)),
                tenant_id=tenant_id,
            ),
        )

    def execute_unit(
        self,
        unit: RecomputeUnitInput,
        balance_date: date,
        session: Session,
        clock: Clock,
    ) -> RecomputeTaskResult:
        service = StockLedgerService(
            session,
            clock,
            carry_forward_across_gaps=self.carry_forward_across_gaps,
            materialize_idle=self.materialize_idle,
        )
        result = service.recompute(unit.tenant_id, balance_date)
        return RecomputeTaskResult.success(
            result.anomalies,
            full_rows=len(result.full),
            empty_rows=len(result.empty),
        )


class ReceivablesRecomputeTask:
    """One unit per active driver of the tenant."""

    @property
    def task_type(self) -> str:
        return "ledger.receivables"

    @property
    def description(self) -> str:
        return "Recompute driver cash and cylinder receivables for one date"

    def prepare_units(
        self,
        tenant_id: str,
        balance_date: date,
        session: Session,
    ) -> tuple[RecomputeUnitInput, ...]:
        tenant_id = validate_tenant_id(tenant_id)
        drivers = CatalogSelector(session).list_drivers(tenant_id, active_only=True)
        return tuple(
            RecomputeUnitInput(
                unit_index=i,
                unit_key=str(ReceivableKey(tenant_id, driver.driver_id, balance_date)),
                tenant_id=tenant_id,
                payload={"driver_id": str(driver.driver_id)},
            )
            for i, driver in enumerate(drivers)
        )

    def execute_unit(
        self,
        unit: RecomputeUnitInput,
        balance_date: date,
        session: Session,
        clock: Clock,
    ) -> RecomputeTaskResult:
        driver_id = UUID(unit.payload["driver_id"])
        result = ReceivablesLedgerService(session, clock).recompute(
            unit.tenant_id, driver_id, balance_date
        )
        return RecomputeTaskResult.success(
            result.anomalies,
            driver_id=str(driver_id),
            closing_cash=str(result.balance.closing_cash),
            closing_cylinders=result.balance.closing_cylinders,
        )
