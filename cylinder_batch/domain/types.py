"""
cylinder_batch.domain.types -- Frozen result types for recompute runs.

ZERO I/O.  Frozen dataclasses with enum status fields and tuples for
immutable collections.

Invariants enforced:
    - Every prepared recompute unit yields exactly one UnitResult.  Tenants
      not started because the run was cancelled have no unit results.
    - Anomalies travel with the unit that produced them.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any

from cylinder_kernel.domain.anomalies import LedgerAnomaly


class RunStatus(str, Enum):
    """Run-level outcome."""

    COMPLETED = "completed"  # Every unit succeeded
    PARTIALLY_COMPLETED = "partially_completed"  # Some units failed
    FAILED = "failed"  # No unit succeeded
    CANCELLED = "cancelled"  # Stopped at a tenant boundary


class UnitStatus(str, Enum):
    """Per-unit outcome within a run."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"  # Task declined the unit; its SAVEPOINT is rolled back


@dataclass(frozen=True)
class UnitResult:
    """Outcome of one recompute unit (one SAVEPOINT)."""

    unit_index: int
    unit_key: str  # e.g. "stock:acme:2024-03-01"
    tenant_id: str
    task_type: str
    status: UnitStatus
    error_code: str | None = None
    error_message: str | None = None
    anomalies: tuple[LedgerAnomaly, ...] = ()
    result_data: dict[str, Any] | None = None
    duration_ms: int = 0
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == UnitStatus.SUCCEEDED


@dataclass(frozen=True)
class TenantRunResult:
    """All unit outcomes for one tenant, in execution order."""

    tenant_id: str
    unit_results: tuple[UnitResult, ...] = ()
    cancelled: bool = False


@dataclass(frozen=True)
class RecomputeRunResult:
    """
    Result of ``RecomputeRunner.run()``.

    ``cancelled_tenants`` lists tenants that were never started because the
    cancellation token fired before their turn.
    """

    status: RunStatus
    balance_date: date
    total_units: int
    succeeded: int
    failed: int
    skipped: int
    unit_results: tuple[UnitResult, ...] = ()
    cancelled_tenants: tuple[str, ...] = ()
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int = 0
    correlation_id: str | None = None

    @property
    def anomalies(self) -> tuple[LedgerAnomaly, ...]:
        return tuple(a for r in self.unit_results for a in r.anomalies)

    def results_for(self, tenant_id: str) -> tuple[UnitResult, ...]:
        return tuple(r for r in self.unit_results if r.tenant_id == tenant_id)
