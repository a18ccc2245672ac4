"""
RecomputeRunner -- SAVEPOINT-per-unit recompute across tenants.

Contract:
    ``run()`` recomputes the stock ledger and every active driver's
    receivables for each tenant on one date and returns a
    ``RecomputeRunResult`` with one ``UnitResult`` per unit.
    ``run_tenant()`` does the same for one tenant inside a caller-owned
    session and never commits.

Architecture: cylinder_batch/services.  Imports from cylinder_batch.domain,
    cylinder_batch.tasks, cylinder_config and kernel selectors.

Invariants enforced:
    - SAVEPOINT isolation per unit: a failed unit is rolled back and
      recorded; the tenant's other units still run and commit.
    - Same-key units are serialized through ``KeyLockRegistry``.
    - One session per worker thread; each tenant commits independently.
    - Cancellation is checked before each tenant starts.
    - All timestamps come from the injected Clock.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from datetime import date
from uuid import uuid4

from sqlalchemy.orm import Session

from cylinder_batch.domain.types import (
    RecomputeRunResult,
    RunStatus,
    TenantRunResult,
    UnitResult,
    UnitStatus,
)
from cylinder_batch.services.coordination import CancellationToken, KeyLockRegistry
from cylinder_batch.tasks import TaskRegistry, default_task_registry
from cylinder_batch.tasks.base import RecomputeTask, RecomputeUnitInput
from cylinder_config import LedgerSettings, get_active_settings
from cylinder_kernel.domain.clock import Clock, SystemClock
from cylinder_kernel.exceptions import CylinderLedgerError
from cylinder_kernel.logging_config import LogContext, get_logger
from cylinder_kernel.selectors.catalog import CatalogSelector

logger = get_logger("batch.runner")


class RecomputeRunner:
    """Daily recompute across tenants.

    Contract:
        - ``session_factory`` is called once per tenant (and once for tenant
          discovery); each session is committed and closed by the runner.
        - ``registry`` defaults to the stock task followed by the
          receivables task, configured from ``settings``.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        settings: LedgerSettings | None = None,
        clock: Clock | None = None,
        registry: TaskRegistry | None = None,
        lock_registry: KeyLockRegistry | None = None,
    ):
        self._session_factory = session_factory
        self._settings = settings or get_active_settings()
        self._clock = clock or SystemClock()
        self._registry = registry or default_task_registry(
            carry_forward_across_gaps=self._settings.stock.carry_forward_across_gaps,
            materialize_idle=self._settings.stock.materialize_idle,
        )
        self._locks = lock_registry or KeyLockRegistry(
            self._settings.batch.lock_timeout_seconds
        )

    @property
    def lock_registry(self) -> KeyLockRegistry:
        return self._locks

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def run(
        self,
        tenant_ids: Iterable[str] | None = None,
        balance_date: date | None = None,
        token: CancellationToken | None = None,
        max_workers: int | None = None,
    ) -> RecomputeRunResult:
        """Recompute every unit of every tenant for ``balance_date``.

        Args:
            tenant_ids: Tenants to recompute.  None means every tenant that
                has products or drivers.
            balance_date: Ledger date.  Defaults to the clock's today.
            token: Optional cancellation token, checked between tenants.
            max_workers: Worker threads.  Defaults to ``batch.max_workers``.
        """
        balance_date = balance_date or self._clock.today()
        tenants = list(tenant_ids) if tenant_ids is not None else self._discover_tenants()
        workers = max_workers or self._settings.batch.max_workers
        correlation_id = str(uuid4())

        start = time.monotonic()
        started_at = self._clock.now()
        logger.info(
            "recompute_run_started",
            extra={
                "correlation_id": correlation_id,
                "balance_date": balance_date,
                "tenant_count": len(tenants),
                "max_workers": workers,
            },
        )

        def work(tenant_id: str) -> TenantRunResult:
            if token is not None and token.is_cancelled:
                return TenantRunResult(tenant_id=tenant_id, cancelled=True)
            with LogContext.bind(correlation_id=correlation_id):
                return self._run_tenant_in_own_session(tenant_id, balance_date)

        if workers <= 1 or len(tenants) <= 1:
            tenant_results = [work(t) for t in tenants]
        else:
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="recompute") as pool:
                tenant_results = list(pool.map(work, tenants))

        unit_results = tuple(r for t in tenant_results for r in t.unit_results)
        cancelled = tuple(t.tenant_id for t in tenant_results if t.cancelled)
        succeeded = sum(1 for r in unit_results if r.status == UnitStatus.SUCCEEDED)
        failed = sum(1 for r in unit_results if r.status == UnitStatus.FAILED)
        skipped = sum(1 for r in unit_results if r.status == UnitStatus.SKIPPED)

        if cancelled:
            status = RunStatus.CANCELLED
        elif failed == 0:
            status = RunStatus.COMPLETED
        elif succeeded == 0:
            status = RunStatus.FAILED
        else:
            status = RunStatus.PARTIALLY_COMPLETED

        result = RecomputeRunResult(
            status=status,
            balance_date=balance_date,
            total_units=len(unit_results),
            succeeded=succeeded,
            failed=failed,
            skipped=skipped,
            unit_results=unit_results,
            cancelled_tenants=cancelled,
            started_at=started_at,
            completed_at=self._clock.now(),
            duration_ms=int((time.monotonic() - start) * 1000),
            correlation_id=correlation_id,
        )
        logger.info(
            "recompute_run_completed",
            extra={
                "correlation_id": correlation_id,
                "status": status.value,
                "total_units": result.total_units,
                "succeeded": succeeded,
                "failed": failed,
                "cancelled_tenants": list(cancelled),
                "anomaly_count": len(result.anomalies),
                "duration_ms": result.duration_ms,
            },
        )
        return result

    def run_tenant(self, session: Session, tenant_id: str, balance_date: date) -> TenantRunResult:
        """Run every registered task for one tenant.  Never commits."""
        results: list[UnitResult] = []
        with LogContext.bind(tenant_id=tenant_id, ledger_date=balance_date.isoformat()):
            for task in self._registry.tasks():
                results.extend(self._run_task(session, task, tenant_id, balance_date))
        return TenantRunResult(tenant_id=str(tenant_id), unit_results=tuple(results))

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _discover_tenants(self) -> list[str]:
        session = self._session_factory()
        try:
            return CatalogSelector(session).list_tenant_ids()
        finally:
            session.close()

    def _run_tenant_in_own_session(self, tenant_id: str, balance_date: date) -> TenantRunResult:
        session = self._session_factory()
        try:
            result = self.run_tenant(session, tenant_id, balance_date)
            try:
                session.commit()
            except Exception as exc:
                session.rollback()
                logger.exception(
                    "recompute_tenant_commit_failed",
                    extra={"tenant_id": str(tenant_id)},
                )
                return replace(
                    result,
                    unit_results=tuple(
                        replace(
                            r,
                            status=UnitStatus.FAILED,
                            error_code="COMMIT_FAILED",
                            error_message=str(exc),
                        )
                        for r in result.unit_results
                    ),
                )
            return result
        finally:
            session.close()

    def _run_task(
        self,
        session: Session,
        task: RecomputeTask,
        tenant_id: str,
        balance_date: date,
    ) -> list[UnitResult]:
        try:
            units = task.prepare_units(tenant_id, balance_date, session)
        except CylinderLedgerError as exc:
            logger.warning(
                "recompute_prepare_failed",
                extra={"task_type": task.task_type, "error_code": exc.code, "error": str(exc)},
            )
            return [self._prepare_failure(task, tenant_id, exc.code, str(exc))]
        except Exception as exc:
            logger.exception("recompute_prepare_crashed", extra={"task_type": task.task_type})
            return [self._prepare_failure(task, tenant_id, "UNHANDLED_EXCEPTION", str(exc))]
        return [self._run_unit(session, task, unit, balance_date) for unit in units]

    def _run_unit(
        self,
        session: Session,
        task: RecomputeTask,
        unit: RecomputeUnitInput,
        balance_date: date,
    ) -> UnitResult:
        unit_start = time.monotonic()
        started_at = self._clock.now()

        def finish(status: UnitStatus, **fields) -> UnitResult:
            return UnitResult(
                unit_index=unit.unit_index,
                unit_key=unit.unit_key,
                tenant_id=unit.tenant_id,
                task_type=task.task_type,
                status=status,
                duration_ms=int((time.monotonic() - unit_start) * 1000),
                started_at=started_at,
                completed_at=self._clock.now(),
                **fields,
            )

        with LogContext.bind(unit_key=unit.unit_key):
            try:
                with self._locks.hold(unit.unit_key):
                    savepoint = session.begin_nested()
                    try:
                        result = task.execute_unit(unit, balance_date, session, self._clock)
                    except Exception:
                        savepoint.rollback()
                        raise
                    if result.status == UnitStatus.SUCCEEDED:
                        savepoint.commit()
                    else:
                        savepoint.rollback()
            except CylinderLedgerError as exc:
                logger.warning(
                    "recompute_unit_failed",
                    extra={"task_type": task.task_type, "error_code": exc.code, "error": str(exc)},
                )
                return finish(UnitStatus.FAILED, error_code=exc.code, error_message=str(exc))
            except Exception as exc:
                logger.exception("recompute_unit_crashed", extra={"task_type": task.task_type})
                return finish(
                    UnitStatus.FAILED,
                    error_code="UNHANDLED_EXCEPTION",
                    error_message=str(exc),
                )

            logger.info(
                "recompute_unit_finished",
                extra={"task_type": task.task_type, "status": result.status.value},
            )
            return finish(
                result.status,
                error_code=result.error_code,
                error_message=result.error_message,
                anomalies=result.anomalies,
                result_data=result.result_data,
            )

    def _prepare_failure(
        self, task: RecomputeTask, tenant_id: str, error_code: str, message: str
    ) -> UnitResult:
        now = self._clock.now()
        return UnitResult(
            unit_index=0,
            unit_key=f"{task.task_type}:{tenant_id}",
            tenant_id=str(tenant_id),
            task_type=task.task_type,
            status=UnitStatus.FAILED,
            error_code=error_code,
            error_message=message,
            started_at=now,
            completed_at=now,
        )
