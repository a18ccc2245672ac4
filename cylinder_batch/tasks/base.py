"""
Recompute task interface and the ordered registry the runner walks.

A task turns (tenant, balance date) into independent units, each with a
lock key, and then recomputes one unit at a time inside a SAVEPOINT the
runner opens.  Tasks never commit or roll back themselves.  Within a
tenant the runner executes tasks in registration order, which is how
stock balances are written before receivables read them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Protocol, runtime_checkable

from sqlalchemy.orm import Session

from cylinder_batch.domain.types import UnitStatus
from cylinder_kernel.domain.anomalies import LedgerAnomaly
from cylinder_kernel.domain.clock import Clock


@dataclass(frozen=True)
class RecomputeUnitInput:
    """
    A unit of work.  Units sharing ``unit_key`` are serialized by the
    runner's key locks; ``payload`` carries task-specific ids as strings.
    """

    unit_index: int
    unit_key: str
    tenant_id: str
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RecomputeTaskResult:
    status: UnitStatus
    anomalies: tuple[LedgerAnomaly, ...] = ()
    result_data: dict[str, Any] | None = None
    error_code: str | None = None
    error_message: str | None = None

    @classmethod
    def success(cls, anomalies=(), **result_data: Any) -> RecomputeTaskResult:
        return cls(
            status=UnitStatus.SUCCEEDED,
            anomalies=tuple(anomalies),
            result_data=result_data or None,
        )


@runtime_checkable
class RecomputeTask(Protocol):
    """
    ``prepare_units`` is read-only.  ``execute_unit`` may raise a ledger
    error; the runner records its code on the unit and rolls back that
    unit's SAVEPOINT only.  Returning SKIPPED also discards the unit's
    writes.
    """

    @property
    def task_type(self) -> str: ...

    @property
    def description(self) -> str: ...

    def prepare_units(
        self,
        tenant_id: str,
        balance_date: date,
        session: Session,
    ) -> tuple[RecomputeUnitInput, ...]:
        ...

    def execute_unit(
        self,
        unit: RecomputeUnitInput,
        balance_date: date,
        session: Session,
        clock: Clock,
    ) -> RecomputeTaskResult:
        ...


class TaskRegistry:
    """Tasks by ``task_type``, iterated in the order they were registered."""

    def __init__(self) -> None:
        self._by_type: dict[str, RecomputeTask] = {}

    def register(self, task: RecomputeTask) -> None:
        key = task.task_type
        if key in self._by_type:
            raise ValueError(f"Task type '{key}' is already registered")
        self._by_type[key] = task

    def get(self, task_type: str) -> RecomputeTask:
        task = self._by_type.get(task_type)
        if task is None:
            known = ", ".join(self._by_type) or "none"
            raise KeyError(f"No task registered for type '{task_type}' (known: {known})")
        return task

    def tasks(self) -> tuple[RecomputeTask, ...]:
        return tuple(self._by_type.values())

    def list_tasks(self) -> tuple[str, ...]:
        return tuple(self._by_type)

    def __len__(self) -> int:
        return len(self._by_type)

    def __contains__(self, task_type: str) -> bool:
        return task_type in self._by_type
