"""
cylinder_batch.tasks -- RecomputeTask protocol, registry, and ledger tasks.
"""

from cylinder_batch.tasks.base import (
    RecomputeTask,
    RecomputeTaskResult,
    RecomputeUnitInput,
    TaskRegistry,
)
from cylinder_batch.tasks.recompute_tasks import ReceivablesRecomputeTask, StockRecomputeTask


def default_task_registry(
    *,
    carry_forward_across_gaps: bool = False,
    materialize_idle: bool = False,
) -> TaskRegistry:
    """Registry with the stock task followed by the receivables task."""
    registry = TaskRegistry()
    registry.register(
        StockRecomputeTask(
            carry_forward_across_gaps=carry_forward_across_gaps,
            materialize_idle=materialize_idle,
        )
    )
    registry.register(ReceivablesRecomputeTask())
    return registry


__all__ = [
    "ReceivablesRecomputeTask",
    "RecomputeTask",
    "RecomputeTaskResult",
    "RecomputeUnitInput",
    "StockRecomputeTask",
    "TaskRegistry",
    "default_task_registry",
]
