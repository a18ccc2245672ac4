"""cylinder_batch.domain -- Pure result types for recompute runs."""

from cylinder_batch.domain.types import (
    RecomputeRunResult,
    RunStatus,
    TenantRunResult,
    UnitResult,
    UnitStatus,
)

__all__ = [
    "RecomputeRunResult",
    "RunStatus",
    "TenantRunResult",
    "UnitResult",
    "UnitStatus",
]
