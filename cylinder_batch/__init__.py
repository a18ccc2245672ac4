"""
cylinder_batch -- Daily recompute across tenants.

Runs the stock ledger and every active driver's receivables ledger for a
date, one SAVEPOINT per unit, serialized per ledger key, fanned out across
tenants on a thread pool with one session per worker.

Architecture:
    cylinder_batch/ is a top-level package.  Nothing in cylinder_kernel/
    or cylinder_engines/ imports from cylinder_batch.
"""

from cylinder_batch.domain.types import (
    RecomputeRunResult,
    RunStatus,
    TenantRunResult,
    UnitResult,
    UnitStatus,
)
from cylinder_batch.services.coordination import CancellationToken, KeyLockRegistry
from cylinder_batch.services.runner import RecomputeRunner

__all__ = [
    "CancellationToken",
    "KeyLockRegistry",
    "RecomputeRunResult",
    "RecomputeRunner",
    "RunStatus",
    "TenantRunResult",
    "UnitResult",
    "UnitStatus",
]
