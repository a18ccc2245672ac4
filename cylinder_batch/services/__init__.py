"""cylinder_batch.services -- Recompute runner and key coordination."""

from cylinder_batch.services.coordination import CancellationToken, KeyLockRegistry
from cylinder_batch.services.runner import RecomputeRunner

__all__ = ["CancellationToken", "KeyLockRegistry", "RecomputeRunner"]
