"""
Per-key locking and cooperative cancellation for recompute runs.

Contract:
    ``KeyLockRegistry.hold(key)`` serializes work on one ledger key inside
    this process.  Units with different keys never block each other.
    ``CancellationToken`` is checked by the runner between tenants; a
    tenant already in progress is finished.

Architecture: cylinder_batch/services.  Stdlib threading only.  Across
    processes, same-key writers are serialized by the database's unique
    key and INSERT ... ON CONFLICT DO UPDATE.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager

from cylinder_kernel.exceptions import RecomputeLockTimeoutError
from cylinder_kernel.logging_config import get_logger

logger = get_logger("batch.coordination")


class _KeyLock:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


class KeyLockRegistry:
    """
    Lazily created lock per unit key.

    Entries are removed when no thread holds or waits on them, so the
    registry does not grow with the number of dates ever recomputed.
    """

    def __init__(self, timeout_seconds: float = 30.0):
        self.timeout_seconds = timeout_seconds
        self._guard = threading.Lock()
        self._locks: dict[str, _KeyLock] = {}

    @contextmanager
    def hold(self, key: str, timeout_seconds: float | None = None) -> Iterator[None]:
        """
        Hold the lock for ``key`` for the duration of the block.

        Raises:
            RecomputeLockTimeoutError: if the lock is not acquired within
                the timeout.
        """
        timeout = self.timeout_seconds if timeout_seconds is None else timeout_seconds
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = _KeyLock()
            entry.users += 1
        try:
            if not entry.lock.acquire(timeout=timeout):
                logger.warning(
                    "recompute_lock_timeout",
                    extra={"unit_key": key, "timeout_seconds": timeout},
                )
                raise RecomputeLockTimeoutError(key, timeout)
            try:
                yield
            finally:
                entry.lock.release()
        finally:
            with self._guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._locks[key]

    def is_held(self, key: str) -> bool:
        with self._guard:
            entry = self._locks.get(key)
            return entry is not None and entry.lock.locked()

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


class CancellationToken:
    """Thread-safe cancel flag shared between a caller and a running runner."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()
