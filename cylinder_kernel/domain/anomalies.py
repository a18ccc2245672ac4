"""
Module: cylinder_kernel.domain.anomalies
Responsibility: Non-fatal ledger conditions returned alongside results.
    A gap in the ledger, a clamped stock shortfall, a negative receivable,
    a FIFO inventory shortfall and allocation rounding loss are all
    observable outcomes, not exceptions: the recompute still completes.
Architecture position: Kernel > Domain.  Pure, zero I/O.  ``log_anomalies``
    takes the caller's logger so the domain layer never configures logging.

Invariants enforced:
    - LedgerAnomaly is immutable.
    - Severity is derived from the kind; callers cannot downgrade a warning.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class AnomalyKind(str, Enum):
    LEDGER_GAP = "LEDGER_GAP"
    STOCK_SHORTFALL = "STOCK_SHORTFALL"
    NEGATIVE_RECEIVABLE = "NEGATIVE_RECEIVABLE"
    INSUFFICIENT_INVENTORY = "INSUFFICIENT_INVENTORY"
    ALLOCATION_ROUNDING_LOSS = "ALLOCATION_ROUNDING_LOSS"


class AnomalySeverity(str, Enum):
    INFO = "INFO"
    WARNING = "WARNING"


_SEVERITY: dict[AnomalyKind, AnomalySeverity] = {
    AnomalyKind.LEDGER_GAP: AnomalySeverity.WARNING,
    AnomalyKind.STOCK_SHORTFALL: AnomalySeverity.WARNING,
    AnomalyKind.NEGATIVE_RECEIVABLE: AnomalySeverity.WARNING,
    AnomalyKind.INSUFFICIENT_INVENTORY: AnomalySeverity.WARNING,
    AnomalyKind.ALLOCATION_ROUNDING_LOSS: AnomalySeverity.INFO,
}


@dataclass(frozen=True)
class LedgerAnomaly:
    """
    A non-fatal condition observed while computing a ledger result.

    ``context`` carries the identifying fields (tenant, key, quantities) so
    the anomaly is actionable without re-running the computation.
    """

    kind: AnomalyKind
    message: str
    context: Mapping[str, Any] = field(default_factory=dict)

    @property
    def severity(self) -> AnomalySeverity:
        return _SEVERITY[self.kind]

    @property
    def is_warning(self) -> bool:
        return self.severity == AnomalySeverity.WARNING

    @classmethod
    def ledger_gap(cls, **context: Any) -> LedgerAnomaly:
        return cls(
            AnomalyKind.LEDGER_GAP,
            "No balance for the previous day although an older balance exists",
            dict(context),
        )

    @classmethod
    def stock_shortfall(cls, **context: Any) -> LedgerAnomaly:
        return cls(
            AnomalyKind.STOCK_SHORTFALL,
            "Computed closing stock was negative and has been clamped to zero",
            dict(context),
        )

    @classmethod
    def negative_receivable(cls, **context: Any) -> LedgerAnomaly:
        return cls(
            AnomalyKind.NEGATIVE_RECEIVABLE,
            "Driver owes a negative amount (overpayment or over-return)",
            dict(context),
        )

    @classmethod
    def insufficient_inventory(cls, **context: Any) -> LedgerAnomaly:
        return cls(
            AnomalyKind.INSUFFICIENT_INVENTORY,
            "More units sold than purchased; shortfall carries zero cost",
            dict(context),
        )

    @classmethod
    def allocation_rounding_loss(cls, **context: Any) -> LedgerAnomaly:
        return cls(
            AnomalyKind.ALLOCATION_ROUNDING_LOSS,
            "Per-size allocation sums to less than the driver total",
            dict(context),
        )

    def to_log_extra(self) -> dict[str, Any]:
        extra: dict[str, Any] = {
            "anomaly_kind": self.kind.value,
            "severity": self.severity.value,
        }
        for key, value in self.context.items():
            extra[f"anomaly_{key}"] = value
        return extra


def log_anomalies(logger: logging.Logger, anomalies: Iterable[LedgerAnomaly]) -> None:
    """Emit one structured record per anomaly at its severity's level."""
    for anomaly in anomalies:
        level = logging.WARNING if anomaly.is_warning else logging.INFO
        logger.log(level, "ledger_anomaly", extra=anomaly.to_log_extra())
