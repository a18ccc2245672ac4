"""
Module: cylinder_kernel.services.baseline_service
Responsibility: Record and correct per-size driver cylinder baselines.
Architecture position: Kernel > Services.  Never commits.

Invariants enforced:
    - A baseline is created once per (tenant, driver, size).  It is never
      recomputed automatically; only correct_baseline replaces it.
    - Baseline quantities are non-negative integers.

Failure modes:
    - BaselineAlreadyExistsError from record_baseline on an existing key.
    - BaselineNotFoundError from correct_baseline on a missing key.
    - DriverNotFoundError / CylinderSizeNotFoundError for unknown references.
    - FactValidationError for a negative or non-integer quantity.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from cylinder_kernel.domain.balances import DriverSizeBaseline
from cylinder_kernel.domain.clock import Clock, SystemClock, ensure_utc
from cylinder_kernel.domain.keys import validate_tenant_id
from cylinder_kernel.exceptions import (
    BaselineAlreadyExistsError,
    BaselineNotFoundError,
    FactValidationError,
)
from cylinder_kernel.logging_config import get_logger
from cylinder_kernel.models.baseline import DriverSizeBaselineModel
from cylinder_kernel.selectors.balances import BalanceSelector
from cylinder_kernel.selectors.catalog import CatalogSelector

logger = get_logger("services.baseline")


class BaselineService:
    """Per-size cylinder baselines supplied by onboarding or a correction."""

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()
        self._catalog = CatalogSelector(session)
        self._balances = BalanceSelector(session)

    def _load(self, tenant_id: str, driver_id: UUID, size_id: UUID) -> DriverSizeBaselineModel | None:
        return self.session.execute(
            select(DriverSizeBaselineModel).where(
                DriverSizeBaselineModel.tenant_id == tenant_id,
                DriverSizeBaselineModel.driver_id == driver_id,
                DriverSizeBaselineModel.cylinder_size_id == size_id,
            )
        ).scalar_one_or_none()

    def _validate(
        self, tenant_id: str, driver_id: UUID, quantities: Mapping[UUID, int]
    ) -> None:
        self._catalog.get_driver(tenant_id, driver_id)
        for size_id, quantity in quantities.items():
            self._catalog.get_size(tenant_id, size_id)
            if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 0:
                raise FactValidationError(
                    "DriverSizeBaseline",
                    "baseline_quantity",
                    f"must be a non-negative integer, got {quantity!r}",
                )

    def record_baseline(
        self,
        tenant_id: str,
        driver_id: UUID,
        quantities: Mapping[UUID, int],
        actor_id: UUID,
        established_at: datetime | None = None,
    ) -> list[DriverSizeBaseline]:
        """
        Create baselines for a driver, one per cylinder size in ``quantities``.

        Nothing is written if any size already has a baseline.
        """
        tenant_id = validate_tenant_id(tenant_id)
        self._validate(tenant_id, driver_id, quantities)
        for size_id in quantities:
            if self._load(tenant_id, driver_id, size_id) is not None:
                raise BaselineAlreadyExistsError(str(driver_id), str(size_id))

        when = ensure_utc(established_at or self.clock.now()).astimezone(timezone.utc)
        for size_id, quantity in quantities.items():
            self.session.add(DriverSizeBaselineModel(
                tenant_id=tenant_id,
                driver_id=driver_id,
                cylinder_size_id=size_id,
                baseline_quantity=quantity,
                established_at=when,
                created_by_id=actor_id,
            ))
        self.session.flush()

        logger.info(
            "baseline_recorded",
            extra={
                "tenant_id": tenant_id,
                "driver_id": str(driver_id),
                "size_count": len(quantities),
                "established_at": when,
            },
        )
        return self._balances.baselines_for_driver(tenant_id, driver_id)

    def correct_baseline(
        self,
        tenant_id: str,
        driver_id: UUID,
        cylinder_size_id: UUID,
        quantity: int,
        actor_id: UUID,
        established_at: datetime | None = None,
    ) -> DriverSizeBaseline:
        """Replace an existing baseline's quantity and re-anchor its timestamp."""
        tenant_id = validate_tenant_id(tenant_id)
        self._validate(tenant_id, driver_id, {cylinder_size_id: quantity})
        row = self._load(tenant_id, driver_id, cylinder_size_id)
        if row is None:
            raise BaselineNotFoundError(str(driver_id), str(cylinder_size_id))

        previous = row.baseline_quantity
        row.baseline_quantity = quantity
        row.established_at = ensure_utc(established_at or self.clock.now()).astimezone(timezone.utc)
        row.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "baseline_corrected",
            extra={
                "tenant_id": tenant_id,
                "driver_id": str(driver_id),
                "cylinder_size_id": str(cylinder_size_id),
                "previous_quantity": previous,
                "quantity": quantity,
            },
        )
        return next(
            b for b in self._balances.baselines_for_driver(tenant_id, driver_id)
            if b.cylinder_size_id == cylinder_size_id
        )
