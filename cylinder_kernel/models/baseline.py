"""
Module: cylinder_kernel.models.baseline
Responsibility: ORM persistence for per-size driver cylinder baselines.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One baseline per (tenant, driver, cylinder size) (uq_driver_size_baseline).
    - Written only by BaselineService (onboarding or explicit correction);
      never recomputed from sales.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from cylinder_kernel.db.base import TrackedBase, UUIDString


class DriverSizeBaselineModel(TrackedBase):
    """Cylinders of one size a driver was known to hold at ``established_at``."""

    __tablename__ = "driver_size_baselines"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "driver_id", "cylinder_size_id",
            name="uq_driver_size_baseline",
        ),
    )

    driver_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("drivers.id"), nullable=False
    )

    cylinder_size_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("cylinder_sizes.id"), nullable=False
    )

    baseline_quantity: Mapped[int] = mapped_column(nullable=False)

    established_at: Mapped[datetime] = mapped_column(nullable=False)
