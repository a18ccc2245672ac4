"""
Module: cylinder_kernel.selectors.base
Responsibility: Shared plumbing for the read-only selectors: the caller's
    session and tenant-scoped query builders.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    domain/.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Selectors only read: no add(), delete(), flush() or commit().
    - They return frozen DTOs, never ORM rows.
    - The caller owns the session, so every read inside one service call
      shares its transaction snapshot.
    - Every query starts from ``_for_tenant``; no selector reads across
      tenants except CatalogSelector.list_tenant_ids().
"""

from typing import Generic, TypeVar
from uuid import UUID

from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from cylinder_kernel.db.base import TenantScoped

ModelType = TypeVar("ModelType", bound=TenantScoped)


class BaseSelector(Generic[ModelType]):
    """Read-only query object bound to one session."""

    def __init__(self, session: Session):
        self.session = session

    @staticmethod
    def _for_tenant(model: type, tenant_id: str) -> Select:
        return select(model).where(model.tenant_id == tenant_id)

    def _get_owned(self, model: type, tenant_id: str, row_id: UUID):
        """The tenant's row with ``row_id``, or None if absent or owned by another tenant."""
        query = self._for_tenant(model, tenant_id).where(model.id == row_id)
        return self.session.execute(query).scalar_one_or_none()
