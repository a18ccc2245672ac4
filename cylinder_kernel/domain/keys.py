"""
Ledger keys and tenant id validation.

Every ledger row is addressed by a tenant-scoped composite key.  The keys
here are the in-memory form used for locking, logging and batch unit ids;
the database enforces the same shape through unique constraints.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from uuid import UUID

from cylinder_kernel.exceptions import InvalidTenantError

TENANT_ID_MAX_LENGTH = 100

_TENANT_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.:\-]*$")


def validate_tenant_id(tenant_id: object) -> str:
    """
    Return the tenant id unchanged if well formed.

    Raises:
        InvalidTenantError: if ``tenant_id`` is not a non-empty string of
            at most TENANT_ID_MAX_LENGTH identifier characters.
    """
    if not isinstance(tenant_id, str):
        raise InvalidTenantError(tenant_id)
    if not tenant_id or len(tenant_id) > TENANT_ID_MAX_LENGTH:
        raise InvalidTenantError(tenant_id)
    if not _TENANT_ID_RE.match(tenant_id):
        raise InvalidTenantError(tenant_id)
    return tenant_id


@dataclass(frozen=True, slots=True)
class StockKey:
    """Tenant-wide stock recompute for one date."""

    tenant_id: str
    balance_date: date

    def __str__(self) -> str:
        return f"stock:{self.tenant_id}:{self.balance_date.isoformat()}"


@dataclass(frozen=True, slots=True)
class ReceivableKey:
    """Receivable recompute for one driver on one date."""

    tenant_id: str
    driver_id: UUID
    balance_date: date

    def __str__(self) -> str:
        return (
            f"receivable:{self.tenant_id}:{self.driver_id}:"
            f"{self.balance_date.isoformat()}"
        )
