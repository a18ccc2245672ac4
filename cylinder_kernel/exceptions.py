"""
Typed exception hierarchy for the cylinder ledger kernel.

Every error carries a class-level ``code`` (machine-readable, API-safe) and
stores its context as attributes so it survives logging and serialization.
Callers catch by type, never by message text.

Only *fatal* conditions are exceptions.  Non-fatal ledger conditions
(gaps, shortfalls, negative receivables, rounding loss, FIFO shortfall) are
``LedgerAnomaly`` values returned alongside results; see
``cylinder_kernel.domain.anomalies``.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    CylinderLedgerError (base)
    |
    +-- FactError
    |   +-- FactValidationError
    |   +-- FactAlreadyRecordedError
    |
    +-- TenantError
    |   +-- InvalidTenantError
    |
    +-- CatalogError
    |   +-- ProductNotFoundError
    |   +-- DriverNotFoundError
    |   +-- CylinderSizeNotFoundError
    |   +-- CylinderSizeReferencedError
    |
    +-- BaselineError
    |   +-- BaselineAlreadyExistsError
    |   +-- BaselineNotFoundError
    |
    +-- RecomputeError
        +-- RecomputeLockTimeoutError

===============================================================================
ERROR CODES
===============================================================================

Category   | Code                       | When raised
-----------|----------------------------|------------------------------------------
Fact       | FACT_VALIDATION            | Sale/shipment/opening input is malformed
           | FACT_ALREADY_RECORDED      | Same fact id ingested twice, payload differs
Tenant     | INVALID_TENANT             | Tenant id missing or malformed
Catalog    | PRODUCT_NOT_FOUND          | Product id unknown for the tenant
           | DRIVER_NOT_FOUND           | Driver id unknown for the tenant
           | CYLINDER_SIZE_NOT_FOUND    | Cylinder size id unknown for the tenant
           | CYLINDER_SIZE_REFERENCED   | Hard delete of a size referenced by balances
Baseline   | BASELINE_ALREADY_EXISTS    | record_baseline on an existing key
           | BASELINE_NOT_FOUND         | correct_baseline on a missing key
Recompute  | RECOMPUTE_LOCK_TIMEOUT     | Per-key recompute lock not acquired in time
"""

from __future__ import annotations


class CylinderLedgerError(Exception):
    """
    Base exception for all cylinder ledger errors.

    All subclasses must have a ``code`` class attribute.
    """

    code: str = "CYLINDER_LEDGER_ERROR"


# Fact ingestion


class FactError(CylinderLedgerError):
    """Base exception for fact ingestion errors."""

    code: str = "FACT_ERROR"


class FactValidationError(FactError):
    """A sale, shipment or opening-stock fact failed validation at ingestion."""

    code: str = "FACT_VALIDATION"

    def __init__(self, fact_type: str, field_name: str, reason: str):
        self.fact_type = fact_type
        self.field_name = field_name
        self.reason = reason
        super().__init__(f"Invalid {fact_type}.{field_name}: {reason}")


class FactAlreadyRecordedError(FactError):
    """A fact with the same id was already recorded with a different payload."""

    code: str = "FACT_ALREADY_RECORDED"

    def __init__(self, fact_type: str, fact_id: str):
        self.fact_type = fact_type
        self.fact_id = fact_id
        super().__init__(f"{fact_type} {fact_id} already recorded with different values")


# Tenant


class TenantError(CylinderLedgerError):
    """Base exception for tenant resolution errors."""

    code: str = "TENANT_ERROR"


class InvalidTenantError(TenantError):
    """Tenant identifier is missing or malformed.  Fatal for the unit of work."""

    code: str = "INVALID_TENANT"

    def __init__(self, tenant_id: object):
        self.tenant_id = tenant_id
        super().__init__(f"Invalid tenant id: {tenant_id!r}")


# Reference data


class CatalogError(CylinderLedgerError):
    """Base exception for unknown catalog references."""

    code: str = "CATALOG_ERROR"


class ProductNotFoundError(CatalogError):
    """Product id unknown for the tenant."""

    code: str = "PRODUCT_NOT_FOUND"

    def __init__(self, tenant_id: str, product_id: str):
        self.tenant_id = tenant_id
        self.product_id = product_id
        super().__init__(f"Product {product_id} not found for tenant {tenant_id}")


class DriverNotFoundError(CatalogError):
    """Driver id unknown for the tenant."""

    code: str = "DRIVER_NOT_FOUND"

    def __init__(self, tenant_id: str, driver_id: str):
        self.tenant_id = tenant_id
        self.driver_id = driver_id
        super().__init__(f"Driver {driver_id} not found for tenant {tenant_id}")


class CylinderSizeNotFoundError(CatalogError):
    """Cylinder size id unknown for the tenant."""

    code: str = "CYLINDER_SIZE_NOT_FOUND"

    def __init__(self, tenant_id: str, cylinder_size_id: str):
        self.tenant_id = tenant_id
        self.cylinder_size_id = cylinder_size_id
        super().__init__(
            f"Cylinder size {cylinder_size_id} not found for tenant {tenant_id}"
        )


class CylinderSizeReferencedError(CatalogError):
    """Cylinder size is referenced by balance rows and cannot be hard-deleted."""

    code: str = "CYLINDER_SIZE_REFERENCED"

    def __init__(self, cylinder_size_id: str, balance_count: int):
        self.cylinder_size_id = cylinder_size_id
        self.balance_count = balance_count
        super().__init__(
            f"Cylinder size {cylinder_size_id} is referenced by "
            f"{balance_count} balance row(s); deactivate it instead"
        )


# Baselines


class BaselineError(CylinderLedgerError):
    """Base exception for driver size baseline errors."""

    code: str = "BASELINE_ERROR"


class BaselineAlreadyExistsError(BaselineError):
    """A baseline already exists for (tenant, driver, size)."""

    code: str = "BASELINE_ALREADY_EXISTS"

    def __init__(self, driver_id: str, cylinder_size_id: str):
        self.driver_id = driver_id
        self.cylinder_size_id = cylinder_size_id
        super().__init__(
            f"Baseline already exists for driver {driver_id}, size {cylinder_size_id}; "
            "use correct_baseline to replace it"
        )


class BaselineNotFoundError(BaselineError):
    """No baseline exists to correct."""

    code: str = "BASELINE_NOT_FOUND"

    def __init__(self, driver_id: str, cylinder_size_id: str):
        self.driver_id = driver_id
        self.cylinder_size_id = cylinder_size_id
        super().__init__(
            f"No baseline for driver {driver_id}, size {cylinder_size_id}"
        )


# Recompute coordination


class RecomputeError(CylinderLedgerError):
    """Base exception for recompute coordination errors."""

    code: str = "RECOMPUTE_ERROR"


class RecomputeLockTimeoutError(RecomputeError):
    """Another recompute held the unit's key past the lock timeout."""

    code: str = "RECOMPUTE_LOCK_TIMEOUT"

    def __init__(self, unit_key: str, timeout_seconds: float):
        self.unit_key = unit_key
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Could not acquire recompute lock for {unit_key} "
            f"within {timeout_seconds:.1f}s"
        )
