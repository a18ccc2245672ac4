"""
cylinder_services -- Public facade over the cylinder ledgers.

Responsibility:
    Stateful orchestration that composes the pure engines
    (cylinder_engines/) with kernel services, selectors and settings.

Architecture position:
    Services -- the only layer that reads ``cylinder_config`` on behalf of
    callers.  cylinder_kernel and cylinder_engines never import from here.
"""

from cylinder_services.reconciliation_service import ReconciliationService

__all__ = ["ReconciliationService"]
