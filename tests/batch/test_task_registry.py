"""
Tests for TaskRegistry and the default ledger tasks.
"""

from datetime import date

import pytest

from cylinder_batch.tasks import (
    ReceivablesRecomputeTask,
    RecomputeTask,
    StockRecomputeTask,
    TaskRegistry,
    default_task_registry,
)
from cylinder_kernel.exceptions import InvalidTenantError


class TestTaskRegistry:

    def test_register_and_get(self):
        registry = TaskRegistry()
        task = StockRecomputeTask()
        registry.register(task)
        assert registry.get("ledger.stock") is task
        assert "ledger.stock" in registry
        assert len(registry) == 1

    def test_duplicate_rejected(self):
        registry = TaskRegistry()
        registry.register(StockRecomputeTask())
        with pytest.raises(ValueError, match="already registered"):
            registry.register(StockRecomputeTask())

    def test_missing_task(self):
        with pytest.raises(KeyError, match="No task registered"):
            TaskRegistry().get("ledger.unknown")

    def test_default_order_is_stock_then_receivables(self):
        registry = default_task_registry()
        assert registry.list_tasks() == ("ledger.stock", "ledger.receivables")

    def test_tasks_satisfy_protocol(self):
        assert isinstance(StockRecomputeTask(), RecomputeTask)
        assert isinstance(ReceivablesRecomputeTask(), RecomputeTask)


class TestPrepareUnits:

    def test_stock_task_has_one_unit_per_tenant(self, session):
        (unit,) = StockRecomputeTask().prepare_units("acme", date(2024, 3, 1), session)
        assert unit.unit_key == "stock:acme:2024-03-01"
        assert unit.tenant_id == "acme"

    def test_receivables_task_has_one_unit_per_active_driver(self, session, catalog):
        units = ReceivablesRecomputeTask().prepare_units("acme", date(2024, 3, 1), session)
        assert len(units) == 2
        assert [u.unit_index for u in units] == [0, 1]
        assert {u.payload["driver_id"] for u in units} == {
            str(d) for d in catalog.drivers.values()
        }
        assert all(u.unit_key.startswith("receivable:acme:") for u in units)

    def test_invalid_tenant(self, session):
        with pytest.raises(InvalidTenantError):
            StockRecomputeTask().prepare_units("no spaces allowed", date(2024, 3, 1), session)
