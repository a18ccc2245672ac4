"""
Shipment availability checks through ReconciliationService.

Outgoing fulls are checked against the product's current full stock;
outgoing empties and refill purchases against the empty stock of the
product's size.
"""

from datetime import datetime, timezone
from uuid import uuid4

import pytest

from cylinder_engines.availability import StockKind
from cylinder_kernel.domain.facts import ShipmentLine, ShipmentType
from cylinder_kernel.exceptions import FactValidationError, ProductNotFoundError
from cylinder_services import ReconciliationService


def at(day, hour=10):
    return datetime(day.year, day.month, day.day, hour, 0, tzinfo=timezone.utc)


@pytest.fixture
def ledger(session, settings, deterministic_clock):
    return ReconciliationService(session, settings=settings, clock=deterministic_clock)


@pytest.fixture
def stocked(ledger, catalog, facts, day):
    """12kg: 10 full, 4 empty.  6kg: nothing recorded."""
    p12 = catalog.products["12kg"]
    facts.shipment("acme", p12, at(day), 10)
    facts.opening_empty("acme", catalog.sizes["12kg"], day, 4)
    ledger.recompute_stock("acme", day)
    return p12


class TestOutgoingFull:

    def test_covered(self, ledger, stocked):
        result = ledger.check_shipment_availability(
            "acme", ShipmentType.OUTGOING_FULL, [ShipmentLine(stocked, 6)]
        )
        assert result.is_valid
        assert result.warnings == ()
        (line,) = result.lines
        assert line.stock_kind == StockKind.FULL
        assert line.required == 6
        assert line.available == 10

    def test_insufficient(self, ledger, stocked, captured_logs):
        result = ledger.check_shipment_availability(
            "acme", ShipmentType.OUTGOING_FULL, [ShipmentLine(stocked, 12)]
        )
        assert not result.is_valid
        (error,) = result.errors
        assert "Insufficient full cylinders of Northgas 12kg" in error
        assert "Required: 12, Available: 10" in error
        assert any(r["message"] == "shipment_stock_insufficient" for r in captured_logs())

    def test_using_everything_warns(self, ledger, stocked):
        result = ledger.check_shipment_availability(
            "acme", "outgoing_full", [ShipmentLine(stocked, 10)]
        )
        assert result.is_valid
        (warning,) = result.warnings
        assert "Using all available full cylinders of Northgas 12kg" in warning

    def test_nothing_recorded(self, ledger, catalog, stocked):
        result = ledger.check_shipment_availability(
            "acme", ShipmentType.OUTGOING_FULL, [ShipmentLine(catalog.products["6kg"], 1)]
        )
        (error,) = result.errors
        assert error.startswith("No full cylinders of Northgas 6kg available")

    def test_lines_on_same_product_share_stock(self, ledger, stocked):
        result = ledger.check_shipment_availability(
            "acme",
            ShipmentType.OUTGOING_FULL,
            [ShipmentLine(stocked, 7), ShipmentLine(stocked, 7)],
        )
        assert [line.available for line in result.lines] == [10, 3]
        assert [line.sufficient for line in result.lines] == [True, False]
        assert len(result.errors) == 1


class TestEmptyStock:

    @pytest.mark.parametrize(
        "shipment_type", [ShipmentType.OUTGOING_EMPTY, ShipmentType.INCOMING_FULL]
    )
    def test_checked_against_size_empties(self, ledger, catalog, stocked, shipment_type):
        result = ledger.check_shipment_availability(
            "acme", shipment_type, [ShipmentLine(stocked, 5)]
        )
        (line,) = result.lines
        assert line.stock_kind == StockKind.EMPTY
        assert line.cylinder_size_id == catalog.sizes["12kg"]
        assert line.available == 4
        (error,) = result.errors
        assert "empty cylinders of size 12kg" in error

    def test_incoming_empty_needs_nothing(self, ledger, catalog, stocked):
        result = ledger.check_shipment_availability(
            "acme", ShipmentType.INCOMING_EMPTY, [ShipmentLine(catalog.products["6kg"], 50)]
        )
        assert result.is_valid
        (line,) = result.lines
        assert line.stock_kind is None
        assert line.available is None


class TestRejectedInput:

    def test_unknown_product(self, ledger, catalog):
        with pytest.raises(ProductNotFoundError):
            ledger.check_shipment_availability(
                "acme", ShipmentType.OUTGOING_FULL, [ShipmentLine(uuid4(), 1)]
            )

    def test_unknown_shipment_type(self, ledger, stocked):
        with pytest.raises(ValueError):
            ledger.check_shipment_availability("acme", "sideways", [ShipmentLine(stocked, 1)])

    def test_line_quantity_must_be_positive(self, catalog):
        with pytest.raises(FactValidationError):
            ShipmentLine(catalog.products["12kg"], 0)

    def test_check_does_not_write(self, ledger, session, stocked):
        ledger.check_shipment_availability(
            "acme", ShipmentType.OUTGOING_FULL, [ShipmentLine(stocked, 3)]
        )
        assert not session.new
        assert not session.dirty
        assert ledger.get_current_stock_levels("acme", stocked).full_quantity == 10
