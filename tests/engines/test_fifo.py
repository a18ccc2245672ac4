"""
Tests for cylinder_engines.fifo -- FIFO cost of goods sold.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from cylinder_engines.fifo import compute_fifo
from cylinder_kernel.domain.anomalies import AnomalyKind
from cylinder_kernel.domain.facts import (
    SaleEvent,
    SaleType,
    ShipmentBatch,
    ShipmentStatus,
    ShipmentType,
)

TENANT = "acme"
PRODUCT = uuid4()
DRIVER_A = uuid4()
DRIVER_B = uuid4()
START = datetime(2024, 1, 1, 8, 0, tzinfo=timezone.utc)
AS_OF = datetime(2024, 2, 1, tzinfo=timezone.utc)


def _batch(day_offset, quantity, unit_cost, status=ShipmentStatus.COMPLETED,
           shipment_type=ShipmentType.INCOMING_FULL):
    return ShipmentBatch(
        shipment_id=uuid4(),
        tenant_id=TENANT,
        product_id=PRODUCT,
        shipment_type=shipment_type,
        quantity=quantity,
        shipment_date=START + timedelta(days=day_offset),
        status=status,
        unit_cost=Decimal(unit_cost) if unit_cost is not None else None,
    )


def _sale(day_offset, quantity, unit_price="1500", sale_type=SaleType.REFILL, driver_id=DRIVER_A):
    return SaleEvent(
        sale_id=uuid4(),
        tenant_id=TENANT,
        driver_id=driver_id,
        product_id=PRODUCT,
        sale_type=sale_type,
        quantity=quantity,
        unit_price=Decimal(unit_price),
        sale_date=START + timedelta(days=day_offset, hours=4),
    )


def _fifo(shipments, sales, **kwargs):
    kwargs.setdefault("as_of", AS_OF)
    return compute_fifo(
        tenant_id=TENANT, product_id=PRODUCT, shipments=shipments, sales=sales, **kwargs
    )


@pytest.fixture
def three_batches():
    return [_batch(0, 100, "1000"), _batch(1, 50, "1050"), _batch(2, 75, "980")]


class TestFifoCost:

    def test_oldest_batches_consumed_first(self, three_batches):
        result = _fifo(three_batches, [_sale(3, 30), _sale(4, 80), _sale(5, 40)])
        assert result.total_cogs == Decimal("152500")
        assert result.units_sold == 150
        assert result.units_matched == 150
        assert result.average_buying_price == Decimal("1016.67")
        assert result.remaining_units == 75
        (remaining,) = result.remaining_batches
        assert remaining.unit_cost == Decimal("980")
        assert result.remaining_inventory_value == Decimal("73500")
        assert result.anomalies == ()

    def test_selling_price_and_revenue(self, three_batches):
        result = _fifo(three_batches, [_sale(3, 10, "1500"), _sale(4, 10, "1700")])
        assert result.total_sales_revenue == Decimal("32000")
        assert result.average_selling_price == Decimal("1600.00")

    def test_batches_without_cost_or_not_completed_are_skipped(self):
        shipments = [
            _batch(0, 10, None),
            _batch(0, 10, "900", status=ShipmentStatus.PENDING),
            _batch(0, 10, "900", shipment_type=ShipmentType.INCOMING_EMPTY),
            _batch(1, 10, "1000"),
        ]
        result = _fifo(shipments, [_sale(2, 4)])
        assert result.total_cogs == Decimal("4000")
        assert result.remaining_units == 6

    def test_batches_after_as_of_are_ignored(self, three_batches):
        late = _batch(40, 100, "10")
        result = _fifo(three_batches + [late], [_sale(3, 10)])
        assert result.remaining_units == 215
        assert all(b.shipment_id != late.shipment_id for b in result.remaining_batches)

    def test_shortfall_costs_zero_and_is_reported(self):
        result = _fifo([_batch(0, 5, "1000")], [_sale(1, 8)])
        assert result.units_sold == 8
        assert result.units_matched == 5
        assert result.shortfall_units == 3
        assert result.total_cogs == Decimal("5000")
        (anomaly,) = result.anomalies
        assert anomaly.kind == AnomalyKind.INSUFFICIENT_INVENTORY
        assert anomaly.context["shortfall_units"] == 3

    def test_no_sales(self, three_batches):
        result = _fifo(three_batches, [])
        assert result.total_cogs == Decimal("0")
        assert result.average_buying_price == Decimal("0")
        assert result.remaining_units == 225


class TestReportingWindow:

    def test_filtered_sales_still_consume_batches(self, three_batches):
        sales = [
            _sale(3, 100, sale_type=SaleType.PACKAGE),
            _sale(4, 20, sale_type=SaleType.REFILL),
        ]
        result = _fifo(three_batches, sales, sale_type=SaleType.REFILL)
        # The package sale used up the 1000 batch.
        assert result.units_sold == 20
        assert result.total_cogs == Decimal("21000")

    def test_since_excludes_earlier_sales_from_totals(self, three_batches):
        sales = [_sale(3, 100), _sale(10, 10)]
        result = _fifo(three_batches, sales, since=START + timedelta(days=5))
        assert result.units_sold == 10
        assert result.total_cogs == Decimal("10500")

    def test_driver_filter(self, three_batches):
        sales = [_sale(3, 40, driver_id=DRIVER_A), _sale(3, 20, driver_id=DRIVER_B)]
        result = _fifo(three_batches, sales, driver_id=DRIVER_B)
        assert result.units_sold == 20
        assert result.total_cogs == Decimal("20000")

    def test_later_batch_cannot_change_earlier_cost(self, three_batches):
        sales = [_sale(3, 120)]
        before = _fifo(three_batches, sales)
        after = _fifo(three_batches + [_batch(20, 500, "1")], sales)
        assert before.total_cogs == after.total_cogs

    def test_sales_after_as_of_are_ignored(self, three_batches):
        result = _fifo(three_batches, [_sale(3, 10), _sale(45, 90)])
        assert result.units_sold == 10

    def test_later_batch_cannot_cover_earlier_shortfall(self):
        sales = [_sale(1, 8)]
        before = _fifo([_batch(0, 5, "1000")], sales)
        after = _fifo([_batch(0, 5, "1000"), _batch(10, 100, "1")], sales)

        assert after.total_cogs == before.total_cogs == Decimal("5000")
        assert after.shortfall_units == before.shortfall_units == 3
        (anomaly,) = after.anomalies
        assert anomaly.kind == AnomalyKind.INSUFFICIENT_INVENTORY
        assert after.remaining_units == 100

    def test_sale_before_first_batch_is_unmatched(self):
        result = _fifo([_batch(2, 10, "1000")], [_sale(1, 4), _sale(3, 4)])
        assert result.units_matched == 4
        assert result.shortfall_units == 4
        assert result.total_cogs == Decimal("4000")
        assert result.remaining_units == 6


class TestTrace:

    def test_fingerprint_covers_facts(self, three_batches, captured_logs):
        _fifo(three_batches, [_sale(3, 10)])
        _fifo(three_batches, [_sale(3, 11)])
        _fifo(three_batches[:1], [_sale(3, 10)])

        fingerprints = [
            r["input_fingerprint"]
            for r in captured_logs()
            if r["message"] == "CYLINDER_ENGINE_TRACE" and r["engine_name"] == "fifo_cost"
        ]
        assert len(fingerprints) == 3
        assert len(set(fingerprints)) == 3
