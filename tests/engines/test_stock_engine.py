"""
Tests for cylinder_engines.stock -- daily full and empty stock calculation.

Pure engine tests; no database.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from cylinder_engines.stock import (
    PriorBalance,
    PriorSource,
    ProductRef,
    compute_stock_day,
    resolve_prior,
)
from cylinder_kernel.domain.anomalies import AnomalyKind
from cylinder_kernel.domain.facts import (
    SaleEvent,
    SaleType,
    ShipmentBatch,
    ShipmentStatus,
    ShipmentType,
)

TENANT = "acme"
DAY = date(2024, 3, 1)
WHEN = datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc)


def _sale(product_id, quantity, sale_type=SaleType.REFILL):
    return SaleEvent(
        sale_id=uuid4(),
        tenant_id=TENANT,
        driver_id=uuid4(),
        product_id=product_id,
        sale_type=sale_type,
        quantity=quantity,
        unit_price=Decimal("100"),
        sale_date=WHEN,
    )


def _shipment(product_id, quantity, shipment_type=ShipmentType.INCOMING_FULL,
              status=ShipmentStatus.COMPLETED):
    return ShipmentBatch(
        shipment_id=uuid4(),
        tenant_id=TENANT,
        product_id=product_id,
        shipment_type=shipment_type,
        quantity=quantity,
        shipment_date=WHEN,
        status=status,
    )


@pytest.fixture
def size_id():
    return uuid4()


@pytest.fixture
def product(size_id):
    return ProductRef(product_id=uuid4(), cylinder_size_id=size_id)


def _run(product, size_id, *, full_prior=None, empty_prior=None, sales=(), shipments=(),
         materialize_idle=False):
    full_priors = {product.product_id: full_prior} if full_prior else {}
    empty_priors = {size_id: empty_prior} if empty_prior else {}
    return compute_stock_day(
        tenant_id=TENANT,
        balance_date=DAY,
        products=[product],
        active_size_ids=[size_id],
        full_priors=full_priors,
        empty_priors=empty_priors,
        sales=list(sales),
        shipments=list(shipments),
        materialize_idle=materialize_idle,
    )


class TestResolvePrior:

    def test_previous_day_wins(self):
        prior = resolve_prior(
            previous_day=12,
            latest_older=(date(2024, 2, 20), 40),
            opening_stock=(date(2024, 2, 28), 99),
        )
        assert prior == PriorBalance(12, PriorSource.PREVIOUS_DAY)

    def test_opening_stock_when_no_history(self):
        prior = resolve_prior(
            previous_day=None, latest_older=None, opening_stock=(date(2024, 2, 1), 30)
        )
        assert prior.quantity == 30
        assert prior.source == PriorSource.OPENING_STOCK

    def test_opening_stock_after_last_row_supersedes_it(self):
        prior = resolve_prior(
            previous_day=None,
            latest_older=(date(2024, 2, 10), 40),
            opening_stock=(date(2024, 2, 15), 25),
        )
        assert prior.source == PriorSource.OPENING_STOCK
        assert prior.quantity == 25
        assert not prior.is_gap

    def test_gap_restarts_from_zero_by_default(self):
        prior = resolve_prior(
            previous_day=None,
            latest_older=(date(2024, 2, 10), 40),
            opening_stock=(date(2024, 1, 1), 25),
        )
        assert prior == PriorBalance(0, PriorSource.GAP, date(2024, 2, 10))
        assert prior.is_gap

    def test_gap_carried_forward_when_enabled(self):
        prior = resolve_prior(
            previous_day=None,
            latest_older=(date(2024, 2, 10), 40),
            opening_stock=None,
            carry_forward_across_gaps=True,
        )
        assert prior.quantity == 40
        assert prior.source == PriorSource.CARRIED_ACROSS_GAP

    def test_nothing_known(self):
        prior = resolve_prior(previous_day=None, latest_older=None, opening_stock=None)
        assert not prior.has_history
        assert prior.quantity == 0


class TestFullStock:

    def test_prior_plus_purchases_minus_sales(self, product, size_id):
        result = _run(
            product,
            size_id,
            full_prior=PriorBalance(50, PriorSource.PREVIOUS_DAY),
            sales=[_sale(product.product_id, 30)],
            shipments=[_shipment(product.product_id, 20)],
        )
        (line,) = result.full_lines
        assert line.opening_full == 50
        assert line.purchases_qty == 20
        assert line.sales_qty == 30
        assert line.closing_full == 40
        assert result.anomalies == ()

    def test_package_and_refill_sales_both_reduce_full_stock(self, product, size_id):
        result = _run(
            product,
            size_id,
            full_prior=PriorBalance(10, PriorSource.PREVIOUS_DAY),
            sales=[
                _sale(product.product_id, 2, SaleType.PACKAGE),
                _sale(product.product_id, 3, SaleType.REFILL),
            ],
        )
        assert result.full_lines[0].closing_full == 5

    def test_outgoing_full_shipment_is_netted_from_purchases(self, product, size_id):
        result = _run(
            product,
            size_id,
            full_prior=PriorBalance(10, PriorSource.PREVIOUS_DAY),
            shipments=[
                _shipment(product.product_id, 8),
                _shipment(product.product_id, 3, ShipmentType.OUTGOING_FULL),
            ],
        )
        assert result.full_lines[0].purchases_qty == 5
        assert result.full_lines[0].closing_full == 15

    def test_pending_and_cancelled_shipments_are_ignored(self, product, size_id):
        result = _run(
            product,
            size_id,
            full_prior=PriorBalance(10, PriorSource.PREVIOUS_DAY),
            shipments=[
                _shipment(product.product_id, 8, status=ShipmentStatus.PENDING),
                _shipment(product.product_id, 4, status=ShipmentStatus.CANCELLED),
            ],
        )
        assert result.full_lines[0].purchases_qty == 0
        assert result.full_lines[0].closing_full == 10

    def test_negative_closing_is_clamped_and_reported(self, product, size_id):
        result = _run(
            product,
            size_id,
            full_prior=PriorBalance(5, PriorSource.PREVIOUS_DAY),
            sales=[_sale(product.product_id, 8, SaleType.PACKAGE)],
        )
        (line,) = result.full_lines
        assert line.closing_full == 0
        assert line.unclamped_closing_full == -3
        kinds = [a.kind for a in result.anomalies]
        assert kinds == [AnomalyKind.STOCK_SHORTFALL]
        assert result.anomalies[0].context["unclamped_closing"] == -3

    def test_gap_prior_is_reported(self, product, size_id):
        result = _run(
            product,
            size_id,
            full_prior=PriorBalance(0, PriorSource.GAP, date(2024, 2, 20)),
        )
        assert result.full_lines[0].opening_full == 0
        assert [a.kind for a in result.anomalies] == [AnomalyKind.LEDGER_GAP]
        assert result.anomalies[0].context["last_balance_date"] == date(2024, 2, 20)

    def test_idle_key_is_not_materialized(self, product, size_id):
        result = _run(product, size_id)
        assert result.full_lines == ()
        assert result.empty_lines == ()

    def test_idle_key_materialized_on_request(self, product, size_id):
        result = _run(product, size_id, materialize_idle=True)
        assert result.full_lines[0].closing_full == 0
        assert result.empty_lines[0].closing_empty == 0

    def test_inactive_product_has_no_line_but_feeds_its_size(self, size_id):
        inactive = ProductRef(product_id=uuid4(), cylinder_size_id=size_id, is_active=False)
        result = _run(inactive, size_id, sales=[_sale(inactive.product_id, 4)])
        assert result.full_lines == ()
        assert result.empty_lines[0].refill_sales_qty == 4


class TestEmptyStock:

    def test_refills_bring_empties_back(self, product, size_id):
        result = _run(
            product,
            size_id,
            empty_prior=PriorBalance(7, PriorSource.PREVIOUS_DAY),
            sales=[
                _sale(product.product_id, 3, SaleType.REFILL),
                _sale(product.product_id, 2, SaleType.PACKAGE),
            ],
        )
        (line,) = result.empty_lines
        assert line.refill_sales_qty == 3
        assert line.closing_empty == 10

    def test_empty_buy_and_sell_net_out(self, product, size_id):
        result = _run(
            product,
            size_id,
            empty_prior=PriorBalance(10, PriorSource.PREVIOUS_DAY),
            shipments=[
                _shipment(product.product_id, 6, ShipmentType.INCOMING_EMPTY),
                _shipment(product.product_id, 9, ShipmentType.OUTGOING_EMPTY),
            ],
        )
        (line,) = result.empty_lines
        assert line.empty_net_buy_sell == -3
        assert line.closing_empty == 7

    def test_selling_more_empties_than_held_clamps(self, product, size_id):
        result = _run(
            product,
            size_id,
            empty_prior=PriorBalance(2, PriorSource.PREVIOUS_DAY),
            shipments=[_shipment(product.product_id, 5, ShipmentType.OUTGOING_EMPTY)],
        )
        (line,) = result.empty_lines
        assert line.closing_empty == 0
        assert line.unclamped_closing_empty == -3
        assert result.anomalies[0].kind == AnomalyKind.STOCK_SHORTFALL
        assert result.anomalies[0].context["ledger"] == "empty_stock"

    def test_no_activity_carries_closing_forward(self, product, size_id):
        result = _run(
            product,
            size_id,
            full_prior=PriorBalance(33, PriorSource.PREVIOUS_DAY),
            empty_prior=PriorBalance(14, PriorSource.PREVIOUS_DAY),
        )
        assert result.full_lines[0].closing_full == 33
        assert result.empty_lines[0].closing_empty == 14
