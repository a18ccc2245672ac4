"""
Tests for cylinder_engines.receivables.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

from cylinder_engines.receivables import (
    PriorReceivable,
    ReceivablePriorSource,
    StoredReceivable,
    compute_receivable_day,
    resolve_receivable_prior,
)
from cylinder_kernel.domain.anomalies import AnomalyKind
from cylinder_kernel.domain.facts import SaleEvent, SaleType

TENANT = "acme"
DRIVER = uuid4()
DAY = date(2024, 3, 2)


def _sale(quantity, unit_price, sale_type=SaleType.REFILL, cash="0", cylinders=0, discount="0"):
    return SaleEvent(
        sale_id=uuid4(),
        tenant_id=TENANT,
        driver_id=DRIVER,
        product_id=uuid4(),
        sale_type=sale_type,
        quantity=quantity,
        unit_price=Decimal(unit_price),
        sale_date=datetime(2024, 3, 2, 9, 30, tzinfo=timezone.utc),
        discount=Decimal(discount),
        cash_deposited=Decimal(cash),
        cylinders_deposited=cylinders,
    )


def _row(day, opening=("0", 0), closing=("0", 0), anchor=False):
    return StoredReceivable(
        balance_date=day,
        opening_cash=Decimal(opening[0]),
        opening_cylinders=opening[1],
        closing_cash=Decimal(closing[0]),
        closing_cylinders=closing[1],
        is_onboarding_anchor=anchor,
    )


def _compute(prior, sales):
    return compute_receivable_day(
        tenant_id=TENANT, driver_id=DRIVER, balance_date=DAY, prior=prior, sales=sales
    )


class TestReceivableDay:

    def test_cash_and_cylinders_layer_on_prior(self):
        prior = PriorReceivable(Decimal("1000"), 5, ReceivablePriorSource.PREVIOUS_BALANCE)
        result = _compute(prior, [
            _sale(3, "1200", cash="2000", cylinders=1),
            _sale(1, "500", sale_type=SaleType.PACKAGE),
        ])
        assert result.opening_cash == Decimal("1000")
        assert result.cash_change == Decimal("2100")
        assert result.closing_cash == Decimal("3100")
        # Package sales do not create a cylinder debt.
        assert result.cylinder_change == 2
        assert result.closing_cylinders == 7
        assert result.anomalies == ()

    def test_discount_reduces_cash_owed(self):
        result = _compute(PriorReceivable.zero(), [_sale(2, "100", discount="30")])
        assert result.closing_cash == Decimal("170")

    def test_no_sales_carries_prior(self):
        prior = PriorReceivable(Decimal("250.50"), 3, ReceivablePriorSource.PREVIOUS_BALANCE)
        result = _compute(prior, [])
        assert result.closing_cash == Decimal("250.50")
        assert result.closing_cylinders == 3
        assert result.cash_change == Decimal("0")

    def test_negative_closing_is_stored_and_reported(self):
        prior = PriorReceivable(Decimal("100"), 1, ReceivablePriorSource.PREVIOUS_BALANCE)
        result = _compute(prior, [_sale(1, "100", cash="500", cylinders=4)])
        assert result.closing_cash == Decimal("-300")
        assert result.closing_cylinders == -2
        (anomaly,) = result.anomalies
        assert anomaly.kind == AnomalyKind.NEGATIVE_RECEIVABLE
        assert anomaly.context["driver_id"] == DRIVER


class TestReceivablePrior:

    def test_anchor_uses_its_own_opening(self):
        anchor = _row(DAY, opening=("500", 4), closing=("900", 6), anchor=True)
        earlier = _row(date(2024, 2, 1), closing=("77", 1))
        prior = resolve_receivable_prior(
            balance_date=DAY, existing=anchor, latest_before=earlier, earliest=earlier
        )
        assert prior == PriorReceivable(Decimal("500"), 4, ReceivablePriorSource.ONBOARDING_ANCHOR)

    def test_non_anchor_existing_row_is_recomputed_from_history(self):
        existing = _row(DAY, opening=("500", 4), closing=("900", 6))
        earlier = _row(date(2024, 3, 1), closing=("120", 2))
        prior = resolve_receivable_prior(
            balance_date=DAY, existing=existing, latest_before=earlier, earliest=earlier
        )
        assert prior.cash == Decimal("120")
        assert prior.cylinders == 2
        assert prior.source == ReceivablePriorSource.PREVIOUS_BALANCE

    def test_earliest_opening_when_nothing_before(self):
        first = _row(date(2024, 3, 5), opening=("40", 1), closing=("90", 3))
        prior = resolve_receivable_prior(
            balance_date=DAY, existing=None, latest_before=None, earliest=first
        )
        assert prior == PriorReceivable(Decimal("40"), 1, ReceivablePriorSource.EARLIEST_OPENING)

    def test_zero_without_history(self):
        prior = resolve_receivable_prior(
            balance_date=DAY, existing=None, latest_before=None, earliest=None
        )
        assert prior == PriorReceivable.zero()


def test_worked_example_partial_cash_and_cylinder_returns():
    prior = PriorReceivable(Decimal("1500.50"), 25, ReceivablePriorSource.PREVIOUS_BALANCE)
    sales = [
        _sale(10, "150", cash="1200", cylinders=5, discount="50"),
        _sale(1, "500", sale_type=SaleType.PACKAGE, cash="600", cylinders=3),
    ]
    result = _compute(prior, sales)
    assert result.cash_change == Decimal("150")
    assert result.closing_cash == Decimal("1650.50")
    assert result.cylinder_change == 2
    assert result.closing_cylinders == 27
