"""
Daily stock ledger through ReconciliationService.

Covers prior resolution against stored rows, gap handling, opening stock,
idempotent recompute and the current-level read path.
"""

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from cylinder_config import LedgerSettings, StockSettings
from cylinder_kernel.domain.anomalies import AnomalyKind
from cylinder_kernel.domain.facts import OpeningStock, SaleType, ShipmentType
from cylinder_kernel.exceptions import InvalidTenantError, ProductNotFoundError
from cylinder_kernel.models.balances import EmptyStockBalanceModel, StockBalanceModel
from cylinder_services import ReconciliationService


def at(day, hour=10):
    return datetime(day.year, day.month, day.day, hour, 0, tzinfo=timezone.utc)


@pytest.fixture
def ledger(session, settings, deterministic_clock):
    return ReconciliationService(session, settings=settings, clock=deterministic_clock)


def _full_line(result, product_id):
    return next(line for line in result.full if line.product_id == product_id)


def _empty_line(result, size_id):
    return next(line for line in result.empty if line.cylinder_size_id == size_id)


class TestStockRecompute:

    def test_day_over_day_chain(self, ledger, catalog, facts, day, next_day, test_actor_id):
        p12 = catalog.products["12kg"]
        driver = catalog.drivers["alice"]
        ledger.record_opening_stock(
            OpeningStock(tenant_id="acme", balance_date=day, quantity=50, product_id=p12),
            test_actor_id,
        )
        ledger.recompute_stock("acme", day)

        facts.shipment("acme", p12, at(next_day, 7), 20)
        facts.sale("acme", driver, p12, at(next_day, 11), 30)
        result = ledger.recompute_stock("acme", next_day)

        line = _full_line(result, p12)
        assert line.opening_full == 50
        assert line.purchases_qty == 20
        assert line.sales_qty == 30
        assert line.closing_full == 40

    def test_refills_and_empty_shipments_move_empty_stock(
        self, ledger, catalog, facts, day, test_actor_id
    ):
        p12 = catalog.products["12kg"]
        s12 = catalog.sizes["12kg"]
        facts.opening_empty("acme", s12, day, 10)
        facts.sale("acme", catalog.drivers["alice"], p12, at(day), 4, SaleType.REFILL)
        facts.sale("acme", catalog.drivers["bob"], p12, at(day), 2, SaleType.PACKAGE)
        facts.shipment("acme", p12, at(day, 15), 6, ShipmentType.OUTGOING_EMPTY)

        result = ledger.recompute_stock("acme", day)

        line = _empty_line(result, s12)
        assert line.opening_empty == 10
        assert line.refill_sales_qty == 4
        assert line.empty_net_buy_sell == -6
        assert line.closing_empty == 8

    def test_recompute_is_idempotent(self, ledger, session, catalog, facts, day):
        p12 = catalog.products["12kg"]
        facts.shipment("acme", p12, at(day), 12)
        first = ledger.recompute_stock("acme", day)
        second = ledger.recompute_stock("acme", day)

        assert first.full == second.full
        assert first.empty == second.empty
        rows = session.execute(
            select(func.count()).select_from(StockBalanceModel).where(
                StockBalanceModel.product_id == p12,
                StockBalanceModel.balance_date == day,
            )
        ).scalar_one()
        assert rows == 1

    def test_late_fact_is_picked_up_on_recompute(self, ledger, catalog, facts, day):
        p12 = catalog.products["12kg"]
        facts.shipment("acme", p12, at(day), 12)
        assert _full_line(ledger.recompute_stock("acme", day), p12).closing_full == 12

        facts.sale("acme", catalog.drivers["alice"], p12, at(day, 18), 5)
        assert _full_line(ledger.recompute_stock("acme", day), p12).closing_full == 7

    def test_clamped_shortfall_keeps_unclamped_value(self, ledger, catalog, facts, day):
        p6 = catalog.products["6kg"]
        facts.shipment("acme", p6, at(day, 6), 2)
        facts.sale("acme", catalog.drivers["bob"], p6, at(day), 5, SaleType.PACKAGE)

        result = ledger.recompute_stock("acme", day)

        line = _full_line(result, p6)
        assert line.closing_full == 0
        assert line.unclamped_closing_full == -3
        assert AnomalyKind.STOCK_SHORTFALL in {a.kind for a in result.anomalies}

    def test_idle_keys_skipped_unless_requested(self, ledger, catalog, day):
        assert ledger.recompute_stock("acme", day).full == ()
        materialized = ledger.recompute_stock("acme", day, materialize_idle=True)
        assert {line.product_id for line in materialized.full} == set(catalog.products.values())
        assert all(line.closing_full == 0 for line in materialized.full)

    def test_invalid_tenant_rejected(self, ledger, day):
        with pytest.raises(InvalidTenantError):
            ledger.recompute_stock("", day)


class TestGaps:

    def test_missing_day_restarts_from_zero(self, ledger, catalog, facts, day):
        p12 = catalog.products["12kg"]
        facts.shipment("acme", p12, at(day), 40)
        ledger.recompute_stock("acme", day)

        later = day + timedelta(days=2)
        result = ledger.recompute_stock("acme", later)

        line = _full_line(result, p12)
        assert line.opening_full == 0
        gaps = [a for a in result.anomalies if a.kind == AnomalyKind.LEDGER_GAP]
        assert gaps
        assert gaps[0].context["last_balance_date"] == day

    def test_missing_day_carried_when_configured(
        self, session, catalog, facts, day, deterministic_clock
    ):
        settings = replace(LedgerSettings(), stock=StockSettings(carry_forward_across_gaps=True))
        ledger = ReconciliationService(session, settings=settings, clock=deterministic_clock)
        p12 = catalog.products["12kg"]
        facts.shipment("acme", p12, at(day), 40)
        ledger.recompute_stock("acme", day)

        result = ledger.recompute_stock("acme", day + timedelta(days=3))

        assert _full_line(result, p12).opening_full == 40
        assert AnomalyKind.LEDGER_GAP in {a.kind for a in result.anomalies}

    def test_opening_stock_after_last_balance_is_not_a_gap(
        self, ledger, catalog, facts, day, test_actor_id
    ):
        p12 = catalog.products["12kg"]
        facts.shipment("acme", p12, at(day), 40)
        ledger.recompute_stock("acme", day)

        recount_day = day + timedelta(days=4)
        ledger.record_opening_stock(
            OpeningStock(tenant_id="acme", balance_date=recount_day, quantity=25, product_id=p12),
            test_actor_id,
        )
        result = ledger.recompute_stock("acme", recount_day)

        assert _full_line(result, p12).opening_full == 25
        assert AnomalyKind.LEDGER_GAP not in {a.kind for a in result.anomalies}


class TestStockLevels:

    def test_nothing_recorded(self, ledger, catalog):
        levels = ledger.get_current_stock_levels("acme", catalog.products["12kg"])
        assert levels.full_quantity == 0
        assert levels.full_as_of is None
        assert levels.empty_quantity == 0
        assert levels.empty_as_of is None

    def test_latest_rows_are_reported(self, ledger, catalog, facts, day, next_day):
        p12 = catalog.products["12kg"]
        s12 = catalog.sizes["12kg"]
        facts.shipment("acme", p12, at(day), 30)
        facts.opening_empty("acme", s12, day, 9)
        ledger.recompute_stock("acme", day)
        facts.sale("acme", catalog.drivers["alice"], p12, at(next_day), 4)
        ledger.recompute_stock("acme", next_day)

        levels = ledger.get_current_stock_levels("acme", p12)
        assert levels.full_quantity == 26
        assert levels.full_as_of == next_day
        assert levels.empty_quantity == 13
        assert levels.cylinder_size_id == s12

    def test_unknown_product(self, ledger, catalog):
        with pytest.raises(ProductNotFoundError):
            ledger.get_current_stock_levels("acme", uuid4())

    def test_low_stock_threshold_is_inclusive(self, ledger, catalog, facts, day, captured_logs):
        p12 = catalog.products["12kg"]
        facts.shipment("acme", p12, at(day), 5)
        ledger.recompute_stock("acme", day)

        status = ledger.check_low_stock("acme", p12)

        assert status.is_low
        assert status.level == 5
        assert status.threshold == 5
        assert any(r["message"] == "low_stock_detected" for r in captured_logs())

    def test_stock_above_threshold(self, ledger, catalog, facts, day):
        p12 = catalog.products["12kg"]
        facts.shipment("acme", p12, at(day), 6)
        ledger.recompute_stock("acme", day)
        assert not ledger.check_low_stock("acme", p12).is_low


def test_empty_rows_are_keyed_by_size(ledger, session, catalog, facts, day):
    facts.sale("acme", catalog.drivers["alice"], catalog.products["6kg"], at(day), 3)
    ledger.recompute_stock("acme", day)
    sizes = session.execute(
        select(EmptyStockBalanceModel.cylinder_size_id).where(
            EmptyStockBalanceModel.balance_date == day
        )
    ).scalars().all()
    assert sizes == [catalog.sizes["6kg"]]
