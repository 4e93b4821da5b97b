from datetime import datetime, timedelta

from conftest import make_sale

from sdm.domain.normalize import normalize_sale
from sdm.engines.profitability import (
    compute_period,
    daily_sales_values,
    margin_per_unit,
    month_bounds,
    month_label,
    monthly_benefits,
    monthly_paid_benefits,
    profit_margin,
    select_reporting_window,
    shift_month,
    supplier_cost_per_unit,
)

NOW = datetime(2024, 3, 15, 12, 0)


def test_ten_units_at_180_make_250_profit():
    sale = normalize_sale(
        {"id": "s1", "date": "2024-01-10T10:00:00", "supermarket_id": "m1", "quantity": 10, "price_per_unit": 180}
    )
    start, end = month_bounds(2024, 1)
    summary = compute_period([sale], start, end)
    assert summary.quantity == 10
    assert summary.revenue == 1800
    assert summary.profit == 250
    assert summary.supplier_payment == 1550
    assert summary.paid_profit == 0


def test_tier_terms_and_unknown_price():
    assert margin_per_unit(180) == 25
    assert margin_per_unit(166) == 17
    assert supplier_cost_per_unit(166) == 149
    assert margin_per_unit(200) == 0
    assert supplier_cost_per_unit(200) == 0


def test_paid_profit_needs_payment_inside_window():
    start, end = month_bounds(2024, 1)
    sales = [
        make_sale("paid-in", date=datetime(2024, 1, 5), is_paid=True, payment_date=datetime(2024, 1, 20)),
        make_sale("paid-later", date=datetime(2024, 1, 10), is_paid=True, payment_date=datetime(2024, 2, 3)),
        make_sale("open", date=datetime(2024, 1, 12)),
        make_sale("outside", date=datetime(2024, 2, 1), is_paid=True, payment_date=datetime(2024, 1, 31)),
    ]
    summary = compute_period(sales, start, end)
    assert summary.quantity == 270
    assert summary.profit == 3 * 2250
    assert summary.paid_profit == 2250


def test_window_bounds_are_inclusive():
    start, end = month_bounds(2024, 2)
    assert start == datetime(2024, 2, 1)
    assert end.date() == datetime(2024, 2, 29).date()
    edge = [make_sale("first", date=start), make_sale("last", date=datetime(2024, 2, 29, 23, 59))]
    assert compute_period(edge, start, end).quantity == 180


def test_window_is_current_month_when_nothing_is_unpaid():
    window = select_reporting_window([make_sale(date=datetime(2024, 3, 2), is_paid=True, payment_date=NOW)], NOW)
    assert window.label == "mois en cours"
    assert window.start == datetime(2024, 3, 1)
    assert window.end == datetime(2024, 3, 31, 23, 59, 59, 999000)
    assert window.data.profit == 2250
    assert window.data.paid_profit == 2250


def test_window_is_four_months_for_recent_debt():
    window = select_reporting_window([make_sale(date=datetime(2024, 3, 1))], NOW)
    assert window.label == "4 mois"
    assert window.start == datetime(2023, 12, 1)
    assert window.end == NOW
    assert window.aging.months_back == 1


def test_window_is_six_months_for_old_debt():
    window = select_reporting_window([make_sale(date=NOW - timedelta(days=185))], NOW)
    assert window.label == "6 mois"
    assert window.start == datetime(2023, 10, 1)


def test_shift_month_crosses_years():
    assert shift_month(2024, 1, -3) == (2023, 10)
    assert shift_month(2023, 11, 3) == (2024, 2)


def test_monthly_benefits_are_chronological():
    sales = [
        make_sale("feb", date=datetime(2024, 2, 3)),
        make_sale("jan-a", date=datetime(2024, 1, 5)),
        make_sale("jan-b", date=datetime(2024, 1, 25), cartons=1, price=166),
    ]
    rows = monthly_benefits(sales)
    assert [r.month for r in rows] == ["Janvier 2024", "Février 2024"]
    assert rows[0].quantity == 99
    assert rows[0].net_benefit == 2250 + 9 * 17
    assert rows[1].value == 16200


def test_monthly_paid_benefits_use_payment_month():
    sales = [
        make_sale("a", date=datetime(2024, 1, 5), is_paid=True, payment_date=datetime(2024, 3, 1)),
        make_sale("b", date=datetime(2024, 1, 6)),
    ]
    rows = monthly_paid_benefits(sales)
    assert len(rows) == 1
    assert rows[0].month == month_label(datetime(2024, 3, 1)) == "Mars 2024"
    assert rows[0].net_benefit == 2250


def test_last_seven_days_series():
    series = daily_sales_values([make_sale(date=datetime(2024, 3, 15, 8)), make_sale(date=datetime(2024, 3, 1))], 7, NOW)
    assert len(series) == 7
    assert series[0] == ("2024-03-09", 0)
    assert series[-1] == ("2024-03-15", 16200)


def test_profit_margin_handles_zero_revenue():
    assert profit_margin(0, 0) == 0.0
    assert profit_margin(250, 1000) == 25.0


def test_profitability_engines_are_repeatable():
    sales = [
        make_sale("s1", date=datetime(2024, 1, 10), cartons=2),
        make_sale("s2", date=datetime(2024, 3, 1), cartons=1, price=166, is_paid=True, payment_date=datetime(2024, 3, 2)),
    ]
    snapshot = list(sales)
    start, end = month_bounds(2024, 3)

    assert compute_period(sales, start, end) == compute_period(sales, start, end)
    assert select_reporting_window(sales, NOW) == select_reporting_window(sales, NOW)
    assert sales == snapshot
