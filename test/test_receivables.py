from dataclasses import replace
from datetime import datetime, timedelta

import pytest
from conftest import make_sale

from sdm.domain.models import Payment, PaymentRendezvous, PaymentType
from sdm.engines.receivables import (
    CURRENT_MONTH_LABEL,
    aging_bucket,
    compute_aging_period,
    compute_supplier_return,
    pending_sales,
    rendezvous_schedule,
    rendezvous_summary,
    total_outstanding,
)

NOW = datetime(2024, 3, 15, 12, 0)


def test_aging_without_unpaid_sales_is_current_month():
    period = compute_aging_period([], NOW)
    assert period.bucket == CURRENT_MONTH_LABEL
    assert period.months_back == 0
    assert period.oldest_unpaid_date is None
    assert period.has_unpaid is False

    paid_only = [make_sale(is_paid=True, payment_date=NOW)]
    assert compute_aging_period(paid_only, NOW).bucket == CURRENT_MONTH_LABEL


def test_aging_sixty_days_is_first_bucket():
    oldest = NOW - timedelta(days=60)
    period = compute_aging_period([make_sale(date=oldest)], NOW)
    assert period.bucket == "1-2 mois"
    assert period.months_back == 2
    assert period.oldest_unpaid_date == oldest
    assert period.has_unpaid is True


def test_aging_uses_oldest_unpaid_sale_only():
    sales = [
        make_sale("old-paid", date=NOW - timedelta(days=400), is_paid=True, payment_date=NOW),
        make_sale("open", date=NOW - timedelta(days=185)),
        make_sale("recent", date=NOW - timedelta(days=3)),
    ]
    period = compute_aging_period(sales, NOW)
    assert period.bucket == "6+ mois"
    assert period.months_back == 7
    assert period.oldest_unpaid_date == NOW - timedelta(days=185)


def test_aging_bucket_boundaries_are_strict():
    assert aging_bucket(2) == "1-2 mois"
    assert aging_bucket(2.01) == "2-4 mois"
    assert aging_bucket(4) == "2-4 mois"
    assert aging_bucket(5) == "4-6 mois"
    assert aging_bucket(6) == "4-6 mois"
    assert aging_bucket(6.5) == "6+ mois"


def test_supplier_return_blocked_by_a_single_unpaid_sale():
    sales = [
        make_sale("paid", is_paid=True, payment_date=NOW),
        make_sale("open", remaining=5000),
    ]
    result = compute_supplier_return(sales)
    assert result.can_return is False
    assert result.return_amount == 0
    assert result.total_unpaid == 5000
    assert result.total_paid == 16200
    assert result.unpaid_count == 1
    assert result.paid_count == 1


def test_supplier_return_when_everything_is_collected():
    sales = [
        make_sale("a", is_paid=True, payment_date=NOW),
        make_sale("b", cartons=1, price=166, is_paid=True, payment_date=NOW),
    ]
    result = compute_supplier_return(sales)
    assert result.can_return is True
    assert result.total_paid == 16200 + 9 * 166
    assert result.return_amount == result.total_paid
    assert result.total_unpaid == 0


def test_supplier_return_ignores_collected_part_of_open_sales():
    partial = Payment(id="p1", date=NOW, amount=6000, type=PaymentType.VIREMENT)
    result = compute_supplier_return([make_sale("open", payments=[partial])])
    assert result.total_paid == 0
    assert result.total_unpaid == 16200 - 6000


def test_pending_sales_sorted_oldest_first_and_outstanding_total():
    sales = [
        make_sale("b", date=datetime(2024, 2, 1), remaining=100),
        make_sale("paid", date=datetime(2023, 1, 1), is_paid=True),
        make_sale("a", date=datetime(2024, 1, 1), remaining=250),
    ]
    assert [s.id for s in pending_sales(sales)] == ["a", "b"]
    assert total_outstanding(sales) == 350


def test_receivables_engines_are_repeatable():
    sales = [make_sale("a", date=NOW - timedelta(days=90)), make_sale("b", is_paid=True, payment_date=NOW)]
    before = list(sales)
    assert compute_aging_period(sales, NOW) == compute_aging_period(sales, NOW)
    assert compute_supplier_return(sales) == compute_supplier_return(sales)
    assert sales == before


def test_one_open_sale_blocks_the_whole_return():
    paid = replace(make_sale("paid", is_paid=True, payment_date=NOW), total_value=1000)
    result = compute_supplier_return([paid, make_sale("open", remaining=500)])
    assert result.total_paid == 1000
    assert result.can_return is False
    assert result.return_amount == 0


def _with_rendezvous(sale, *items):
    return replace(sale, rendezvous=tuple(PaymentRendezvous(id=i, date=d, expected_amount=a) for i, d, a in items))


def test_rendezvous_schedule_filters_and_ordering():
    open_sale = _with_rendezvous(
        make_sale("s1"),
        ("later", datetime(2024, 3, 30, 9), 2000),
        ("today", datetime(2024, 3, 15, 18), None),
        ("late", datetime(2024, 3, 1, 9), 1000),
        ("week", datetime(2024, 3, 22, 9), 500),
    )
    paid_sale = _with_rendezvous(make_sale("s2", is_paid=True), ("ignored", datetime(2024, 3, 16), 100))
    sales = [open_sale, paid_sale]

    def ids(filter):
        return [item.rendezvous.id for item in rendezvous_schedule(sales, NOW, filter)]

    assert ids("all") == ["late", "today", "week", "later"]
    assert ids("today") == ["today"]
    assert ids("week") == ["today", "week"]
    assert ids("overdue") == ["late"]
    assert ids("upcoming") == ["week", "later"]
    assert [item.status for item in rendezvous_schedule(sales, NOW)] == ["overdue", "today", "upcoming", "upcoming"]

    with pytest.raises(ValueError):
        rendezvous_schedule(sales, NOW, "tomorrow")


def test_completed_rendezvous_are_left_out_of_the_summary():
    sale = _with_rendezvous(make_sale("s1"), ("a", datetime(2024, 3, 15, 8), 1500), ("b", datetime(2024, 3, 2), 700))
    done = replace(sale.rendezvous[1], is_completed=True)
    sale = replace(sale, rendezvous=(sale.rendezvous[0], done))

    summary = rendezvous_summary([sale], NOW)

    assert summary.total == 1
    assert summary.today_count == 1
    assert summary.overdue_count == 0
    assert summary.total_expected == 1500
    assert rendezvous_summary([], NOW).total == 0
