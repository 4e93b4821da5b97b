"""Revenue, gross margin and the paid/unpaid margin split over a date range."""
from __future__ import annotations

import calendar
from datetime import datetime, timedelta
from typing import Iterable, Optional

from sdm.domain.models import MonthlyBenefit, PeriodSummary, ReportingWindow, Sale
from sdm.domain.pricing import PriceTier
from sdm.engines.receivables import CURRENT_MONTH_LABEL, compute_aging_period

FRENCH_MONTHS = (
    "Janvier", "Février", "Mars", "Avril", "Mai", "Juin",
    "Juillet", "Août", "Septembre", "Octobre", "Novembre", "Décembre",
)


def margin_per_unit(price_per_unit: float) -> float:
    tier = PriceTier.from_price(price_per_unit)
    return tier.margin_per_unit if tier else 0


def supplier_cost_per_unit(price_per_unit: float) -> float:
    tier = PriceTier.from_price(price_per_unit)
    return tier.supplier_cost_per_unit if tier else 0


def profit_margin(profit: float, revenue: float) -> float:
    if revenue == 0:
        return 0.0
    return profit / revenue * 100


def sale_profit(sale: Sale) -> float:
    return sale.quantity * margin_per_unit(sale.price_per_unit)


def compute_period(sales: Iterable[Sale], start: datetime, end: datetime) -> PeriodSummary:
    in_window = [s for s in sales if start <= s.date <= end]

    paid_profit = 0
    for s in in_window:
        if s.is_paid and s.payment_date is not None and start <= s.payment_date <= end:
            paid_profit += sale_profit(s)

    return PeriodSummary(
        quantity=sum(s.quantity for s in in_window),
        revenue=sum(s.total_value for s in in_window),
        profit=sum(sale_profit(s) for s in in_window),
        paid_profit=paid_profit,
        supplier_payment=sum(s.quantity * supplier_cost_per_unit(s.price_per_unit) for s in in_window),
    )


def shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def month_bounds(year: int, month: int) -> tuple[datetime, datetime]:
    last_day = calendar.monthrange(year, month)[1]
    start = datetime(year, month, 1)
    end = datetime(year, month, last_day, 23, 59, 59, 999000)
    return start, end


def trailing_months_start(now: datetime, months: int) -> datetime:
    """First day of the month that opens a window of ``months`` calendar months ending with ``now``'s month."""
    year, month = shift_month(now.year, now.month, -(months - 1))
    return datetime(year, month, 1)


def select_reporting_window(sales: Iterable[Sale], now: Optional[datetime] = None) -> ReportingWindow:
    sales = list(sales)
    now = now or datetime.now()
    aging = compute_aging_period(sales, now)

    if not aging.has_unpaid:
        start, end = month_bounds(now.year, now.month)
        label = CURRENT_MONTH_LABEL
    elif aging.months_back > 4:
        start, end = trailing_months_start(now, 6), now
        label = "6 mois"
    else:
        start, end = trailing_months_start(now, 4), now
        label = "4 mois"

    return ReportingWindow(data=compute_period(sales, start, end), label=label, start=start, end=end, aging=aging)


def month_label(dt: datetime) -> str:
    return f"{FRENCH_MONTHS[dt.month - 1]} {dt.year}"


def _accumulate(rows: dict[tuple[int, int], MonthlyBenefit], when: datetime, sale: Sale) -> None:
    key = (when.year, when.month)
    cur = rows.get(key) or MonthlyBenefit(month=month_label(when))
    rows[key] = MonthlyBenefit(
        month=cur.month,
        quantity=cur.quantity + sale.quantity,
        value=cur.value + sale.total_value,
        net_benefit=cur.net_benefit + sale_profit(sale),
    )


def monthly_benefits(sales: Iterable[Sale]) -> list[MonthlyBenefit]:
    """Estimated benefit per month, keyed by delivery month."""
    rows: dict[tuple[int, int], MonthlyBenefit] = {}
    for s in sales:
        _accumulate(rows, s.date, s)
    return [rows[k] for k in sorted(rows)]


def monthly_paid_benefits(sales: Iterable[Sale]) -> list[MonthlyBenefit]:
    """Realised benefit per month, keyed by the month the sale was fully paid."""
    rows: dict[tuple[int, int], MonthlyBenefit] = {}
    for s in sales:
        if not s.is_paid or s.payment_date is None:
            continue
        _accumulate(rows, s.payment_date, s)
    return [rows[k] for k in sorted(rows)]


def daily_sales_values(sales: Iterable[Sale], days: int = 7, now: Optional[datetime] = None) -> list[tuple[str, float]]:
    now = now or datetime.now()
    sales = list(sales)
    out: list[tuple[str, float]] = []
    for offset in range(days - 1, -1, -1):
        day = (now - timedelta(days=offset)).date()
        total = sum(s.total_value for s in sales if s.date.date() == day)
        out.append((day.isoformat(), total))
    return out
