"""Outstanding balances and their aging, the supplier-return gate, payment rendezvous."""
from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Iterable, Optional

from sdm.domain.models import (
    AgingPeriod,
    PaymentRendezvous,
    RendezvousSummary,
    Sale,
    ScheduledRendezvous,
    SupplierReturn,
)

DAYS_PER_MONTH = 30.44
CURRENT_MONTH_LABEL = "mois en cours"


def elapsed_months(since: datetime, now: datetime) -> float:
    return (now - since).total_seconds() / (DAYS_PER_MONTH * 86400)


def aging_bucket(months: float) -> str:
    # strict comparisons: a boundary value stays in the closer bucket
    if months > 6:
        return "6+ mois"
    if months > 4:
        return "4-6 mois"
    if months > 2:
        return "2-4 mois"
    return "1-2 mois"


def compute_aging_period(sales: Iterable[Sale], now: Optional[datetime] = None) -> AgingPeriod:
    unpaid = [s for s in sales if not s.is_paid]
    if not unpaid:
        return AgingPeriod(bucket=CURRENT_MONTH_LABEL, months_back=0, oldest_unpaid_date=None, has_unpaid=False)

    now = now or datetime.now()
    oldest = min(s.date for s in unpaid)
    months = elapsed_months(oldest, now)
    return AgingPeriod(
        bucket=aging_bucket(months),
        months_back=math.ceil(months),
        oldest_unpaid_date=oldest,
        has_unpaid=True,
    )


def compute_supplier_return(sales: Iterable[Sale]) -> SupplierReturn:
    sales = list(sales)
    unpaid = [s for s in sales if not s.is_paid]
    paid = [s for s in sales if s.is_paid]

    total_unpaid = sum(s.remaining_amount for s in unpaid)
    # collected part of still-open sales is not counted
    total_paid = sum(s.total_value - s.remaining_amount for s in paid)

    can_return = not unpaid
    return SupplierReturn(
        total_unpaid=total_unpaid,
        total_paid=total_paid,
        can_return=can_return,
        return_amount=total_paid if can_return else 0,
        unpaid_count=len(unpaid),
        paid_count=len(paid),
    )


def pending_sales(sales: Iterable[Sale]) -> list[Sale]:
    return sorted((s for s in sales if not s.is_paid), key=lambda s: s.date)


def total_outstanding(sales: Iterable[Sale]) -> float:
    return sum(s.remaining_amount for s in sales if not s.is_paid)


# ---------- Payment rendezvous ----------
RENDEZVOUS_FILTERS = ("all", "today", "week", "overdue", "upcoming")


def rendezvous_status(when: datetime, now: datetime) -> str:
    day, today = when.date(), now.date()
    if day < today:
        return "overdue"
    if day == today:
        return "today"
    return "upcoming"


def _matches(day, today, filter: str) -> bool:
    if filter == "today":
        return day == today
    if filter == "week":
        return today <= day <= today + timedelta(days=7)
    if filter == "overdue":
        return day < today
    if filter == "upcoming":
        return day > today
    return True


def open_rendezvous(sales: Iterable[Sale]) -> list[tuple[Sale, PaymentRendezvous]]:
    """Rendezvous not yet completed on sales still unpaid, earliest first."""
    items = [(s, rv) for s in sales if not s.is_paid for rv in s.rendezvous if not rv.is_completed]
    return sorted(items, key=lambda item: item[1].date)


def rendezvous_schedule(
    sales: Iterable[Sale], now: Optional[datetime] = None, filter: str = "all"
) -> list[ScheduledRendezvous]:
    if filter not in RENDEZVOUS_FILTERS:
        raise ValueError(f"Unknown rendezvous filter: {filter}")
    now = now or datetime.now()
    today = now.date()
    return [
        ScheduledRendezvous(
            rendezvous=rv,
            sale_id=s.id,
            supermarket_id=s.supermarket_id,
            remaining_amount=s.remaining_amount,
            status=rendezvous_status(rv.date, now),
        )
        for s, rv in open_rendezvous(sales)
        if _matches(rv.date.date(), today, filter)
    ]


def rendezvous_summary(sales: Iterable[Sale], now: Optional[datetime] = None) -> RendezvousSummary:
    now = now or datetime.now()
    items = open_rendezvous(sales)
    statuses = [rendezvous_status(rv.date, now) for _, rv in items]
    return RendezvousSummary(
        total=len(items),
        today_count=statuses.count("today"),
        overdue_count=statuses.count("overdue"),
        total_expected=sum(rv.expected_amount or 0 for _, rv in items),
    )
