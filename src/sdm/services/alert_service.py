from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, Optional

from sdm.domain.models import Alert, Order, OrderStatus, Sale
from sdm.domain.pricing import MAX_STOCK_UNITS, UNITS_PER_CARTON, format_dzd
from sdm.engines.stock_replay import replay_aggregate_stock

log = logging.getLogger(__name__)

PRIORITY_RANK = {"urgent": 0, "high": 1, "medium": 2, "low": 3}


def _days_between(earlier: datetime, later: datetime) -> int:
    return int((later - earlier).total_seconds() // 86400)


def overdue_payment_alerts(sales: Iterable[Sale], now: datetime) -> list[Alert]:
    out = []
    for s in sales:
        if s.is_paid or s.expected_payment_date is None or s.expected_payment_date >= now:
            continue
        days = _days_between(s.expected_payment_date, now)
        priority = "urgent" if days > 7 else "high" if days > 3 else "medium"
        out.append(
            Alert(
                id=f"payment_overdue_{s.id}",
                type="payment_overdue",
                title="Paiement en retard",
                message=(
                    f"Le paiement pour la vente {s.id} est en retard de {days} jour(s). "
                    f"Montant restant: {format_dzd(s.remaining_amount)}"
                ),
                priority=priority,
                metadata={"sale_id": s.id, "amount": s.remaining_amount, "due_date": s.expected_payment_date},
            )
        )
    return out


def virement_reminder_alerts(sales: Iterable[Sale], now: datetime) -> list[Alert]:
    out = []
    for s in sales:
        if s.is_paid or not s.payments:
            continue
        days = _days_between(s.payments[-1].date, now)
        if days <= 7:
            continue
        out.append(
            Alert(
                id=f"virement_reminder_{s.id}",
                type="virement_reminder",
                title="Rappel de virement",
                message=(
                    f"Rappel: Le virement pour la vente {s.id} n'a pas été complété. "
                    f"Montant restant: {format_dzd(s.remaining_amount)}"
                ),
                priority="high" if days > 14 else "medium",
                metadata={"sale_id": s.id, "amount": s.remaining_amount},
            )
        )
    return out


def order_alerts(orders: Iterable[Order]) -> list[Alert]:
    out = []
    for o in orders:
        if o.status == OrderStatus.PENDING:
            out.append(
                Alert(
                    id=f"order_pending_{o.id}",
                    type="order_scheduled",
                    title="Commande en attente",
                    message=f"Commande {o.id} pour {o.supermarket_name} - {o.quantity} unités en attente de livraison",
                    priority="medium",
                    metadata={"order_id": o.id, "supermarket_id": o.supermarket_id, "quantity": o.quantity},
                )
            )
        elif o.status == OrderStatus.DELIVERED:
            out.append(
                Alert(
                    id=f"order_delivered_{o.id}",
                    type="order_delivered",
                    title="Commande livrée",
                    message=f"Commande {o.id} livrée avec succès à {o.supermarket_name}",
                    priority="low",
                    metadata={"order_id": o.id, "supermarket_id": o.supermarket_id},
                )
            )
    return out


def stock_alerts(stock_units: int, now: datetime, max_units: int = MAX_STOCK_UNITS) -> list[Alert]:
    # one alert id per day, so a dismissal holds until the next day
    pct = stock_units / max_units * 100 if max_units else 0.0
    day = f"{now:%Y%m%d}"
    if pct < 20:
        return [
            Alert(
                id=f"stock_critical_{day}",
                type="stock_alert",
                title="Stock critique",
                message=f"Attention: Le stock est très bas ({pct:.1f}%). Il est temps de réapprovisionner.",
                priority="urgent",
                metadata={"quantity": stock_units},
            )
        ]
    if pct < 40:
        return [
            Alert(
                id=f"stock_low_{day}",
                type="low_stock",
                title="Stock faible",
                message=f"Le stock est faible ({pct:.1f}%). Pensez à commander.",
                priority="medium",
                metadata={"quantity": stock_units},
            )
        ]
    return []


class AlertService:
    """Computed reminders. Dismissals go through the local repository."""

    def __init__(self, source, repo=None):
        self.source = source
        self.repo = repo

    def compute(self, now: Optional[datetime] = None) -> list[Alert]:
        now = now or datetime.now()
        sales = self.source.load_sales()
        units = replay_aggregate_stock(self.source.load_stock_movements()) * UNITS_PER_CARTON

        alerts = (
            overdue_payment_alerts(sales, now)
            + virement_reminder_alerts(sales, now)
            + order_alerts(self.source.load_orders())
            + stock_alerts(units, now)
        )
        return sorted(alerts, key=lambda a: PRIORITY_RANK.get(a.priority, len(PRIORITY_RANK)))

    def active(self, now: Optional[datetime] = None) -> list[Alert]:
        dismissed = self.repo.dismissed_alert_ids() if self.repo is not None else set()
        return [a for a in self.compute(now) if a.id not in dismissed]

    def dismiss(self, alert_id: str) -> None:
        if self.repo is None:
            raise RuntimeError("No repository configured for dismissals.")
        self.repo.dismiss_alert(alert_id)
        log.info("alert_dismissed alert_id=%s", alert_id)
