from datetime import datetime, timedelta
from pathlib import Path

from conftest import make_movement, make_sale, seeded_repo

from sdm.domain.models import Order, OrderStatus, Payment, PaymentType
from sdm.services.alert_service import (
    AlertService,
    order_alerts,
    overdue_payment_alerts,
    stock_alerts,
    virement_reminder_alerts,
)

NOW = datetime(2024, 3, 15, 12, 0)


class FakeSource:
    def __init__(self, sales=(), movements=(), orders=()):
        self.sales = list(sales)
        self.movements = list(movements)
        self.orders = list(orders)

    def load_sales(self):
        return self.sales

    def load_stock_movements(self):
        return self.movements

    def load_orders(self):
        return self.orders


def test_overdue_priorities():
    sales = [
        make_sale("late10", expected_payment_date=NOW - timedelta(days=10)),
        make_sale("late5", expected_payment_date=NOW - timedelta(days=5)),
        make_sale("late2", expected_payment_date=NOW - timedelta(days=2)),
        make_sale("future", expected_payment_date=NOW + timedelta(days=2)),
        make_sale("paid", is_paid=True, expected_payment_date=NOW - timedelta(days=30)),
    ]
    alerts = {a.id: a for a in overdue_payment_alerts(sales, NOW)}
    assert set(alerts) == {"payment_overdue_late10", "payment_overdue_late5", "payment_overdue_late2"}
    assert alerts["payment_overdue_late10"].priority == "urgent"
    assert alerts["payment_overdue_late5"].priority == "high"
    assert alerts["payment_overdue_late2"].priority == "medium"
    assert "10 jour(s)" in alerts["payment_overdue_late10"].message


def _paid_on(days_ago: int):
    return Payment(id=f"p{days_ago}", date=NOW - timedelta(days=days_ago), amount=1000, type=PaymentType.VIREMENT)


def test_virement_reminders_follow_last_payment():
    sales = [
        make_sale("quiet20", payments=[_paid_on(40), _paid_on(20)]),
        make_sale("quiet10", payments=[_paid_on(10)]),
        make_sale("recent", payments=[_paid_on(30), _paid_on(5)]),
        make_sale("no-payments"),
    ]
    alerts = {a.id: a.priority for a in virement_reminder_alerts(sales, NOW)}
    assert alerts == {"virement_reminder_quiet20": "high", "virement_reminder_quiet10": "medium"}


def test_order_alerts():
    orders = [
        Order(id="o1", date=NOW, supermarket_id="m1", quantity=27, price_per_unit=166, supermarket_name="Ardis"),
        Order(id="o2", date=NOW, supermarket_id="m1", quantity=9, price_per_unit=180, status=OrderStatus.DELIVERED),
        Order(id="o3", date=NOW, supermarket_id="m1", quantity=9, price_per_unit=180, status=OrderStatus.CANCELLED),
    ]
    alerts = order_alerts(orders)
    assert [(a.type, a.priority) for a in alerts] == [("order_scheduled", "medium"), ("order_delivered", "low")]
    assert "27 unités" in alerts[0].message


def test_stock_thresholds():
    assert stock_alerts(0, NOW)[0].type == "stock_alert"
    assert stock_alerts(0, NOW)[0].priority == "urgent"
    assert stock_alerts(1000, NOW)[0].type == "low_stock"
    assert stock_alerts(2000, NOW) == []


def test_service_sorts_by_priority_and_hides_dismissed(tmp_path: Path):
    repo = seeded_repo(tmp_path)
    source = FakeSource(
        sales=[make_sale("late", expected_payment_date=NOW - timedelta(days=2))],
        movements=[make_movement("added", 100)],
    )
    service = AlertService(source, repo)

    alerts = service.compute(NOW)
    assert [a.priority for a in alerts] == ["medium", "medium"]
    assert {a.type for a in alerts} == {"payment_overdue", "low_stock"}

    service.dismiss("payment_overdue_late")
    assert [a.type for a in service.active(NOW)] == ["low_stock"]
    assert "payment_overdue_late" in repo.dismissed_alert_ids()


def test_critical_stock_comes_first():
    source = FakeSource(sales=[make_sale("late", expected_payment_date=NOW - timedelta(days=2))])
    alerts = AlertService(source).compute(NOW)
    assert alerts[0].type == "stock_alert"
