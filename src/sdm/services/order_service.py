from __future__ import annotations

import logging
import math
from datetime import datetime
from typing import Mapping, Optional

from sdm.domain.errors import NotFoundError, ValidationError
from sdm.domain.models import Order, OrderStatus, Sale, new_id
from sdm.domain.pricing import UNITS_PER_CARTON, PriceTier

log = logging.getLogger("sdm.sales")


class OrderService:
    """Scheduled deliveries. Quantities are stored in units, entered in cartons."""

    def __init__(self, repo, sales_service):
        self.repo = repo
        self.sales = sales_service

    def list_orders(self, status: Optional[OrderStatus] = None) -> list[Order]:
        orders = self.repo.load_orders()
        if status is None:
            return orders
        return [o for o in orders if o.status == OrderStatus(status)]

    def get_order(self, order_id: str) -> Order:
        o = self.repo.get_order(order_id)
        if not o:
            raise NotFoundError("Order not found.")
        return o

    def add_order(
        self,
        supermarket_id: str,
        cartons: int,
        tier: PriceTier | str | float,
        date: Optional[datetime] = None,
    ) -> Order:
        if int(cartons) <= 0:
            raise ValidationError("Cartons must be >= 1.")
        tier = PriceTier.parse(tier)
        supermarket = self.repo.get_supermarket(supermarket_id)
        if not supermarket:
            raise NotFoundError("Supermarket not found.")

        order = Order(
            id=new_id(),
            date=date or datetime.now(),
            supermarket_id=supermarket_id,
            quantity=int(cartons) * UNITS_PER_CARTON,
            price_per_unit=tier.price_per_unit,
            status=OrderStatus.PENDING,
            supermarket_name=supermarket.name,
        )
        self.repo.add_order(order)
        log.info("order_added order_id=%s supermarket=%s units=%s", order.id, supermarket_id, order.quantity)
        return order

    def _pending(self, order_id: str) -> Order:
        order = self.get_order(order_id)
        if order.status != OrderStatus.PENDING:
            raise ValidationError(f"Order is already {order.status.value}.")
        return order

    def complete_order(
        self,
        order_id: str,
        fragrance_distribution: Mapping[str, int],
        paid_immediately: bool = False,
        expected_payment_date: Optional[datetime] = None,
        date: Optional[datetime] = None,
    ) -> Sale:
        """Deliver a pending order: record it as a sale, then mark it delivered."""
        order = self._pending(order_id)
        cartons = math.ceil(order.quantity / UNITS_PER_CARTON)
        sale = self.sales.create_sale(
            supermarket_id=order.supermarket_id,
            cartons=cartons,
            tier=order.price_per_unit,
            fragrance_distribution=fragrance_distribution,
            date=date,
            paid_immediately=paid_immediately,
            expected_payment_date=expected_payment_date,
            from_order=True,
        )
        self.repo.update_order_status(order_id, OrderStatus.DELIVERED)
        log.info("order_delivered order_id=%s sale_id=%s", order_id, sale.id)
        return sale

    def cancel_order(self, order_id: str) -> None:
        self._pending(order_id)
        self.repo.update_order_status(order_id, OrderStatus.CANCELLED)
        log.info("order_cancelled order_id=%s", order_id)

    def delete_order(self, order_id: str) -> None:
        if not self.repo.delete_order(order_id):
            raise NotFoundError("Order not found.")
        log.warning("order_deleted order_id=%s", order_id)
