from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Mapping, Optional

from sdm.domain.errors import NotFoundError, ValidationError
from sdm.domain.models import MovementType, Payment, PaymentType, Sale, new_id
from sdm.domain.pricing import UNITS_PER_CARTON, PriceTier
from sdm.engines.profitability import sale_profit
from sdm.repositories.unit_of_work import RepositoryUnitOfWork, UnitOfWork

log = logging.getLogger("sdm.sales")


@dataclass(frozen=True)
class SupermarketTotals:
    total_quantity: int
    total_cartons: int
    total_value: float
    total_paid: float
    total_unpaid: float
    total_net_benefit: float


class SalesService:
    def __init__(
        self,
        repo,
        stock_service,
        uow_factory: Callable[[], UnitOfWork] | None = None,
    ):
        self.repo = repo
        self.stock = stock_service
        self.uow_factory = uow_factory or (lambda: RepositoryUnitOfWork(repo))

    def create_sale(
        self,
        supermarket_id: str,
        cartons: int,
        tier: PriceTier | str | float,
        fragrance_distribution: Mapping[str, int],
        date: Optional[datetime] = None,
        paid_immediately: bool = False,
        expected_payment_date: Optional[datetime] = None,
        note: Optional[str] = None,
        from_order: bool = False,
    ) -> Sale:
        cartons = int(cartons)
        if cartons <= 0:
            raise ValidationError("Cartons must be >= 1.")
        tier = PriceTier.parse(tier)
        if self.repo.get_supermarket(supermarket_id) is None:
            raise NotFoundError("Supermarket not found.")

        distribution = self.stock.clean_distribution(fragrance_distribution)
        distributed = sum(distribution.values())
        if distributed != cartons:
            raise ValidationError(
                f"Fragrance distribution ({distributed} cartons) must match the sale ({cartons} cartons)."
            )
        self.stock.ensure_available(distribution)

        date = date or datetime.now()
        quantity = cartons * UNITS_PER_CARTON
        total = quantity * tier.price_per_unit

        payments: tuple[Payment, ...] = ()
        if paid_immediately:
            payments = (Payment(id=new_id(), date=date, amount=total, note="Paiement complet", type=PaymentType.DIRECT),)

        sale = Sale(
            id=new_id(),
            date=date,
            supermarket_id=supermarket_id,
            quantity=quantity,
            cartons=cartons,
            price_per_unit=tier.price_per_unit,
            total_value=total,
            is_paid=paid_immediately,
            remaining_amount=0 if paid_immediately else total,
            payments=payments,
            payment_date=date if paid_immediately else None,
            expected_payment_date=None if paid_immediately else expected_payment_date,
            note=note,
            from_order=from_order,
            fragrance_distribution=distribution,
        )
        movement = self.stock.prepare_movement(
            MovementType.REMOVED,
            cartons,
            f"Vente de {cartons} cartons - {date:%d/%m/%Y}",
            distribution,
        )

        with self.uow_factory() as uow:
            uow.record_sale(sale, movement)
        log.info(
            "sale_created sale_id=%s supermarket=%s cartons=%s tier=%s total=%.2f paid=%s",
            sale.id,
            supermarket_id,
            cartons,
            tier.name,
            total,
            paid_immediately,
        )
        return sale

    def _even_split(self, cartons: int) -> dict[str, int]:
        fragrances = self.repo.load_fragrances()
        if not fragrances:
            return {}
        base, remainder = divmod(int(cartons), len(fragrances))
        split = {f.id: base + (1 if i < remainder else 0) for i, f in enumerate(fragrances)}
        return {fid: qty for fid, qty in split.items() if qty}

    def delete_sale(self, sale_id: str) -> None:
        """Delete a sale with its payments and put its cartons back in stock."""
        sale = self.repo.get_sale(sale_id)
        if sale is None:
            raise NotFoundError("Sale not found.")

        distribution = dict(sale.fragrance_distribution) if sale.fragrance_distribution else self._even_split(sale.cartons)
        restock = None
        if sale.cartons > 0:
            restock = self.stock.prepare_movement(
                MovementType.ADDED,
                sale.cartons,
                f"Annulation de vente - {sale.date:%d/%m/%Y}",
                distribution or None,
            )

        with self.uow_factory() as uow:
            removed = uow.remove_sale(sale_id, restock)
        if not removed:
            raise NotFoundError("Sale not found.")
        log.warning("sale_deleted sale_id=%s cartons_restocked=%s", sale_id, sale.cartons)

    def get_sale(self, sale_id: str) -> Sale:
        sale = self.repo.get_sale(sale_id)
        if sale is None:
            raise NotFoundError("Sale not found.")
        return sale

    def list_sales(self) -> list[Sale]:
        return self.repo.load_sales()

    def sales_for_supermarket(self, supermarket_id: str) -> list[Sale]:
        return self.repo.sales_for_supermarket(supermarket_id)

    def supermarket_totals(self, supermarket_id: str) -> SupermarketTotals:
        sales = self.repo.sales_for_supermarket(supermarket_id)
        return SupermarketTotals(
            total_quantity=sum(s.quantity for s in sales),
            total_cartons=sum(s.cartons for s in sales),
            total_value=sum(s.total_value for s in sales),
            total_paid=sum(s.total_value for s in sales if s.is_paid),
            total_unpaid=sum(s.total_value for s in sales if not s.is_paid),
            total_net_benefit=sum(sale_profit(s) for s in sales),
        )
