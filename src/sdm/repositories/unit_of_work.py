from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol

from sdm.domain.models import Payment, Sale, StockMovement


class UnitOfWork(Protocol):
    def __enter__(self) -> "UnitOfWork": ...
    def __exit__(self, exc_type, exc, tb) -> None: ...
    def record_sale(self, sale: Sale, movement: Optional[StockMovement]) -> str: ...
    def remove_sale(self, sale_id: str, restock: Optional[StockMovement]) -> bool: ...
    def record_payment(self, sale_id: str, payment: Payment) -> Sale: ...
    def record_movement(self, movement: StockMovement) -> str: ...


@dataclass
class RepositoryUnitOfWork:
    """Unit of Work adapter for transactional write use-cases.

    Each repository write already runs in its own SQL transaction (a sale and
    its stock movement, a payment and the sale balance). This class keeps the
    services persistence-agnostic.
    """

    repo: object

    def __enter__(self) -> "RepositoryUnitOfWork":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        return None

    def record_sale(self, sale: Sale, movement: Optional[StockMovement]) -> str:
        return str(self.repo.create_sale(sale, movement))

    def remove_sale(self, sale_id: str, restock: Optional[StockMovement]) -> bool:
        return bool(self.repo.delete_sale(sale_id, restock))

    def record_payment(self, sale_id: str, payment: Payment) -> Sale:
        return self.repo.append_payment(sale_id, payment)

    def record_movement(self, movement: StockMovement) -> str:
        return str(self.repo.append_movement(movement))
