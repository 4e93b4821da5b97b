from __future__ import annotations

from typing import Protocol

from sdm.domain.models import Fragrance, Order, Sale, StockMovement, Supermarket


class LedgerSource(Protocol):
    """Read side shared by the local store and the hosted REST store.

    ``load_sales`` returns every sale with its payments fully populated;
    ``load_stock_movements`` returns every movement with its fragrance
    distribution. Ordering is not significant to callers.
    """

    def load_sales(self) -> list[Sale]: ...
    def load_stock_movements(self) -> list[StockMovement]: ...
    def load_supermarkets(self) -> list[Supermarket]: ...
    def load_fragrances(self) -> list[Fragrance]: ...
    def load_orders(self) -> list[Order]: ...
