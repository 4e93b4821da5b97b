from __future__ import annotations

import logging
from typing import Callable, Optional, TypeVar

import requests

from sdm.config import SupabaseSettings
from sdm.domain.errors import LedgerUnavailableError, ValidationError
from sdm.domain.models import Fragrance, Order, Sale, StockMovement, Supermarket
from sdm.domain.normalize import (
    normalize_fragrance,
    normalize_movement,
    normalize_order,
    normalize_sale,
    normalize_supermarket,
)

log = logging.getLogger("sdm.supabase")

T = TypeVar("T")


class SupabaseRestLoader:
    """Read-only ledger source backed by the hosted PostgREST API."""

    def __init__(self, settings: SupabaseSettings, session: Optional[requests.Session] = None):
        self.settings = settings
        self.session = session or requests.Session()

    def _headers(self) -> dict[str, str]:
        return {
            "apikey": self.settings.api_key,
            "Authorization": f"Bearer {self.settings.api_key}",
            "Accept": "application/json",
        }

    def _fetch_rows(self, table: str, params: dict[str, str]) -> list[dict]:
        url = f"{self.settings.rest_url}/{table}"
        try:
            r = self.session.get(url, params=params, headers=self._headers(), timeout=self.settings.timeout)
            r.raise_for_status()
            data = r.json()
        except (requests.RequestException, ValueError) as e:
            log.warning("supabase_fetch_failed table=%s error=%s", table, e)
            raise LedgerUnavailableError(f"Could not load {table} from hosted store: {e}") from e

        if not isinstance(data, list):
            raise LedgerUnavailableError(f"Unexpected response for {table}: {type(data).__name__}")
        log.info("supabase_fetched table=%s rows=%s", table, len(data))
        return data

    def _load(self, table: str, params: dict[str, str], convert: Callable[[dict], T]) -> list[T]:
        out: list[T] = []
        for row in self._fetch_rows(table, params):
            try:
                out.append(convert(row))
            except ValidationError as e:
                raise LedgerUnavailableError(f"Malformed {table} row {row.get('id')!r}: {e}") from e
        return out

    def load_sales(self) -> list[Sale]:
        return self._load("sales", {"select": "*,payments(*)", "order": "date.asc"}, normalize_sale)

    def load_stock_movements(self) -> list[StockMovement]:
        return self._load("stock_history", {"select": "*", "order": "date.asc"}, normalize_movement)

    def load_supermarkets(self) -> list[Supermarket]:
        return self._load("supermarkets", {"select": "*", "order": "name.asc"}, normalize_supermarket)

    def load_fragrances(self) -> list[Fragrance]:
        return self._load("fragrance_stock", {"select": "fragrance_id,name,color", "order": "name.asc"}, normalize_fragrance)

    def load_orders(self) -> list[Order]:
        return self._load("orders", {"select": "*,supermarkets(name)", "order": "date.desc"}, normalize_order)

    def ping(self) -> bool:
        try:
            self._fetch_rows("sales", {"select": "id", "limit": "1"})
        except LedgerUnavailableError:
            return False
        return True
