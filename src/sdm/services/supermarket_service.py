from __future__ import annotations

import logging
from typing import Iterable, Optional

from sdm.domain.errors import NotFoundError, ValidationError
from sdm.domain.models import PhoneNumber, Supermarket, new_id

log = logging.getLogger("sdm.sales")


class SupermarketService:
    def __init__(self, repo):
        self.repo = repo

    def list_supermarkets(self) -> list[Supermarket]:
        return self.repo.load_supermarkets()

    def get_supermarket(self, supermarket_id: str) -> Supermarket:
        s = self.repo.get_supermarket(supermarket_id)
        if not s:
            raise NotFoundError("Supermarket not found.")
        return s

    @staticmethod
    def _build(
        supermarket_id: str,
        name: str,
        address: str,
        latitude: float,
        longitude: float,
        email: Optional[str],
        phone_numbers: Iterable[PhoneNumber | tuple[str, str]],
    ) -> Supermarket:
        name = (name or "").strip()
        address = (address or "").strip()
        if not name:
            raise ValidationError("Supermarket name is required.")
        if not -90 <= float(latitude) <= 90 or not -180 <= float(longitude) <= 180:
            raise ValidationError("Coordinates are out of range.")
        email = (email or "").strip() or None
        if email and "@" not in email:
            raise ValidationError("Invalid email address.")

        phones = []
        for p in phone_numbers or ():
            if not isinstance(p, PhoneNumber):
                p = PhoneNumber(*p)
            if not p.number.strip():
                raise ValidationError("Phone number is required.")
            phones.append(PhoneNumber(p.name.strip(), p.number.strip()))

        return Supermarket(
            id=supermarket_id,
            name=name,
            address=address,
            latitude=float(latitude),
            longitude=float(longitude),
            email=email,
            phone_numbers=tuple(phones),
        )

    def add_supermarket(
        self,
        name: str,
        address: str = "",
        latitude: float = 0.0,
        longitude: float = 0.0,
        email: Optional[str] = None,
        phone_numbers: Iterable[PhoneNumber | tuple[str, str]] = (),
    ) -> Supermarket:
        s = self._build(new_id(), name, address, latitude, longitude, email, phone_numbers)
        self.repo.add_supermarket(s)
        log.info("supermarket_added id=%s name=%s", s.id, s.name)
        return s

    def update_supermarket(
        self,
        supermarket_id: str,
        name: str,
        address: str = "",
        latitude: float = 0.0,
        longitude: float = 0.0,
        email: Optional[str] = None,
        phone_numbers: Iterable[PhoneNumber | tuple[str, str]] = (),
    ) -> Supermarket:
        s = self._build(supermarket_id, name, address, latitude, longitude, email, phone_numbers)
        if not self.repo.update_supermarket(s):
            raise NotFoundError("Supermarket not found.")
        return s

    def delete_supermarket(self, supermarket_id: str) -> None:
        if not self.repo.get_supermarket(supermarket_id):
            raise NotFoundError("Supermarket not found.")
        n = self.repo.count_sales_for_supermarket(supermarket_id)
        if n:
            raise ValidationError(f"Supermarket has {n} sale(s) and cannot be deleted.")
        if any(o.supermarket_id == supermarket_id for o in self.repo.load_orders()):
            raise ValidationError("Supermarket has orders and cannot be deleted.")
        self.repo.delete_supermarket(supermarket_id)
        log.warning("supermarket_deleted id=%s", supermarket_id)
