from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from sdm.domain.errors import ValidationError

UNITS_PER_CARTON = 9
MAX_STOCK_UNITS = 2700


@dataclass(frozen=True)
class TierTerms:
    price_per_unit: float
    margin_per_unit: float
    supplier_cost_per_unit: float
    label: str


class PriceTier(Enum):
    HIGH = TierTerms(price_per_unit=180, margin_per_unit=25, supplier_cost_per_unit=155, label="Option 1 (180 DZD)")
    LOW = TierTerms(price_per_unit=166, margin_per_unit=17, supplier_cost_per_unit=149, label="Option 2 (166 DZD)")

    @property
    def price_per_unit(self) -> float:
        return self.value.price_per_unit

    @property
    def margin_per_unit(self) -> float:
        return self.value.margin_per_unit

    @property
    def supplier_cost_per_unit(self) -> float:
        return self.value.supplier_cost_per_unit

    @property
    def label(self) -> str:
        return self.value.label

    @classmethod
    def from_price(cls, price_per_unit: float) -> Optional["PriceTier"]:
        for tier in cls:
            if float(tier.price_per_unit) == float(price_per_unit):
                return tier
        return None

    @classmethod
    def parse(cls, value: "PriceTier | str | float | int") -> "PriceTier":
        """Accept a tier, its name ("high"/"low") or its unit price."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str) and value.strip().upper() in cls.__members__:
            return cls[value.strip().upper()]
        try:
            tier = cls.from_price(float(value))
        except (TypeError, ValueError):
            tier = None
        if tier is None:
            raise ValidationError(f"Unknown price tier: {value!r}")
        return tier


def cartons_to_units(cartons: int) -> int:
    return int(cartons) * UNITS_PER_CARTON


def units_to_cartons(units: int) -> int:
    return int(units) // UNITS_PER_CARTON


def format_dzd(value: float) -> str:
    # fr-DZ groups thousands with a narrow no-break space
    whole = f"{round(float(value)):,}".replace(",", "\u202f")
    return f"{whole} DZD"
