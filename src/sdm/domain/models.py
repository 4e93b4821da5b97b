from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
import uuid
from typing import Mapping, Optional

from sdm.domain.pricing import PriceTier


class PaymentType(str, Enum):
    VIREMENT = "virement"
    DIRECT = "direct"
    OTHER = "other"


class MovementType(str, Enum):
    ADDED = "added"
    REMOVED = "removed"
    ADJUSTED = "adjusted"


class OrderStatus(str, Enum):
    PENDING = "pending"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Payment:
    id: str
    date: datetime
    amount: float
    note: Optional[str] = None
    type: PaymentType = PaymentType.OTHER


@dataclass(frozen=True)
class PaymentRendezvous:
    """A collection appointment agreed with the supermarket for an open sale."""

    id: str
    date: datetime
    expected_amount: Optional[float] = None
    is_completed: bool = False
    note: Optional[str] = None


@dataclass(frozen=True)
class Sale:
    id: str
    date: datetime
    supermarket_id: str
    quantity: int
    cartons: int
    price_per_unit: float
    total_value: float
    is_paid: bool
    remaining_amount: float
    payments: tuple[Payment, ...] = ()
    payment_date: Optional[datetime] = None
    expected_payment_date: Optional[datetime] = None
    note: Optional[str] = None
    from_order: bool = False
    fragrance_distribution: Optional[Mapping[str, int]] = None
    rendezvous: tuple[PaymentRendezvous, ...] = ()

    @property
    def tier(self) -> Optional[PriceTier]:
        return PriceTier.from_price(self.price_per_unit)

    @property
    def paid_amount(self) -> float:
        return sum(float(p.amount) for p in self.payments)


@dataclass(frozen=True)
class StockMovement:
    id: str
    date: datetime
    quantity: int
    type: MovementType
    reason: str = ""
    fragrance_distribution: Optional[Mapping[str, int]] = None
    current_stock: Optional[int] = None


@dataclass(frozen=True)
class Fragrance:
    id: str
    name: str
    color: str


@dataclass(frozen=True)
class FragranceStock:
    fragrance_id: str
    name: str
    color: str
    quantity: int


@dataclass(frozen=True)
class PhoneNumber:
    name: str
    number: str


@dataclass(frozen=True)
class Supermarket:
    id: str
    name: str
    address: str
    latitude: float = 0.0
    longitude: float = 0.0
    email: Optional[str] = None
    phone_numbers: tuple[PhoneNumber, ...] = ()


@dataclass(frozen=True)
class Order:
    id: str
    date: datetime
    supermarket_id: str
    quantity: int
    price_per_unit: float
    status: OrderStatus = OrderStatus.PENDING
    supermarket_name: str = "Unknown"


def new_id() -> str:
    return uuid.uuid4().hex


DEFAULT_FRAGRANCES: tuple[Fragrance, ...] = (
    Fragrance("1", "Lavande", "#9F7AEA"),
    Fragrance("2", "Rose", "#F687B3"),
    Fragrance("3", "Citron", "#FBBF24"),
    Fragrance("4", "Fraîcheur Marine", "#60A5FA"),
    Fragrance("5", "Vanille", "#F59E0B"),
    Fragrance("6", "Grenade", "#F97316"),
    Fragrance("7", "Jasmin", "#10B981"),
    Fragrance("8", "Amande", "#8B5CF6"),
)


# ---------- Computation results ----------
@dataclass(frozen=True)
class AgingPeriod:
    bucket: str
    months_back: int
    oldest_unpaid_date: Optional[datetime]
    has_unpaid: bool


@dataclass(frozen=True)
class SupplierReturn:
    total_unpaid: float
    total_paid: float
    can_return: bool
    return_amount: float
    unpaid_count: int
    paid_count: int


@dataclass(frozen=True)
class PeriodSummary:
    quantity: int
    revenue: float
    profit: float
    paid_profit: float
    supplier_payment: float


@dataclass(frozen=True)
class ReportingWindow:
    data: PeriodSummary
    label: str
    start: datetime
    end: datetime
    aging: AgingPeriod


@dataclass(frozen=True)
class MonthlyBenefit:
    month: str
    quantity: int = 0
    value: float = 0.0
    net_benefit: float = 0.0


@dataclass(frozen=True)
class Alert:
    id: str
    type: str
    title: str
    message: str
    priority: str
    metadata: dict = field(default_factory=dict)


@dataclass(frozen=True)
class ScheduledRendezvous:
    rendezvous: PaymentRendezvous
    sale_id: str
    supermarket_id: str
    remaining_amount: float
    status: str


@dataclass(frozen=True)
class RendezvousSummary:
    total: int
    today_count: int
    overdue_count: int
    total_expected: float
