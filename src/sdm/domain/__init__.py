from .models import (
    Fragrance,
    FragranceStock,
    MovementType,
    Order,
    OrderStatus,
    Payment,
    PaymentType,
    Sale,
    StockMovement,
    Supermarket,
)
from .errors import (
    ValidationError,
    NotFoundError,
    InsufficientStockError,
    PaymentExceedsBalanceError,
    LedgerUnavailableError,
)
from .pricing import PriceTier

__all__ = [
    "Fragrance",
    "FragranceStock",
    "MovementType",
    "Order",
    "OrderStatus",
    "Payment",
    "PaymentType",
    "Sale",
    "StockMovement",
    "Supermarket",
    "PriceTier",
    "ValidationError",
    "NotFoundError",
    "InsufficientStockError",
    "PaymentExceedsBalanceError",
    "LedgerUnavailableError",
]
