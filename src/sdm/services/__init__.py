from .stock_service import StockService
from .sales_service import SalesService
from .payment_service import PaymentService
from .order_service import OrderService
from .supermarket_service import SupermarketService
from .excel_service import ExcelService
from .reporting_service import ReportingService
from .alert_service import AlertService

__all__ = [
    "StockService",
    "SalesService",
    "PaymentService",
    "OrderService",
    "SupermarketService",
    "ExcelService",
    "ReportingService",
    "AlertService",
]
