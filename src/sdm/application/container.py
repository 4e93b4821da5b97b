from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from sdm.config import SupabaseSettings
from sdm.repositories.contracts import LedgerSource
from sdm.repositories.sqlite_repo import SqliteRepository
from sdm.repositories.supabase_rest import SupabaseRestLoader
from sdm.services.alert_service import AlertService
from sdm.services.excel_service import ExcelService
from sdm.services.order_service import OrderService
from sdm.services.payment_service import PaymentService
from sdm.services.reporting_service import ReportingService
from sdm.services.sales_service import SalesService
from sdm.services.stock_service import StockService
from sdm.services.supermarket_service import SupermarketService


@dataclass(frozen=True)
class AppContainer:
    repo: SqliteRepository
    source: LedgerSource
    stock: StockService
    sales: SalesService
    payments: PaymentService
    orders: OrderService
    supermarkets: SupermarketService
    excel: ExcelService
    reporting: ReportingService
    alerts: AlertService


def build_container(
    db_path: Path | str,
    supabase_settings: Optional[SupabaseSettings] = None,
    source: str = "sqlite",
) -> AppContainer:
    """Wire the services. Writes always go to SQLite; reports read ``source``."""
    repo = SqliteRepository(db_path)
    repo.init_db()

    if source == "supabase":
        if supabase_settings is None:
            raise ValueError("Hosted store selected but SDM_SUPABASE_URL / SDM_SUPABASE_KEY are not set.")
        ledger: LedgerSource = SupabaseRestLoader(supabase_settings)
    elif source == "sqlite":
        ledger = repo
    else:
        raise ValueError(f"Unknown ledger source: {source}")

    stock = StockService(repo)
    sales = SalesService(repo, stock)
    payments = PaymentService(repo)
    orders = OrderService(repo, sales)
    supermarkets = SupermarketService(repo)
    excel = ExcelService(repo, stock)
    reporting = ReportingService(ledger)
    alerts = AlertService(ledger, repo)

    return AppContainer(
        repo=repo,
        source=ledger,
        stock=stock,
        sales=sales,
        payments=payments,
        orders=orders,
        supermarkets=supermarkets,
        excel=excel,
        reporting=reporting,
        alerts=alerts,
    )
