from datetime import datetime

import pytest
import requests
from conftest import make_sale, seeded_repo

from sdm.config import SupabaseSettings
from sdm.domain.errors import LedgerUnavailableError
from sdm.main import main
from sdm.repositories.supabase_rest import SupabaseRestLoader
from sdm.services.reporting_service import ReportingService

SETTINGS = SupabaseSettings(url="https://demo.supabase.co/", api_key="anon-key", timeout=3)

TABLES = {
    "sales": [
        {
            "id": "s1",
            "date": "2024-01-10T09:00:00",
            "supermarket_id": "m1",
            "quantity": 90,
            "cartons": 10,
            "price_per_unit": 180,
            "total_value": 16200,
            "is_paid": False,
            "remaining_amount": 6200,
            "fragrance_distribution": {"1": 10},
            "payments": [{"id": "p1", "date": "2024-01-20T00:00:00", "amount": 10000, "type": "virement"}],
        }
    ],
    "stock_history": [
        {"id": "h1", "date": "2024-01-01T00:00:00", "type": "added", "quantity": 30, "fragrance_distribution": {"1": 30}},
        {"id": "h2", "date": "2024-01-10T09:00:00", "type": "removed", "quantity": 10, "fragrance_distribution": {"1": 10}},
    ],
    "supermarkets": [{"id": "m1", "name": "Ardis", "address": "Alger"}],
    "fragrance_stock": [{"fragrance_id": "1", "name": "Lavande", "color": "#9F7AEA"}],
    "orders": [],
}


class FakeResponse:
    def __init__(self, payload, status: int = 200):
        self.payload = payload
        self.status = status

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f"{self.status} error")

    def json(self):
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload


class FakeSession:
    def __init__(self, tables=None, error=None, status: int = 200):
        self.tables = TABLES if tables is None else tables
        self.error = error
        self.status = status
        self.calls = []

    def get(self, url, params=None, headers=None, timeout=None):
        self.calls.append((url, params, headers, timeout))
        if self.error is not None:
            raise self.error
        table = url.rsplit("/", 1)[-1]
        return FakeResponse(self.tables.get(table, []), self.status)


def test_sales_are_loaded_with_payments_and_auth_headers():
    session = FakeSession()
    loader = SupabaseRestLoader(SETTINGS, session=session)

    sales = loader.load_sales()

    assert len(sales) == 1
    assert sales[0].remaining_amount == 6200
    assert sales[0].payments[0].amount == 10000
    url, params, headers, timeout = session.calls[0]
    assert url == "https://demo.supabase.co/rest/v1/sales"
    assert params["select"] == "*,payments(*)"
    assert headers["apikey"] == "anon-key"
    assert headers["Authorization"] == "Bearer anon-key"
    assert timeout == 3


def test_network_failure_raises_ledger_unavailable():
    loader = SupabaseRestLoader(SETTINGS, session=FakeSession(error=requests.ConnectionError("down")))
    with pytest.raises(LedgerUnavailableError):
        loader.load_sales()
    assert loader.ping() is False


def test_http_error_and_bad_json_raise_ledger_unavailable():
    with pytest.raises(LedgerUnavailableError):
        SupabaseRestLoader(SETTINGS, session=FakeSession(status=503)).load_orders()
    with pytest.raises(LedgerUnavailableError):
        SupabaseRestLoader(SETTINGS, session=FakeSession(tables={"sales": ValueError("not json")})).load_sales()
    with pytest.raises(LedgerUnavailableError, match="Unexpected response"):
        SupabaseRestLoader(SETTINGS, session=FakeSession(tables={"sales": {"message": "denied"}})).load_sales()


def test_malformed_row_raises_ledger_unavailable():
    session = FakeSession(tables={"stock_history": [{"id": "h1", "date": "2024-01-01", "type": "stolen", "quantity": 1}]})
    with pytest.raises(LedgerUnavailableError, match="Malformed stock_history"):
        SupabaseRestLoader(SETTINGS, session=session).load_stock_movements()


def test_reporting_reads_the_hosted_store():
    reporting = ReportingService(SupabaseRestLoader(SETTINGS, session=FakeSession()))

    d = reporting.dashboard(datetime(2024, 3, 15))

    assert d.stock_cartons == 20
    assert d.fragrance_levels[0].quantity == 20
    assert d.supplier_return.total_unpaid == 6200
    assert d.window.label == "4 mois"


def test_cli_aging_lists_pending_sales_from_the_hosted_store(monkeypatch, tmp_path, capsys):
    monkeypatch.setenv("SDM_HOME", str(tmp_path / "home"))
    monkeypatch.setenv("SDM_SUPABASE_URL", "https://demo.supabase.co")
    monkeypatch.setenv("SDM_SUPABASE_KEY", "anon-key")
    monkeypatch.setattr("sdm.repositories.supabase_rest.requests.Session", FakeSession)
    local = seeded_repo(tmp_path, "local.db")
    local.create_sale(make_sale("local-1", date=datetime(2023, 6, 1)))

    assert main(["--db", str(tmp_path / "local.db"), "aging", "--source", "supabase"]) == 0

    out = capsys.readouterr().out
    assert "Plus ancienne impayée: 10/01/2024" in out
    assert "10/01/2024  s1" in out
    assert "local-1" not in out


def test_hosted_rendezvous_are_read_from_the_sale_rows():
    sale = dict(
        TABLES["sales"][0],
        paymentRendezvous=[
            {"id": "rv1", "date": "2024-03-10T10:00:00", "expectedAmount": 3000, "isCompleted": False},
            {"id": "rv2", "date": "2024-03-20T10:00:00", "expectedAmount": 3200, "isCompleted": False},
            {"id": "rv0", "date": "2024-02-01T10:00:00", "expectedAmount": 1000, "isCompleted": True},
        ],
    )
    reporting = ReportingService(SupabaseRestLoader(SETTINGS, session=FakeSession(tables={"sales": [sale]})))

    overdue = reporting.rendezvous(datetime(2024, 3, 15), "overdue")
    summary = reporting.rendezvous_summary(datetime(2024, 3, 15))

    assert [item.rendezvous.id for item in overdue] == ["rv1"]
    assert overdue[0].remaining_amount == 6200
    assert summary.total == 2
    assert summary.overdue_count == 1
    assert summary.total_expected == 6200
