from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.table import Table, TableStyleInfo

from sdm.domain.errors import ValidationError
from sdm.domain.models import (
    AgingPeriod,
    FragranceStock,
    MonthlyBenefit,
    RendezvousSummary,
    ReportingWindow,
    Sale,
    ScheduledRendezvous,
    SupplierReturn,
)
from sdm.domain.pricing import UNITS_PER_CARTON
from sdm.engines.profitability import (
    compute_period,
    daily_sales_values,
    monthly_benefits,
    monthly_paid_benefits,
    profit_margin,
    sale_profit,
    select_reporting_window,
)
from sdm.engines.receivables import (
    compute_aging_period,
    compute_supplier_return,
    pending_sales,
    rendezvous_schedule,
    rendezvous_summary,
)
from sdm.engines.stock_replay import (
    replay_aggregate_stock,
    replay_fragrance_stock,
    stock_divergence,
    stock_percentage,
)

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Dashboard:
    window: ReportingWindow
    aging: AgingPeriod
    supplier_return: SupplierReturn
    stock_cartons: int
    stock_units: int
    stock_percentage: float
    fragrance_levels: list[FragranceStock]
    last_7_days: list[tuple[str, float]]


@dataclass(frozen=True)
class MonthlyBreakdown:
    estimated: list[MonthlyBenefit]
    realised: list[MonthlyBenefit]


class ReportingService:
    """Read-only figures over any ledger source (local SQLite or the hosted store)."""

    def __init__(self, source):
        self.source = source

    def dashboard(self, now: Optional[datetime] = None) -> Dashboard:
        now = now or datetime.now()
        sales = self.source.load_sales()
        movements = self.source.load_stock_movements()

        cartons = replay_aggregate_stock(movements)
        divergence = stock_divergence(movements)
        if divergence:
            log.warning("stock_divergence aggregate_minus_fragrances=%s", divergence)

        levels = replay_fragrance_stock(movements)
        fragrances = [
            FragranceStock(fragrance_id=f.id, name=f.name, color=f.color, quantity=levels.get(f.id, 0))
            for f in self.source.load_fragrances()
        ]

        window = select_reporting_window(sales, now)
        units = cartons * UNITS_PER_CARTON
        return Dashboard(
            window=window,
            aging=window.aging,
            supplier_return=compute_supplier_return(sales),
            stock_cartons=cartons,
            stock_units=units,
            stock_percentage=stock_percentage(units),
            fragrance_levels=fragrances,
            last_7_days=daily_sales_values(sales, 7, now),
        )

    def aging(self, now: Optional[datetime] = None) -> AgingPeriod:
        return compute_aging_period(self.source.load_sales(), now)

    def pending_sales(self) -> list[Sale]:
        return pending_sales(self.source.load_sales())

    def rendezvous(self, now: Optional[datetime] = None, filter: str = "all") -> list[ScheduledRendezvous]:
        return rendezvous_schedule(self.source.load_sales(), now, filter)

    def rendezvous_summary(self, now: Optional[datetime] = None) -> RendezvousSummary:
        return rendezvous_summary(self.source.load_sales(), now)

    def monthly_breakdown(self) -> MonthlyBreakdown:
        sales = self.source.load_sales()
        return MonthlyBreakdown(estimated=monthly_benefits(sales), realised=monthly_paid_benefits(sales))

    def export_recap_excel(self, path: str, start: datetime, end: datetime) -> None:
        if start > end:
            raise ValidationError("Start date must be before end date.")
        wb = Workbook()

        def money(cell):
            cell.number_format = "#,##0.00"

        def pct(cell):
            cell.number_format = "0.00%"

        def bold_row(ws, r):
            for c in ws[r]:
                c.font = Font(bold=True)

        def set_widths(ws, widths: dict[str, int]):
            for col, w in widths.items():
                ws.column_dimensions[col].width = w

        def add_table(ws, name: str, start_row: int, start_col: int, end_row: int, end_col: int):
            ref = f"{get_column_letter(start_col)}{start_row}:{get_column_letter(end_col)}{end_row}"
            tab = Table(displayName=name, ref=ref)
            tab.tableStyleInfo = TableStyleInfo(
                name="TableStyleMedium9",
                showRowStripes=True,
                showColumnStripes=False,
            )
            ws.add_table(tab)

        all_sales = self.source.load_sales()
        sales_rows = sorted((s for s in all_sales if start <= s.date <= end), key=lambda s: s.date)
        names = {m.id: m.name for m in self.source.load_supermarkets()}
        summary = compute_period(all_sales, start, end)
        supplier = compute_supplier_return(sales_rows)

        # -------- 1) Summary --------
        ws = wb.active
        ws.title = "Summary"
        ws["A1"] = "Summary"
        ws["A1"].font = Font(bold=True, size=14)

        ws["A3"] = "Window"
        ws["B3"] = f"{start:%d/%m/%Y}  ->  {end:%d/%m/%Y}"

        rows = [
            ("Sales count", len(sales_rows), "int"),
            ("Units sold", int(summary.quantity), "int"),
            ("Cartons sold", sum(s.cartons for s in sales_rows), "int"),
            ("Revenue DZD", float(summary.revenue), "money"),
            ("Gross profit DZD", float(summary.profit), "money"),
            ("Paid profit DZD", float(summary.paid_profit), "money"),
            ("Supplier payment DZD", float(summary.supplier_payment), "money"),
            ("Outstanding DZD", float(supplier.total_unpaid), "money"),
            ("Profit margin", profit_margin(summary.profit, summary.revenue) / 100, "pct"),
        ]

        start_row = 5
        for i, (label, val, kind) in enumerate(rows):
            r = start_row + i
            ws[f"A{r}"] = label
            ws[f"B{r}"] = val
            if kind == "money":
                money(ws[f"B{r}"])
            elif kind == "pct":
                pct(ws[f"B{r}"])

        set_widths(ws, {"A": 28, "B": 34})

        # -------- 2) Sales Detail --------
        ws2 = wb.create_sheet("Sales Detail")
        ws2.append([
            "Sale ID", "Date", "Supermarket",
            "Cartons", "Units", "Unit Price DZD",
            "Total DZD", "Remaining DZD", "Profit DZD",
            "Paid", "Payment Date", "Expected Payment",
        ])
        bold_row(ws2, 1)

        out_row = 2
        for s in sales_rows:
            ws2.append([
                s.id, s.date, names.get(s.supermarket_id, "Unknown"),
                int(s.cartons), int(s.quantity), float(s.price_per_unit),
                float(s.total_value), float(s.remaining_amount), float(sale_profit(s)),
                "yes" if s.is_paid else "no", s.payment_date, s.expected_payment_date,
            ])
            for col in "FGHI":
                money(ws2[f"{col}{out_row}"])
            out_row += 1

        ws2.freeze_panes = "A2"
        set_widths(ws2, {
            "A": 34, "B": 20, "C": 28,
            "D": 9, "E": 9, "F": 14,
            "G": 16, "H": 16, "I": 14,
            "J": 7, "K": 20, "L": 20,
        })
        if ws2.max_row >= 2:
            add_table(ws2, "SalesDetail", 1, 1, ws2.max_row, 12)

        # -------- 3) Payments --------
        ws3 = wb.create_sheet("Payments")
        ws3.append(["Sale ID", "Supermarket", "Payment Date", "Type", "Amount DZD", "Note"])
        bold_row(ws3, 1)

        out_row = 2
        for s in sales_rows:
            for p in s.payments:
                ws3.append([s.id, names.get(s.supermarket_id, "Unknown"), p.date, p.type.value, float(p.amount), p.note or ""])
                money(ws3[f"E{out_row}"])
                out_row += 1

        ws3.freeze_panes = "A2"
        set_widths(ws3, {"A": 34, "B": 28, "C": 20, "D": 10, "E": 16, "F": 30})
        if ws3.max_row >= 2:
            add_table(ws3, "PaymentsDetail", 1, 1, ws3.max_row, 6)

        # -------- 4) Stock --------
        movements = self.source.load_stock_movements()
        levels = replay_fragrance_stock(movements)
        ws4 = wb.create_sheet("Stock")
        ws4["A1"] = "Stock"
        ws4["A1"].font = Font(bold=True, size=14)
        ws4["A3"] = "Cartons in stock"
        ws4["B3"] = replay_aggregate_stock(movements)

        ws4.append([])
        ws4.append(["Fragrance", "Cartons", "Units"])
        bold_row(ws4, 5)
        for f in self.source.load_fragrances():
            qty = levels.get(f.id, 0)
            ws4.append([f.name, qty, qty * UNITS_PER_CARTON])

        set_widths(ws4, {"A": 24, "B": 12, "C": 12})
        if ws4.max_row >= 6:
            add_table(ws4, "FragranceStock", 5, 1, ws4.max_row, 3)

        wb.save(path)
        log.info("recap_exported path=%s sales=%s", path, len(sales_rows))
