from __future__ import annotations

from openpyxl import load_workbook

from sdm.domain.errors import ValidationError
from sdm.domain.models import StockMovement
import logging

log = logging.getLogger(__name__)


def _fragrance_key(value) -> str:
    text = str(value).strip().lower()
    # numeric cells come back as 1.0
    try:
        return str(int(float(text)))
    except (ValueError, OverflowError):
        return text


class ExcelService:
    def __init__(self, repo, stock_service):
        self.repo = repo
        self.stock = stock_service

    def import_restock_excel(self, path: str) -> tuple[StockMovement | None, int]:
        """
        Excel represents RESTOCK (cartons to add), not absolute stock.
        Headers:
          fragrance | cartons
        The fragrance column takes the fragrance id or its name.
        Returns the single movement recorded for the sheet and the skipped row count.
        """
        wb = load_workbook(path)
        ws = wb.active

        headers = {}
        for col in range(1, ws.max_column + 1):
            v = ws.cell(row=1, column=col).value
            if isinstance(v, str):
                headers[v.strip().lower()] = col

        required = ["fragrance", "cartons"]
        for r in required:
            if r not in headers:
                raise ValidationError(f"Missing column header: {r}")

        by_key = {}
        for f in self.repo.load_fragrances():
            by_key[f.id.lower()] = f.id
            by_key[f.name.strip().lower()] = f.id

        distribution: dict[str, int] = {}
        skipped = 0

        for row in range(2, ws.max_row + 1):
            fragrance = ws.cell(row=row, column=headers["fragrance"]).value
            cartons = ws.cell(row=row, column=headers["cartons"]).value

            if fragrance is None and cartons is None:
                continue
            fid = by_key.get(_fragrance_key(fragrance)) if fragrance is not None else None
            if fid is None:
                log.warning("Excel import skipped row %s: unknown fragrance %r", row, fragrance)
                skipped += 1
                continue
            try:
                qty = int(float(cartons))
            except (TypeError, ValueError):
                log.warning("Excel import skipped row %s: invalid cartons %r", row, cartons)
                skipped += 1
                continue
            if qty < 0:
                log.warning("Excel import skipped row %s: negative cartons %s", row, qty)
                skipped += 1
                continue
            if qty:
                distribution[fid] = distribution.get(fid, 0) + qty

        if not distribution:
            return None, skipped

        movement = self.stock.add_stock(distribution, reason="Import Excel")
        log.info("excel_restock_imported cartons=%s fragrances=%s skipped=%s", movement.quantity, len(distribution), skipped)
        return movement, skipped
