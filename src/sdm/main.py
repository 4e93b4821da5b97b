from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime
from typing import Optional, Sequence

from sdm.application.container import build_container
from sdm.config import get_app_paths, load_supabase_settings
from sdm.domain.errors import AppError
from sdm.domain.normalize import parse_datetime
from sdm.domain.pricing import format_dzd
from sdm.engines.profitability import month_bounds
from sdm.engines.receivables import RENDEZVOUS_FILTERS
from sdm.logging_config import setup_logging

log = logging.getLogger(__name__)


def _print_dashboard(c) -> None:
    d = c.reporting.dashboard()
    w = d.window
    print(f"Période: {w.label} ({w.start:%d/%m/%Y} -> {w.end:%d/%m/%Y})")
    print(f"  Quantité vendue : {w.data.quantity} unités")
    print(f"  Chiffre d'affaires : {format_dzd(w.data.revenue)}")
    print(f"  Bénéfice estimé : {format_dzd(w.data.profit)}")
    print(f"  Bénéfice encaissé : {format_dzd(w.data.paid_profit)}")
    print(f"  Paiement fournisseur : {format_dzd(w.data.supplier_payment)}")
    r = d.supplier_return
    status = "oui" if r.can_return else f"non ({r.unpaid_count} vente(s) impayée(s))"
    print(f"Retour fournisseur possible: {status}, montant {format_dzd(r.return_amount)}")
    print(f"Stock: {d.stock_cartons} cartons ({d.stock_units} unités, {d.stock_percentage:.1f}%)")


def _print_aging(c) -> None:
    a = c.reporting.aging()
    if not a.has_unpaid:
        print("Aucune vente impayée.")
        return
    print(f"Plus ancienne impayée: {a.oldest_unpaid_date:%d/%m/%Y} ({a.bucket}, {a.months_back} mois)")
    for s in c.reporting.pending_sales():
        print(f"  {s.date:%d/%m/%Y}  {s.id}  restant {format_dzd(s.remaining_amount)}")


def _print_rendezvous(c, filter: str) -> None:
    summary = c.reporting.rendezvous_summary()
    print(
        f"Rendez-vous: {summary.total} ouverts, {summary.today_count} aujourd'hui, "
        f"{summary.overdue_count} en retard, attendu {format_dzd(summary.total_expected)}"
    )
    for item in c.reporting.rendezvous(filter=filter):
        rv = item.rendezvous
        expected = format_dzd(rv.expected_amount) if rv.expected_amount else "-"
        print(f"  {rv.date:%d/%m/%Y}  {item.status:<8}  {item.sale_id}  attendu {expected}  restant {format_dzd(item.remaining_amount)}")


def _print_stock(c) -> None:
    d = c.reporting.dashboard()
    print(f"Stock total: {d.stock_cartons} cartons")
    for f in d.fragrance_levels:
        print(f"  {f.name:<20} {f.quantity:>5} cartons")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sdm", description="Soap distribution ledger")
    parser.add_argument("--db", help="SQLite database path (defaults to the per-user data dir)")
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    for name in ("dashboard", "aging", "stock", "rendezvous"):
        p = sub.add_parser(name)
        p.add_argument("--source", choices=("sqlite", "supabase"), default="sqlite")
        if name == "rendezvous":
            p.add_argument("--filter", choices=RENDEZVOUS_FILTERS, default="all")

    sub.add_parser("sync-stock")

    p = sub.add_parser("export")
    p.add_argument("--start", help="ISO date, defaults to the first day of this month")
    p.add_argument("--end", help="ISO date, defaults to the last day of this month")
    p.add_argument("--out", help="Workbook path, defaults to the exports dir")

    p = sub.add_parser("import-restock")
    p.add_argument("path")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    paths = get_app_paths()
    setup_logging(paths.logs_dir, level=logging.DEBUG if args.verbose else logging.INFO)

    try:
        c = build_container(
            args.db or paths.db_path,
            supabase_settings=load_supabase_settings(),
            source=getattr(args, "source", "sqlite"),
        )

        if args.command == "dashboard":
            _print_dashboard(c)
        elif args.command == "aging":
            _print_aging(c)
        elif args.command == "stock":
            _print_stock(c)
        elif args.command == "rendezvous":
            _print_rendezvous(c, args.filter)
        elif args.command == "sync-stock":
            snapshot = c.stock.sync_fragrance_stock()
            print(f"{len(snapshot)} parfums synchronisés, {sum(snapshot.values())} cartons.")
        elif args.command == "export":
            now = datetime.now()
            first, last = month_bounds(now.year, now.month)
            start = parse_datetime(args.start, "start") if args.start else first
            end = parse_datetime(args.end, "end") if args.end else last
            if args.end and len(args.end) == 10:
                end = end.replace(hour=23, minute=59, second=59)
            out = args.out or str(paths.exports_dir / f"recap_{start:%Y%m%d}_{end:%Y%m%d}.xlsx")
            c.reporting.export_recap_excel(out, start, end)
            print(f"Export écrit: {out}")
        elif args.command == "import-restock":
            movement, skipped = c.excel.import_restock_excel(args.path)
            added = movement.quantity if movement else 0
            print(f"{added} cartons ajoutés, {skipped} ligne(s) ignorée(s).")
    except (AppError, ValueError) as e:
        log.error("command_failed command=%s error=%s", args.command, e)
        print(f"Erreur: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
