from __future__ import annotations

import json
import shutil
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Iterable, Mapping, Optional

from sdm.domain.errors import PaymentExceedsBalanceError, NotFoundError
from sdm.domain.models import (
    DEFAULT_FRAGRANCES,
    Fragrance,
    Order,
    OrderStatus,
    Payment,
    PaymentRendezvous,
    PhoneNumber,
    Sale,
    StockMovement,
    Supermarket,
)
from sdm.domain.normalize import (
    normalize_fragrance,
    normalize_movement,
    normalize_order,
    normalize_sale,
    normalize_supermarket,
)


def _iso(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat(sep=" ") if dt is not None else None


def _json(value: Optional[Mapping]) -> Optional[str]:
    return json.dumps(dict(value), ensure_ascii=False, sort_keys=True) if value else None


class SqliteRepository:
    def __init__(self, db_path: Path | str):
        self.db_path = str(db_path)

    def _conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON;")
        return conn

    def init_db(self) -> None:
        self.run_migrations()

    def run_migrations(self) -> None:
        conn = self._conn()
        backup_path = self._create_pre_migration_backup()
        try:
            cur = conn.cursor()
            cur.execute("BEGIN")
            cur.execute("CREATE TABLE IF NOT EXISTS schema_migrations (version INTEGER PRIMARY KEY, applied_at TEXT NOT NULL)")
            cur.execute("SELECT COALESCE(MAX(version), 0) FROM schema_migrations")
            current_version = int(cur.fetchone()[0])

            migrations = [
                (1, self._migration_v1_base),
                (2, self._migration_v2_fragrance_snapshot_and_alerts),
                (3, self._migration_v3_payment_rendezvous),
            ]

            for version, migration in migrations:
                if version <= current_version:
                    continue
                migration(cur)
                cur.execute(
                    "INSERT INTO schema_migrations (version, applied_at) VALUES (?, datetime('now'))",
                    (version,),
                )
            conn.commit()
        except Exception as exc:
            conn.rollback()
            self._restore_pre_migration_backup(backup_path)
            raise RuntimeError(
                "Database migration failed. Original database restored from automatic backup."
            ) from exc
        finally:
            conn.close()

    def _create_pre_migration_backup(self) -> Path | None:
        db_file = Path(self.db_path)
        if not db_file.exists() or db_file.stat().st_size == 0:
            return None
        backup_file = db_file.with_name(f"{db_file.stem}.pre_migration_{datetime.now().strftime('%Y%m%d%H%M%S')}.bak")
        shutil.copy2(db_file, backup_file)
        return backup_file

    def _restore_pre_migration_backup(self, backup_path: Path | None) -> None:
        if backup_path is None or not backup_path.exists():
            return
        shutil.copy2(backup_path, self.db_path)

    def _migration_v1_base(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS supermarkets (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            address TEXT NOT NULL DEFAULT '',
            latitude REAL NOT NULL DEFAULT 0,
            longitude REAL NOT NULL DEFAULT 0,
            email TEXT,
            phone_numbers TEXT,
            created_at TEXT NOT NULL DEFAULT (datetime('now'))
        )
        """
        )

        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS fragrances (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            color TEXT NOT NULL DEFAULT ''
        )
        """
        )
        cur.executemany(
            "INSERT OR IGNORE INTO fragrances (id, name, color) VALUES (?, ?, ?)",
            [(f.id, f.name, f.color) for f in DEFAULT_FRAGRANCES],
        )

        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS sales (
            id TEXT PRIMARY KEY,
            date TEXT NOT NULL,
            supermarket_id TEXT NOT NULL,
            quantity INTEGER NOT NULL CHECK(quantity >= 0),
            cartons INTEGER NOT NULL CHECK(cartons >= 0),
            price_per_unit REAL NOT NULL,
            total_value REAL NOT NULL CHECK(total_value >= 0),
            is_paid INTEGER NOT NULL DEFAULT 0 CHECK(is_paid IN (0,1)),
            payment_date TEXT,
            expected_payment_date TEXT,
            remaining_amount REAL NOT NULL CHECK(remaining_amount >= 0),
            note TEXT,
            from_order INTEGER NOT NULL DEFAULT 0,
            fragrance_distribution TEXT,
            FOREIGN KEY(supermarket_id) REFERENCES supermarkets(id)
        )
        """
        )

        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS payments (
            id TEXT PRIMARY KEY,
            sale_id TEXT NOT NULL,
            date TEXT NOT NULL,
            amount REAL NOT NULL CHECK(amount > 0),
            note TEXT,
            type TEXT NOT NULL DEFAULT 'other' CHECK(type IN ('virement','direct','other')),
            FOREIGN KEY(sale_id) REFERENCES sales(id) ON DELETE CASCADE
        )
        """
        )

        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS orders (
            id TEXT PRIMARY KEY,
            date TEXT NOT NULL,
            supermarket_id TEXT NOT NULL,
            quantity INTEGER NOT NULL CHECK(quantity > 0),
            price_per_unit REAL NOT NULL,
            status TEXT NOT NULL DEFAULT 'pending' CHECK(status IN ('pending','delivered','cancelled')),
            FOREIGN KEY(supermarket_id) REFERENCES supermarkets(id)
        )
        """
        )

        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS stock_history (
            id TEXT PRIMARY KEY,
            date TEXT NOT NULL,
            type TEXT NOT NULL CHECK(type IN ('added','removed','adjusted')),
            quantity INTEGER NOT NULL,
            current_stock INTEGER,
            reason TEXT NOT NULL DEFAULT '',
            fragrance_distribution TEXT
        )
        """
        )

    def _migration_v2_fragrance_snapshot_and_alerts(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS fragrance_stock (
                fragrance_id TEXT PRIMARY KEY,
                quantity INTEGER NOT NULL DEFAULT 0 CHECK(quantity >= 0),
                updated_at TEXT NOT NULL,
                FOREIGN KEY(fragrance_id) REFERENCES fragrances(id)
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS dismissed_alerts (
                alert_id TEXT PRIMARY KEY,
                dismissed_at TEXT NOT NULL DEFAULT (datetime('now'))
            )
            """
        )
        cur.execute("CREATE INDEX IF NOT EXISTS idx_sales_supermarket ON sales(supermarket_id)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_payments_sale ON payments(sale_id)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_stock_history_date ON stock_history(date)")

    def _migration_v3_payment_rendezvous(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS payment_rendezvous (
                id TEXT PRIMARY KEY,
                sale_id TEXT NOT NULL,
                date TEXT NOT NULL,
                expected_amount REAL CHECK(expected_amount IS NULL OR expected_amount >= 0),
                is_completed INTEGER NOT NULL DEFAULT 0 CHECK(is_completed IN (0,1)),
                note TEXT,
                FOREIGN KEY(sale_id) REFERENCES sales(id) ON DELETE CASCADE
            )
            """
        )
        cur.execute("CREATE INDEX IF NOT EXISTS idx_rendezvous_sale ON payment_rendezvous(sale_id)")

    def integrity_check(self) -> str:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("PRAGMA integrity_check")
        row = cur.fetchone()
        conn.close()
        return str(row[0]) if row else "unknown"

    # ---------- Supermarkets ----------
    def add_supermarket(self, supermarket: Supermarket) -> str:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            """
            INSERT INTO supermarkets (id, name, address, latitude, longitude, email, phone_numbers)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
            (
                supermarket.id,
                supermarket.name,
                supermarket.address,
                float(supermarket.latitude),
                float(supermarket.longitude),
                supermarket.email,
                self._phones_json(supermarket.phone_numbers),
            ),
        )
        conn.commit()
        conn.close()
        return supermarket.id

    def update_supermarket(self, supermarket: Supermarket) -> bool:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            """
            UPDATE supermarkets
            SET name=?, address=?, latitude=?, longitude=?, email=?, phone_numbers=?
            WHERE id=?
            """,
            (
                supermarket.name,
                supermarket.address,
                float(supermarket.latitude),
                float(supermarket.longitude),
                supermarket.email,
                self._phones_json(supermarket.phone_numbers),
                supermarket.id,
            ),
        )
        changed = cur.rowcount > 0
        conn.commit()
        conn.close()
        return bool(changed)

    def delete_supermarket(self, supermarket_id: str) -> bool:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("DELETE FROM supermarkets WHERE id=?", (supermarket_id,))
        changed = cur.rowcount > 0
        conn.commit()
        conn.close()
        return bool(changed)

    def count_sales_for_supermarket(self, supermarket_id: str) -> int:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("SELECT COUNT(*) FROM sales WHERE supermarket_id=?", (supermarket_id,))
        n = int(cur.fetchone()[0])
        conn.close()
        return n

    def get_supermarket(self, supermarket_id: str) -> Optional[Supermarket]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("SELECT * FROM supermarkets WHERE id=?", (supermarket_id,))
        r = cur.fetchone()
        conn.close()
        return normalize_supermarket(dict(r)) if r else None

    def load_supermarkets(self) -> list[Supermarket]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("SELECT * FROM supermarkets ORDER BY name")
        rows = cur.fetchall()
        conn.close()
        return [normalize_supermarket(dict(r)) for r in rows]

    @staticmethod
    def _phones_json(phones: Iterable[PhoneNumber]) -> str:
        return json.dumps([{"name": p.name, "number": p.number} for p in phones], ensure_ascii=False)

    # ---------- Fragrances ----------
    def load_fragrances(self) -> list[Fragrance]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("SELECT id, name, color FROM fragrances ORDER BY CAST(id AS INTEGER), id")
        rows = cur.fetchall()
        conn.close()
        return [normalize_fragrance(dict(r)) for r in rows]

    def save_fragrance_stock(self, levels: Mapping[str, int], updated_at: datetime) -> int:
        conn = self._conn()
        cur = conn.cursor()
        try:
            for fragrance_id, qty in levels.items():
                cur.execute(
                    """
                    INSERT INTO fragrance_stock (fragrance_id, quantity, updated_at) VALUES (?, ?, ?)
                    ON CONFLICT(fragrance_id) DO UPDATE SET quantity=excluded.quantity, updated_at=excluded.updated_at
                    """,
                    (fragrance_id, int(qty), _iso(updated_at)),
                )
            conn.commit()
            return len(levels)
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def load_fragrance_stock(self) -> dict[str, int]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("SELECT fragrance_id, quantity FROM fragrance_stock")
        rows = cur.fetchall()
        conn.close()
        return {str(r[0]): int(r[1]) for r in rows}

    # ---------- Sales ----------
    def _insert_payment(self, cur: sqlite3.Cursor, sale_id: str, p: Payment) -> None:
        cur.execute(
            """
            INSERT INTO payments (id, sale_id, date, amount, note, type)
            VALUES (?, ?, ?, ?, ?, ?)
        """,
            (p.id, sale_id, _iso(p.date), float(p.amount), p.note, p.type.value),
        )

    def _insert_rendezvous(self, cur: sqlite3.Cursor, sale_id: str, rv: PaymentRendezvous) -> None:
        cur.execute(
            """
            INSERT INTO payment_rendezvous (id, sale_id, date, expected_amount, is_completed, note)
            VALUES (?, ?, ?, ?, ?, ?)
        """,
            (
                rv.id,
                sale_id,
                _iso(rv.date),
                float(rv.expected_amount) if rv.expected_amount is not None else None,
                int(rv.is_completed),
                rv.note,
            ),
        )

    def _insert_movement(self, cur: sqlite3.Cursor, m: StockMovement) -> None:
        cur.execute(
            """
            INSERT INTO stock_history (id, date, type, quantity, current_stock, reason, fragrance_distribution)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
            (m.id, _iso(m.date), m.type.value, int(m.quantity), m.current_stock, m.reason, _json(m.fragrance_distribution)),
        )

    def create_sale(self, sale: Sale, movement: Optional[StockMovement] = None) -> str:
        conn = self._conn()
        cur = conn.cursor()
        try:
            cur.execute(
                """
                INSERT INTO sales (
                    id, date, supermarket_id, quantity, cartons, price_per_unit, total_value, is_paid,
                    payment_date, expected_payment_date, remaining_amount, note, from_order, fragrance_distribution
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    sale.id,
                    _iso(sale.date),
                    sale.supermarket_id,
                    int(sale.quantity),
                    int(sale.cartons),
                    float(sale.price_per_unit),
                    float(sale.total_value),
                    int(sale.is_paid),
                    _iso(sale.payment_date),
                    _iso(sale.expected_payment_date),
                    float(sale.remaining_amount),
                    sale.note,
                    int(sale.from_order),
                    _json(sale.fragrance_distribution),
                ),
            )
            for p in sale.payments:
                self._insert_payment(cur, sale.id, p)
            for rv in sale.rendezvous:
                self._insert_rendezvous(cur, sale.id, rv)
            if movement is not None:
                self._insert_movement(cur, movement)
            conn.commit()
            return sale.id
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def delete_sale(self, sale_id: str, restock: Optional[StockMovement] = None) -> bool:
        conn = self._conn()
        cur = conn.cursor()
        try:
            cur.execute("DELETE FROM payments WHERE sale_id=?", (sale_id,))
            cur.execute("DELETE FROM payment_rendezvous WHERE sale_id=?", (sale_id,))
            cur.execute("DELETE FROM sales WHERE id=?", (sale_id,))
            changed = cur.rowcount > 0
            if changed and restock is not None:
                self._insert_movement(cur, restock)
            conn.commit()
            return bool(changed)
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def append_payment(self, sale_id: str, payment: Payment) -> Sale:
        """Insert the payment and move the sale balance in one transaction.

        The UPDATE is guarded so the balance can never go below zero even if
        another writer got in between the caller's check and this call.
        """
        conn = self._conn()
        cur = conn.cursor()
        try:
            cur.execute("BEGIN IMMEDIATE")
            cur.execute("SELECT remaining_amount FROM sales WHERE id=?", (sale_id,))
            row = cur.fetchone()
            if not row:
                raise NotFoundError(f"Sale not found: {sale_id}")

            remaining = float(row[0]) - float(payment.amount)
            if remaining < -0.005:
                raise PaymentExceedsBalanceError(
                    f"Payment {payment.amount} exceeds remaining balance {float(row[0])}."
                )
            remaining = max(0.0, remaining)
            is_paid = remaining <= 0.005

            self._insert_payment(cur, sale_id, payment)
            cur.execute(
                """
                UPDATE sales
                SET remaining_amount=?, is_paid=?, payment_date=?
                WHERE id=? AND remaining_amount >= ?
                """,
                (0.0 if is_paid else remaining, int(is_paid), _iso(payment.date) if is_paid else None, sale_id, float(payment.amount) - 0.005),
            )
            if cur.rowcount == 0:
                raise PaymentExceedsBalanceError("Sale balance changed while recording the payment.")
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

        sale = self.get_sale(sale_id)
        if sale is None:
            raise NotFoundError(f"Sale not found: {sale_id}")
        return sale

    def add_rendezvous(self, sale_id: str, rendezvous: PaymentRendezvous) -> str:
        conn = self._conn()
        cur = conn.cursor()
        try:
            self._insert_rendezvous(cur, sale_id, rendezvous)
            conn.commit()
            return rendezvous.id
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def complete_rendezvous(self, sale_id: str, rendezvous_id: str) -> bool:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            "UPDATE payment_rendezvous SET is_completed=1 WHERE id=? AND sale_id=?",
            (rendezvous_id, sale_id),
        )
        changed = cur.rowcount > 0
        conn.commit()
        conn.close()
        return bool(changed)

    def _payments_by_sale(self, cur: sqlite3.Cursor, sale_id: Optional[str] = None) -> dict[str, list[dict]]:
        if sale_id is None:
            cur.execute("SELECT * FROM payments ORDER BY rowid")
        else:
            cur.execute("SELECT * FROM payments WHERE sale_id=? ORDER BY rowid", (sale_id,))
        out: dict[str, list[dict]] = {}
        for r in cur.fetchall():
            out.setdefault(str(r["sale_id"]), []).append(dict(r))
        return out

    def _rendezvous_by_sale(self, cur: sqlite3.Cursor, sale_id: Optional[str] = None) -> dict[str, list[dict]]:
        if sale_id is None:
            cur.execute("SELECT * FROM payment_rendezvous ORDER BY date, rowid")
        else:
            cur.execute("SELECT * FROM payment_rendezvous WHERE sale_id=? ORDER BY date, rowid", (sale_id,))
        out: dict[str, list[dict]] = {}
        for r in cur.fetchall():
            out.setdefault(str(r["sale_id"]), []).append(dict(r))
        return out

    def _sales_where(self, where: str = "", params: tuple = ()) -> list[Sale]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT * FROM sales {where} ORDER BY date, rowid", params)
        rows = [dict(r) for r in cur.fetchall()]
        payments = self._payments_by_sale(cur)
        rendezvous = self._rendezvous_by_sale(cur)
        conn.close()
        for r in rows:
            r["payments"] = payments.get(str(r["id"]), [])
            r["payment_rendezvous"] = rendezvous.get(str(r["id"]), [])
        return [normalize_sale(r) for r in rows]

    def get_sale(self, sale_id: str) -> Optional[Sale]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("SELECT * FROM sales WHERE id=?", (sale_id,))
        r = cur.fetchone()
        if not r:
            conn.close()
            return None
        row = dict(r)
        row["payments"] = self._payments_by_sale(cur, sale_id).get(sale_id, [])
        row["payment_rendezvous"] = self._rendezvous_by_sale(cur, sale_id).get(sale_id, [])
        conn.close()
        return normalize_sale(row)

    def load_sales(self) -> list[Sale]:
        return self._sales_where()

    def sales_for_supermarket(self, supermarket_id: str) -> list[Sale]:
        return self._sales_where("WHERE supermarket_id=?", (supermarket_id,))

    # ---------- Orders ----------
    def add_order(self, order: Order) -> str:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            """
            INSERT INTO orders (id, date, supermarket_id, quantity, price_per_unit, status)
            VALUES (?, ?, ?, ?, ?, ?)
        """,
            (order.id, _iso(order.date), order.supermarket_id, int(order.quantity), float(order.price_per_unit), order.status.value),
        )
        conn.commit()
        conn.close()
        return order.id

    def _orders_where(self, where: str = "", params: tuple = ()) -> list[Order]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            f"""
            SELECT o.*, s.name AS supermarket_name
            FROM orders o
            LEFT JOIN supermarkets s ON s.id = o.supermarket_id
            {where}
            ORDER BY o.date DESC
            """,
            params,
        )
        rows = cur.fetchall()
        conn.close()
        return [normalize_order(dict(r)) for r in rows]

    def get_order(self, order_id: str) -> Optional[Order]:
        rows = self._orders_where("WHERE o.id=?", (order_id,))
        return rows[0] if rows else None

    def load_orders(self) -> list[Order]:
        return self._orders_where()

    def update_order_status(self, order_id: str, status: OrderStatus) -> bool:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("UPDATE orders SET status=? WHERE id=?", (status.value, order_id))
        changed = cur.rowcount > 0
        conn.commit()
        conn.close()
        return bool(changed)

    def delete_order(self, order_id: str) -> bool:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("DELETE FROM orders WHERE id=?", (order_id,))
        changed = cur.rowcount > 0
        conn.commit()
        conn.close()
        return bool(changed)

    # ---------- Stock ----------
    def append_movement(self, movement: StockMovement) -> str:
        conn = self._conn()
        cur = conn.cursor()
        try:
            self._insert_movement(cur, movement)
            conn.commit()
            return movement.id
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def load_stock_movements(self) -> list[StockMovement]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("SELECT * FROM stock_history ORDER BY date, rowid")
        rows = cur.fetchall()
        conn.close()
        return [normalize_movement(dict(r)) for r in rows]

    def recent_movements(self, limit: int = 100) -> list[StockMovement]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("SELECT * FROM stock_history ORDER BY date DESC, rowid DESC LIMIT ?", (int(limit),))
        rows = cur.fetchall()
        conn.close()
        return [normalize_movement(dict(r)) for r in rows]

    # ---------- Alerts ----------
    def dismiss_alert(self, alert_id: str) -> None:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("INSERT OR IGNORE INTO dismissed_alerts (alert_id) VALUES (?)", (alert_id,))
        conn.commit()
        conn.close()

    def dismissed_alert_ids(self) -> set[str]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("SELECT alert_id FROM dismissed_alerts")
        rows = cur.fetchall()
        conn.close()
        return {str(r[0]) for r in rows}
