import sys
from datetime import datetime
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


def make_sale(
    sale_id: str = "s1",
    date: datetime = datetime(2024, 1, 10),
    cartons: int = 10,
    price: float = 180,
    is_paid: bool = False,
    remaining=None,
    payment_date=None,
    payments=(),
    supermarket_id: str = "m1",
    expected_payment_date=None,
    distribution=None,
):
    from sdm.domain.models import Sale

    quantity = cartons * 9
    total = quantity * price
    if remaining is None:
        remaining = 0 if is_paid else total - sum(p.amount for p in payments)
    return Sale(
        id=sale_id,
        date=date,
        supermarket_id=supermarket_id,
        quantity=quantity,
        cartons=cartons,
        price_per_unit=price,
        total_value=total,
        is_paid=is_paid,
        remaining_amount=remaining,
        payments=tuple(payments),
        payment_date=payment_date,
        expected_payment_date=expected_payment_date,
        fragrance_distribution=distribution,
    )


def make_movement(kind: str, qty: int, date: datetime = datetime(2024, 1, 1), distribution=None, movement_id=None):
    from sdm.domain.models import MovementType, StockMovement

    make_movement.counter += 1
    return StockMovement(
        id=movement_id or f"m{make_movement.counter}",
        date=date,
        quantity=qty,
        type=MovementType(kind),
        fragrance_distribution=distribution,
    )


make_movement.counter = 0


def seeded_repo(tmp_path: Path, name: str = "sdm.db"):
    """Fresh database with one supermarket ("m1") and the default fragrances."""
    from sdm.domain.models import Supermarket
    from sdm.repositories.sqlite_repo import SqliteRepository

    repo = SqliteRepository(tmp_path / name)
    repo.init_db()
    repo.add_supermarket(Supermarket(id="m1", name="Uno Bab Ezzouar", address="Alger"))
    return repo
