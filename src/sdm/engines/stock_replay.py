"""Current stock derived by replaying the append-only movement history."""
from __future__ import annotations

from typing import Iterable

from sdm.domain.models import MovementType, StockMovement
from sdm.domain.pricing import MAX_STOCK_UNITS


def chronological(movements: Iterable[StockMovement]) -> list[StockMovement]:
    # sorted() is stable: same-date movements keep ledger order
    return sorted(movements, key=lambda m: m.date)


def signed_delta(movement_type: MovementType, quantity: int) -> int:
    if movement_type == MovementType.REMOVED:
        return -quantity
    # added, and adjusted whose quantity already carries its sign
    return quantity


def replay_aggregate_stock(movements: Iterable[StockMovement]) -> int:
    level = 0
    for m in chronological(movements):
        level += signed_delta(m.type, m.quantity)
    return level


def replay_fragrance_balances(movements: Iterable[StockMovement]) -> dict[str, int]:
    """Per-fragrance running totals before clamping; may be negative."""
    levels: dict[str, int] = {}
    for m in chronological(movements):
        if not m.fragrance_distribution:
            continue
        for fragrance_id, qty in m.fragrance_distribution.items():
            levels[fragrance_id] = levels.get(fragrance_id, 0) + signed_delta(m.type, int(qty))
    return levels


def replay_fragrance_stock(movements: Iterable[StockMovement]) -> dict[str, int]:
    return {fid: max(0, qty) for fid, qty in replay_fragrance_balances(movements).items()}


def stock_divergence(movements: Iterable[StockMovement]) -> int:
    """Aggregate level minus the sum of the (clamped) fragrance levels."""
    movements = list(movements)
    return replay_aggregate_stock(movements) - sum(replay_fragrance_stock(movements).values())


def stock_percentage(units: int, max_units: int = MAX_STOCK_UNITS) -> float:
    if max_units == 0:
        return 0.0
    return min(units / max_units * 100, 100.0)
