from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Mapping, Optional

from sdm.domain.errors import InsufficientStockError, NotFoundError, ValidationError
from sdm.domain.models import FragranceStock, MovementType, StockMovement, new_id
from sdm.engines.stock_replay import (
    replay_aggregate_stock,
    replay_fragrance_balances,
    replay_fragrance_stock,
    signed_delta,
    stock_divergence,
)
from sdm.repositories.unit_of_work import RepositoryUnitOfWork, UnitOfWork

log = logging.getLogger("sdm.stock")


class StockService:
    def __init__(self, repo, uow_factory: Callable[[], UnitOfWork] | None = None):
        self.repo = repo
        self.uow_factory = uow_factory or (lambda: RepositoryUnitOfWork(repo))

    def history(self, limit: int = 100) -> list[StockMovement]:
        return self.repo.recent_movements(limit)

    def current_stock(self) -> int:
        """Aggregate cartons in stock. Not clamped: a negative value is a real signal."""
        return replay_aggregate_stock(self.repo.load_stock_movements())

    def fragrance_levels(self) -> list[FragranceStock]:
        movements = self.repo.load_stock_movements()
        levels = replay_fragrance_stock(movements)

        divergence = stock_divergence(movements)
        if divergence:
            log.warning("stock_divergence aggregate_minus_fragrances=%s", divergence)

        out: list[FragranceStock] = []
        known = set()
        for f in self.repo.load_fragrances():
            known.add(f.id)
            out.append(FragranceStock(fragrance_id=f.id, name=f.name, color=f.color, quantity=levels.get(f.id, 0)))
        for fid in sorted(set(levels) - known):
            out.append(FragranceStock(fragrance_id=fid, name=f"#{fid}", color="", quantity=levels[fid]))
        return out

    def fragrance_level(self, fragrance_id: str) -> int:
        return replay_fragrance_stock(self.repo.load_stock_movements()).get(str(fragrance_id), 0)

    def clean_distribution(self, distribution: Mapping[str, int], allow_negative: bool = False) -> dict[str, int]:
        if not distribution:
            raise ValidationError("Fragrance distribution is empty.")
        known = {f.id for f in self.repo.load_fragrances()}
        out: dict[str, int] = {}
        for fid, qty in distribution.items():
            fid = str(fid)
            try:
                qty = int(qty)
            except (TypeError, ValueError) as e:
                raise ValidationError(f"Cartons for fragrance {fid} must be an integer.") from e
            if qty < 0 and not allow_negative:
                raise ValidationError("Cartons per fragrance must be >= 0.")
            if fid not in known:
                raise NotFoundError(f"Fragrance not found: {fid}")
            if qty:
                out[fid] = qty
        if not out:
            raise ValidationError("Fragrance distribution has no cartons.")
        return out

    def ensure_available(self, distribution: Mapping[str, int]) -> None:
        levels = replay_fragrance_stock(self.repo.load_stock_movements())
        names = {f.id: f.name for f in self.repo.load_fragrances()}
        for fid, qty in distribution.items():
            available = levels.get(fid, 0)
            if qty > available:
                raise InsufficientStockError(
                    f"Not enough stock for {names.get(fid, fid)}. Available: {available} cartons."
                )

    def prepare_movement(
        self,
        movement_type: MovementType,
        quantity: int,
        reason: str,
        distribution: Optional[Mapping[str, int]] = None,
        date: Optional[datetime] = None,
    ) -> StockMovement:
        level = self.current_stock() + signed_delta(movement_type, int(quantity))
        return StockMovement(
            id=new_id(),
            date=date or datetime.now(),
            quantity=int(quantity),
            type=movement_type,
            reason=reason,
            fragrance_distribution=dict(distribution) if distribution else None,
            current_stock=level,
        )

    def _record(self, movement: StockMovement) -> StockMovement:
        with self.uow_factory() as uow:
            uow.record_movement(movement)
        log.info(
            "stock_movement type=%s qty=%s stock_after=%s reason=%s",
            movement.type.value,
            movement.quantity,
            movement.current_stock,
            movement.reason,
        )
        return movement

    def add_stock(self, distribution: Mapping[str, int], reason: str = "Réapprovisionnement", date: Optional[datetime] = None) -> StockMovement:
        cleaned = self.clean_distribution(distribution)
        return self._record(self.prepare_movement(MovementType.ADDED, sum(cleaned.values()), reason, cleaned, date))

    def remove_stock(self, distribution: Mapping[str, int], reason: str = "Retrait", date: Optional[datetime] = None) -> StockMovement:
        cleaned = self.clean_distribution(distribution)
        self.ensure_available(cleaned)
        return self._record(self.prepare_movement(MovementType.REMOVED, sum(cleaned.values()), reason, cleaned, date))

    def set_fragrance_level(self, fragrance_id: str, quantity: int, reason: str = "Ajustement manuel") -> Optional[StockMovement]:
        if int(quantity) < 0:
            raise ValidationError("Stock level must be >= 0.")
        fragrance_id = str(fragrance_id)
        if fragrance_id not in {f.id for f in self.repo.load_fragrances()}:
            raise NotFoundError(f"Fragrance not found: {fragrance_id}")
        # unclamped, so the replayed level lands exactly on quantity
        balance = replay_fragrance_balances(self.repo.load_stock_movements()).get(fragrance_id, 0)
        delta = int(quantity) - balance
        if delta == 0:
            return None
        return self._record(self.prepare_movement(MovementType.ADJUSTED, delta, reason, {fragrance_id: delta}))

    def sync_fragrance_stock(self, now: Optional[datetime] = None) -> dict[str, int]:
        """Replay the history and persist the clamped per-fragrance snapshot."""
        levels = {f.fragrance_id: f.quantity for f in self.fragrance_levels()}
        known = {f.id for f in self.repo.load_fragrances()}
        snapshot = {fid: qty for fid, qty in levels.items() if fid in known}
        self.repo.save_fragrance_stock(snapshot, now or datetime.now())
        log.info("fragrance_stock_synced fragrances=%s total=%s", len(snapshot), sum(snapshot.values()))
        return snapshot
