from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from sdm.domain.errors import NotFoundError, PaymentExceedsBalanceError, ValidationError
from sdm.domain.models import Payment, PaymentRendezvous, PaymentType, Sale, new_id
from sdm.engines.receivables import pending_sales, total_outstanding
from sdm.repositories.unit_of_work import RepositoryUnitOfWork, UnitOfWork

log = logging.getLogger("sdm.payments")

BALANCE_TOLERANCE = 0.005


class PaymentService:
    def __init__(self, repo, uow_factory: Callable[[], UnitOfWork] | None = None):
        self.repo = repo
        self.uow_factory = uow_factory or (lambda: RepositoryUnitOfWork(repo))

    def add_payment(
        self,
        sale_id: str,
        amount: float,
        note: Optional[str] = None,
        type: PaymentType | str = PaymentType.VIREMENT,
        date: Optional[datetime] = None,
    ) -> Sale:
        """
        Record a partial or full payment against an open sale.
        A payment larger than the remaining balance is rejected.
        """
        try:
            amount = float(amount)
        except (TypeError, ValueError) as e:
            raise ValidationError("Payment amount must be a number.") from e
        if amount <= 0:
            raise ValidationError("Payment amount must be > 0.")
        try:
            type = PaymentType(type)
        except ValueError as e:
            raise ValidationError(f"Unknown payment type: {type}") from e

        sale = self.repo.get_sale(sale_id)
        if sale is None:
            raise NotFoundError("Sale not found.")
        if sale.is_paid:
            raise ValidationError("Sale is already paid.")
        if amount > sale.remaining_amount + BALANCE_TOLERANCE:
            raise PaymentExceedsBalanceError(
                f"Payment of {amount:.2f} exceeds the remaining balance of {sale.remaining_amount:.2f}."
            )

        payment = Payment(id=new_id(), date=date or datetime.now(), amount=amount, note=note, type=type)
        with self.uow_factory() as uow:
            updated = uow.record_payment(sale_id, payment)
        log.info(
            "payment_recorded sale_id=%s amount=%.2f type=%s remaining=%.2f paid=%s",
            sale_id,
            amount,
            type.value,
            updated.remaining_amount,
            updated.is_paid,
        )
        return updated

    def settle(self, sale_id: str, note: Optional[str] = "Paiement complet", date: Optional[datetime] = None) -> Sale:
        sale = self.repo.get_sale(sale_id)
        if sale is None:
            raise NotFoundError("Sale not found.")
        if sale.is_paid:
            raise ValidationError("Sale is already paid.")
        return self.add_payment(sale_id, sale.remaining_amount, note=note, type=PaymentType.DIRECT, date=date)

    def pending_sales(self) -> list[Sale]:
        return pending_sales(self.repo.load_sales())

    def total_remaining(self) -> float:
        return total_outstanding(self.repo.load_sales())

    # ---------- Rendezvous ----------
    def schedule_rendezvous(
        self,
        sale_id: str,
        date: datetime,
        expected_amount: Optional[float] = None,
        note: Optional[str] = None,
    ) -> PaymentRendezvous:
        sale = self.repo.get_sale(sale_id)
        if sale is None:
            raise NotFoundError("Sale not found.")
        if sale.is_paid:
            raise ValidationError("Sale is already paid.")
        if expected_amount is not None:
            try:
                expected_amount = float(expected_amount)
            except (TypeError, ValueError) as e:
                raise ValidationError("Expected amount must be a number.") from e
            if expected_amount <= 0:
                raise ValidationError("Expected amount must be > 0.")
            if expected_amount > sale.remaining_amount + BALANCE_TOLERANCE:
                raise PaymentExceedsBalanceError(
                    f"Expected amount {expected_amount:.2f} exceeds the remaining balance of {sale.remaining_amount:.2f}."
                )

        rendezvous = PaymentRendezvous(id=new_id(), date=date, expected_amount=expected_amount, note=note)
        self.repo.add_rendezvous(sale_id, rendezvous)
        log.info(
            "rendezvous_scheduled sale_id=%s rendezvous_id=%s date=%s expected=%s",
            sale_id,
            rendezvous.id,
            date.isoformat(),
            expected_amount,
        )
        return rendezvous

    def complete_rendezvous(self, sale_id: str, rendezvous_id: str) -> None:
        if not self.repo.complete_rendezvous(sale_id, rendezvous_id):
            raise NotFoundError("Rendezvous not found.")
        log.info("rendezvous_completed sale_id=%s rendezvous_id=%s", sale_id, rendezvous_id)
