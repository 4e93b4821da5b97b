"""Boundary between stored records and the domain models.

Rows coming from SQLite, the hosted REST store or a JSON export are plain
mappings with either snake_case or camelCase keys. Everything that reaches the
engines goes through one of the ``normalize_*`` functions below, so the engines
can stay total.

Policy for missing or odd values:

* missing numeric fields default to 0;
* a missing ``remaining_amount`` is derived from the payments, a missing
  ``is_paid`` from the remaining amount;
* missing ids or dates, negative sale quantities, negative ``added``
  movements, unknown movement types and values that cannot be parsed raise
  ``ValidationError``; a negative ``removed`` movement is read as its size;
* with ``strict=True`` an unknown price tier or a remaining amount that
  disagrees with the payments also raise, otherwise they are only logged.
"""
from __future__ import annotations

import json
import logging
from datetime import date, datetime
from typing import Any, Mapping, Optional

from sdm.domain.errors import ValidationError
from sdm.domain.models import (
    Fragrance,
    MovementType,
    Order,
    OrderStatus,
    Payment,
    PaymentRendezvous,
    PaymentType,
    PhoneNumber,
    Sale,
    StockMovement,
    Supermarket,
)
from sdm.domain.pricing import UNITS_PER_CARTON, PriceTier

log = logging.getLogger(__name__)

_BALANCE_TOLERANCE = 0.005


def _pick(raw: Mapping[str, Any], *keys: str) -> Any:
    for k in keys:
        if k in raw and raw[k] is not None:
            return raw[k]
    return None


def _camel(key: str) -> str:
    head, *rest = key.split("_")
    return head + "".join(p.capitalize() for p in rest)


def _get(raw: Mapping[str, Any], key: str) -> Any:
    return _pick(raw, key, _camel(key))


def parse_datetime(value: Any, field_name: str = "date") -> datetime:
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError as e:
            raise ValidationError(f"Invalid {field_name}: {value!r}") from e
    else:
        raise ValidationError(f"Missing {field_name}.")
    if dt.tzinfo is not None:
        # compare everything as local naive time, like datetime.now()
        dt = dt.astimezone().replace(tzinfo=None)
    return dt


def parse_optional_datetime(value: Any, field_name: str) -> Optional[datetime]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return parse_datetime(value, field_name)


def _number(value: Any, field_name: str, default: float = 0.0) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{field_name} must be numeric. Received: {value!r}") from e


def _integer(value: Any, field_name: str, default: int = 0) -> int:
    return int(_number(value, field_name, float(default)))


def _required_id(raw: Mapping[str, Any], what: str) -> str:
    value = _get(raw, "id")
    if value is None or str(value).strip() == "":
        raise ValidationError(f"{what} id is required.")
    return str(value)


def parse_distribution(value: Any) -> Optional[dict[str, int]]:
    if value is None or value == "":
        return None
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError as e:
            raise ValidationError(f"Invalid fragrance distribution: {value!r}") from e
        if value is None:
            return None
    if not isinstance(value, Mapping):
        raise ValidationError(f"Fragrance distribution must be a mapping. Received: {value!r}")
    return {str(k): _integer(v, f"fragrance {k}") for k, v in value.items()}


def normalize_payment(raw: Mapping[str, Any]) -> Payment:
    amount = _number(_get(raw, "amount"), "amount")
    if amount <= 0:
        raise ValidationError("Payment amount must be > 0.")
    kind = _get(raw, "type") or PaymentType.OTHER.value
    try:
        ptype = PaymentType(str(kind))
    except ValueError:
        ptype = PaymentType.OTHER
    return Payment(
        id=_required_id(raw, "Payment"),
        date=parse_datetime(_get(raw, "date"), "payment date"),
        amount=amount,
        note=_get(raw, "note"),
        type=ptype,
    )


def normalize_rendezvous(raw: Mapping[str, Any]) -> PaymentRendezvous:
    expected = _get(raw, "expected_amount")
    expected = _number(expected, "expected_amount") if expected is not None else None
    if expected is not None and expected < 0:
        raise ValidationError("Rendezvous expected amount must be >= 0.")
    return PaymentRendezvous(
        id=_required_id(raw, "Rendezvous"),
        date=parse_datetime(_get(raw, "date"), "rendezvous date"),
        expected_amount=expected,
        is_completed=bool(_get(raw, "is_completed") or False),
        note=_get(raw, "note"),
    )


def _rendezvous_list(value: Any) -> list:
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError as e:
            raise ValidationError(f"Invalid payment rendezvous: {value!r}") from e
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        raise ValidationError(f"Payment rendezvous must be a list. Received: {value!r}")
    return list(value)


def normalize_sale(raw: Mapping[str, Any], strict: bool = False) -> Sale:
    sale_id = _required_id(raw, "Sale")
    supermarket_id = _get(raw, "supermarket_id")
    if supermarket_id is None:
        raise ValidationError(f"Sale {sale_id} has no supermarket.")

    quantity = _integer(_get(raw, "quantity"), "quantity")
    if quantity < 0:
        raise ValidationError(f"Sale {sale_id} quantity must be >= 0.")
    cartons_raw = _get(raw, "cartons")
    cartons = _integer(cartons_raw, "cartons") if cartons_raw is not None else quantity // UNITS_PER_CARTON

    price = _number(_get(raw, "price_per_unit"), "price_per_unit")
    if PriceTier.from_price(price) is None:
        if strict:
            raise ValidationError(f"Sale {sale_id} has unknown price tier {price}.")
        log.warning("unknown_price_tier sale_id=%s price=%s", sale_id, price)

    total_raw = _get(raw, "total_value")
    total = _number(total_raw, "total_value") if total_raw is not None else quantity * price

    # ledger order: a backdated virement recorded later stays last
    payments = tuple(normalize_payment(p) for p in (_get(raw, "payments") or []))
    paid = sum(p.amount for p in payments)

    remaining_raw = _get(raw, "remaining_amount")
    if remaining_raw is None:
        remaining = max(0.0, total - paid)
    else:
        remaining = _number(remaining_raw, "remaining_amount")
        if abs(remaining - (total - paid)) > _BALANCE_TOLERANCE:
            if strict:
                raise ValidationError(
                    f"Sale {sale_id} remaining {remaining} does not match total {total} minus payments {paid}."
                )
            log.warning("sale_balance_mismatch sale_id=%s remaining=%s expected=%s", sale_id, remaining, total - paid)
        remaining = max(0.0, remaining)

    is_paid_raw = _get(raw, "is_paid")
    is_paid = bool(is_paid_raw) if is_paid_raw is not None else remaining <= 0

    return Sale(
        id=sale_id,
        date=parse_datetime(_get(raw, "date"), "sale date"),
        supermarket_id=str(supermarket_id),
        quantity=quantity,
        cartons=cartons,
        price_per_unit=price,
        total_value=total,
        is_paid=is_paid,
        remaining_amount=remaining,
        payments=payments,
        payment_date=parse_optional_datetime(_get(raw, "payment_date"), "payment date"),
        expected_payment_date=parse_optional_datetime(_get(raw, "expected_payment_date"), "expected payment date"),
        note=_get(raw, "note"),
        from_order=bool(_get(raw, "from_order") or False),
        fragrance_distribution=parse_distribution(_get(raw, "fragrance_distribution")),
        rendezvous=tuple(normalize_rendezvous(r) for r in _rendezvous_list(_get(raw, "payment_rendezvous"))),
    )


def normalize_movement(raw: Mapping[str, Any]) -> StockMovement:
    movement_id = _required_id(raw, "Stock movement")
    kind = _get(raw, "type")
    try:
        mtype = MovementType(str(kind))
    except ValueError as e:
        raise ValidationError(f"Stock movement {movement_id} has unknown type {kind!r}.") from e

    quantity = _integer(_get(raw, "quantity"), "quantity")
    if quantity < 0 and mtype == MovementType.REMOVED:
        # older clients wrote sales as removed with a negative quantity
        log.warning("removed_movement_negative_quantity movement_id=%s quantity=%s", movement_id, quantity)
        quantity = -quantity
    elif quantity < 0 and mtype == MovementType.ADDED:
        raise ValidationError(f"Stock movement {movement_id} quantity must be >= 0.")

    current = _get(raw, "current_stock")
    return StockMovement(
        id=movement_id,
        date=parse_datetime(_get(raw, "date"), "movement date"),
        quantity=quantity,
        type=mtype,
        reason=str(_get(raw, "reason") or ""),
        fragrance_distribution=parse_distribution(_get(raw, "fragrance_distribution")),
        current_stock=_integer(current, "current_stock") if current is not None else None,
    )


def normalize_supermarket(raw: Mapping[str, Any]) -> Supermarket:
    phones = _get(raw, "phone_numbers") or []
    if isinstance(phones, str):
        try:
            phones = json.loads(phones) or []
        except ValueError as e:
            raise ValidationError(f"Invalid phone numbers: {phones!r}") from e
    location = _get(raw, "location") or {}
    return Supermarket(
        id=_required_id(raw, "Supermarket"),
        name=str(_get(raw, "name") or ""),
        address=str(_get(raw, "address") or ""),
        latitude=_number(_pick(raw, "latitude", "lat") or location.get("lat"), "latitude"),
        longitude=_number(_pick(raw, "longitude", "lng") or location.get("lng"), "longitude"),
        email=_get(raw, "email"),
        phone_numbers=tuple(PhoneNumber(str(p.get("name", "")), str(p.get("number", ""))) for p in phones),
    )


def normalize_fragrance(raw: Mapping[str, Any]) -> Fragrance:
    fragrance_id = _pick(raw, "fragrance_id", "fragranceId", "id")
    if fragrance_id is None:
        raise ValidationError("Fragrance id is required.")
    return Fragrance(id=str(fragrance_id), name=str(_get(raw, "name") or ""), color=str(_get(raw, "color") or ""))


def normalize_order(raw: Mapping[str, Any]) -> Order:
    status = _get(raw, "status") or OrderStatus.PENDING.value
    if status == "completed":
        status = OrderStatus.DELIVERED.value
    try:
        ostatus = OrderStatus(str(status))
    except ValueError as e:
        raise ValidationError(f"Unknown order status {status!r}.") from e
    quantity = _integer(_get(raw, "quantity"), "quantity")
    if quantity < 0:
        raise ValidationError("Order quantity must be >= 0.")
    embedded = raw.get("supermarkets")
    name = _get(raw, "supermarket_name") or (embedded.get("name") if isinstance(embedded, Mapping) else None)
    return Order(
        id=_required_id(raw, "Order"),
        date=parse_datetime(_get(raw, "date"), "order date"),
        supermarket_id=str(_get(raw, "supermarket_id") or ""),
        quantity=quantity,
        price_per_unit=_number(_get(raw, "price_per_unit"), "price_per_unit"),
        status=ostatus,
        supermarket_name=str(name or "Unknown"),
    )
