from datetime import datetime, timezone

import pytest

from sdm.domain.errors import ValidationError
from sdm.domain.models import MovementType, OrderStatus, PaymentType
from sdm.domain.normalize import (
    normalize_movement,
    normalize_order,
    normalize_payment,
    normalize_sale,
    normalize_supermarket,
    parse_datetime,
)


def _raw_sale(**overrides):
    raw = {
        "id": "s1",
        "date": "2024-01-10T09:00:00",
        "supermarketId": "m1",
        "quantity": 90,
        "pricePerUnit": 180,
        "totalValue": 16200,
        "payments": [
            {"id": "p2", "date": "2024-01-25T00:00:00", "amount": 6200, "type": "direct"},
            {"id": "p1", "date": "2024-01-20T00:00:00", "amount": 10000, "type": "virement"},
        ],
    }
    raw.update(overrides)
    return raw


def test_camel_case_sale_derives_balance_and_paid_flag():
    sale = normalize_sale(_raw_sale())
    assert sale.supermarket_id == "m1"
    assert sale.cartons == 10
    assert sale.remaining_amount == 0
    assert sale.is_paid is True
    assert [p.id for p in sale.payments] == ["p2", "p1"]
    assert sale.payments[-1].type == PaymentType.VIREMENT
    assert sale.paid_amount == 16200


def test_missing_numbers_default_to_zero():
    sale = normalize_sale({"id": "s2", "date": "2024-01-10", "supermarket_id": "m1", "price_per_unit": 166})
    assert sale.quantity == 0
    assert sale.total_value == 0
    assert sale.remaining_amount == 0


def test_missing_id_or_date_is_rejected():
    with pytest.raises(ValidationError):
        normalize_sale(_raw_sale(id=None))
    with pytest.raises(ValidationError):
        normalize_sale(_raw_sale(date=""))


def test_negative_sale_quantity_is_rejected():
    with pytest.raises(ValidationError):
        normalize_sale(_raw_sale(quantity=-9))


def test_strict_mode_rejects_unknown_tier_and_balance_mismatch():
    odd_price = _raw_sale(pricePerUnit=200, totalValue=18000, payments=[])
    assert normalize_sale(odd_price).price_per_unit == 200
    with pytest.raises(ValidationError, match="price tier"):
        normalize_sale(odd_price, strict=True)

    mismatch = _raw_sale(remainingAmount=500)
    assert normalize_sale(mismatch).remaining_amount == 500
    with pytest.raises(ValidationError, match="does not match"):
        normalize_sale(mismatch, strict=True)


def test_payment_amount_must_be_positive_and_unknown_type_is_other():
    with pytest.raises(ValidationError):
        normalize_payment({"id": "p", "date": "2024-01-01", "amount": 0})
    p = normalize_payment({"id": "p", "date": "2024-01-01", "amount": "12.5", "type": "cheque"})
    assert p.amount == 12.5
    assert p.type == PaymentType.OTHER


def test_utc_timestamps_become_local_naive():
    dt = parse_datetime("2024-01-10T10:00:00Z")
    expected = datetime(2024, 1, 10, 10, 0, tzinfo=timezone.utc).astimezone().replace(tzinfo=None)
    assert dt.tzinfo is None
    assert dt == expected


def test_movement_types_and_signs():
    with pytest.raises(ValidationError):
        normalize_movement({"id": "x", "date": "2024-01-01", "type": "lost", "quantity": 1})
    with pytest.raises(ValidationError):
        normalize_movement({"id": "x", "date": "2024-01-01", "type": "added", "quantity": -1})

    legacy = normalize_movement({"id": "x", "date": "2024-01-01", "type": "removed", "quantity": -4})
    assert legacy.quantity == 4

    adj = normalize_movement(
        {"id": "y", "date": "2024-01-01", "type": "adjusted", "quantity": -2, "fragranceDistribution": '{"3": -2}'}
    )
    assert adj.type == MovementType.ADJUSTED
    assert adj.quantity == -2
    assert adj.fragrance_distribution == {"3": -2}


def test_order_status_and_embedded_supermarket_name():
    order = normalize_order(
        {"id": "o1", "date": "2024-02-01", "supermarket_id": "m1", "quantity": 27, "price_per_unit": 166,
         "status": "completed", "supermarkets": {"name": "Ardis"}}
    )
    assert order.status == OrderStatus.DELIVERED
    assert order.supermarket_name == "Ardis"


def test_supermarket_location_and_phones():
    s = normalize_supermarket(
        {"id": "m1", "name": "Ardis", "address": "Alger", "location": {"lat": 36.7, "lng": 3.1},
         "phoneNumbers": [{"name": "Gérant", "number": "0550 00 00 00"}]}
    )
    assert (s.latitude, s.longitude) == (36.7, 3.1)
    assert s.phone_numbers[0].number == "0550 00 00 00"


def test_rendezvous_on_sale_rows():
    sale = normalize_sale(
        _raw_sale(
            paymentRendezvous='[{"id": "rv1", "date": "2024-02-01T10:00:00", "expectedAmount": 500, "isCompleted": 1}]'
        )
    )
    assert sale.rendezvous[0].expected_amount == 500
    assert sale.rendezvous[0].is_completed is True
    assert normalize_sale(_raw_sale()).rendezvous == ()

    with pytest.raises(ValidationError):
        normalize_sale(_raw_sale(paymentRendezvous=[{"id": "rv1", "date": "2024-02-01", "expectedAmount": -1}]))
