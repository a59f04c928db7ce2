from decimal import Decimal

import pytest

from courtpay.fees import split_platform_fee, to_major_units, to_minor_units


def test_example_entry_fee():
    assert split_platform_fee(10000) == (Decimal("15.00"), Decimal("85.00"))


@pytest.mark.parametrize(
    "amount_cents,platform_fee,organizer_amount",
    [
        (0, "0.00", "0.00"),
        (1, "0.00", "0.01"),
        (10, "0.02", "0.08"),
        (33, "0.05", "0.28"),
        (12345, "18.52", "104.93"),
        (99999, "150.00", "849.99"),
    ],
)
def test_fee_rounds_half_up_to_cents(amount_cents, platform_fee, organizer_amount):
    assert split_platform_fee(amount_cents) == (Decimal(platform_fee), Decimal(organizer_amount))


def test_parts_always_sum_to_captured_amount():
    for amount_cents in range(0, 5000):
        platform_fee, organizer_amount = split_platform_fee(amount_cents)
        assert platform_fee + organizer_amount == to_major_units(amount_cents)
        assert to_minor_units(platform_fee) + to_minor_units(organizer_amount) == amount_cents


def test_custom_rate():
    assert split_platform_fee(10000, Decimal("0.10")) == (Decimal("10.00"), Decimal("90.00"))


def test_negative_amount_rejected():
    with pytest.raises(ValueError):
        split_platform_fee(-1)
