from decimal import ROUND_HALF_UP, Decimal
from typing import Tuple

CENT = Decimal("0.01")
DEFAULT_PLATFORM_FEE_RATE = Decimal("0.15")


def to_major_units(amount_cents: int) -> Decimal:
    return (Decimal(amount_cents) / 100).quantize(CENT)


def to_minor_units(amount: Decimal) -> int:
    return int((amount * 100).to_integral_value(rounding=ROUND_HALF_UP))


def split_platform_fee(
    amount_cents: int,
    rate: Decimal = DEFAULT_PLATFORM_FEE_RATE,
) -> Tuple[Decimal, Decimal]:
    """
    Split a captured tournament entry fee into (platform_fee, organizer_amount).

    Both values are in major units with two decimals. The organizer share is
    always the remainder, so the two parts add up to the captured amount.
    """
    if amount_cents < 0:
        raise ValueError("captured amount cannot be negative")
    total = to_major_units(amount_cents)
    platform_fee = (total * Decimal(rate)).quantize(CENT, rounding=ROUND_HALF_UP)
    organizer_amount = total - platform_fee
    return platform_fee, organizer_amount
