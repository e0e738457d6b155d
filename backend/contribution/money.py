"""
Decimal helpers shared by both payment paths.

Every quantization of money, box prices, and fractional box counts goes
through this module so the card ledger and the legacy customer balance
round identically.

- Money is stored with 2 decimal places.
- Box prices carry 6 decimal places so many small box payments do not
  accumulate rounding drift.
- Fractional box counts (legacy path) also carry 6 decimal places.
"""

from __future__ import annotations

from decimal import Decimal, ROUND_FLOOR, ROUND_HALF_UP

MONEY_PLACES = 2
BOX_PRICE_PLACES = 6
BOX_COUNT_PLACES = 6

# Largest |amount_paid + amount_remaining - total_amount| still considered balanced
ROUNDING_TOLERANCE = Decimal("0.01")

ZERO = Decimal("0")


def to_decimal(value) -> Decimal:
    """Coerce ints, strings and Decimals; floats go through str() to avoid binary noise."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def _quantize(value, places: int, rounding=ROUND_HALF_UP) -> Decimal:
    return to_decimal(value).quantize(Decimal(1).scaleb(-places), rounding=rounding)


def round_money(value) -> Decimal:
    return _quantize(value, MONEY_PLACES)


def round_box_price(value) -> Decimal:
    return _quantize(value, BOX_PRICE_PLACES)


def round_box_count(value) -> Decimal:
    return _quantize(value, BOX_COUNT_PLACES)


def whole_boxes(amount, box_price) -> int:
    """Number of whole boxes an amount pays for (floor division)."""
    price = to_decimal(box_price)
    if price <= ZERO:
        return 0
    return int((to_decimal(amount) / price).to_integral_value(rounding=ROUND_FLOOR))


def balanced(paid, remaining, total) -> bool:
    return abs(to_decimal(paid) + to_decimal(remaining) - to_decimal(total)) <= ROUNDING_TOLERANCE


def to_money_str(value) -> str | None:
    """Serialize an amount for to_dict() payloads ("300.00")."""
    if value is None:
        return None
    return str(round_money(value))
