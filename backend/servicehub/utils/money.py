"""Decimal helpers for money columns (Numeric(12, 2))."""

from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")


def to_decimal(value) -> Decimal:
    """Coerce a float/int/str/Decimal amount to a 2-place Decimal.

    Floats go through str() so 0.1 stays 0.10 rather than its binary
    expansion.
    """
    if value is None:
        return Decimal("0.00")
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_minor_units(value) -> int:
    """Amount in cents for the payment processor."""
    return int((to_decimal(value) * 100).to_integral_value(rounding=ROUND_HALF_UP))
