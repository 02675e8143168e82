"""Conversion between decimal currency amounts and processor minor units."""

from decimal import ROUND_HALF_UP, Decimal
from typing import Union

from checkout_bridge.engine.errors import AmountOverflowError

MINOR_UNIT_FACTOR = Decimal(100)
INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1

_TWO_PLACES = Decimal("0.01")


def to_minor_units(amount: Union[Decimal, int, float, str]) -> int:
    """
    Convert a decimal amount to integer minor units (e.g. 19.99 → 1999).

    Rounds half away from zero. Raises AmountOverflowError rather than
    truncating when the result does not fit a signed 64-bit integer.
    """
    if not isinstance(amount, Decimal):
        # str() keeps floats from carrying binary noise into the rounding
        amount = Decimal(str(amount))

    if not amount.is_finite():
        raise AmountOverflowError(f"Amount is not finite: {amount}")

    scaled = amount * MINOR_UNIT_FACTOR
    # quantize raises InvalidOperation past the context precision
    if abs(scaled) > INT64_MAX + 1:
        raise AmountOverflowError(f"Amount {amount} overflows 64-bit minor units")

    units = int(scaled.quantize(Decimal(1), rounding=ROUND_HALF_UP))
    if units < INT64_MIN or units > INT64_MAX:
        raise AmountOverflowError(f"Amount {amount} overflows 64-bit minor units")
    return units


def from_minor_units(units: int) -> Decimal:
    """Convert integer minor units back to a 2-place decimal amount."""
    if units < INT64_MIN or units > INT64_MAX:
        raise AmountOverflowError(f"Minor units {units} outside 64-bit range")
    return (Decimal(units) / MINOR_UNIT_FACTOR).quantize(_TWO_PLACES)
