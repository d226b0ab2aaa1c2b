"""
Decimal helpers for currency and percentages.

All money is held as Decimal and rounded half-up to cents.
"""

from decimal import Decimal, ROUND_FLOOR, ROUND_HALF_UP
from typing import Any

ZERO = Decimal("0")
CENT = Decimal("0.01")
ONE_HUNDRED = Decimal("100")
_TENTH = Decimal("0.1")


def to_decimal(value: Any) -> Decimal:
    """Coerce int/float/str/Decimal to Decimal. Floats go through str to avoid binary noise."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    if value is None:
        return ZERO
    return Decimal(value)


def to_money(value: Any) -> Decimal:
    """Round to cents, half-up."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_pct(value: Any) -> Decimal:
    """Round a percentage to one decimal place, half-up."""
    return to_decimal(value).quantize(_TENTH, rounding=ROUND_HALF_UP)


def floor_pct(value: Any) -> Decimal:
    """Round a percentage down to one decimal place. Used for limits that must not be exceeded."""
    return to_decimal(value).quantize(_TENTH, rounding=ROUND_FLOOR)


def percent_of(amount: Decimal, pct: Decimal) -> Decimal:
    """``pct`` percent of ``amount``, rounded to cents."""
    return to_money(amount * pct / ONE_HUNDRED)
