"""
Money helpers. All amounts are Decimal, rounded to cents half-up.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Union

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value: Union[Decimal, int, str]) -> Decimal:
    """Round to cents, half-up."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def percent_of(amount: Decimal, rate: Decimal) -> Decimal:
    """amount * rate / 100, rounded to cents."""
    return to_money(Decimal(amount) * Decimal(rate) / Decimal(100))
