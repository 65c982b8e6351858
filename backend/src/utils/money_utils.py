"""
Money helpers.

Amounts are Decimals everywhere; they are only rounded to cents when written
to a Numeric(10, 2) column, so intermediate rebate arithmetic stays exact.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Union

from core.constants import MONEY_QUANTUM

Number = Union[Decimal, int, float, str]


def to_decimal(value: Number | None) -> Decimal:
    """Convert a number (or None) to Decimal without float artefacts."""
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def quantize_money(value: Number | None) -> Decimal:
    """Round to cents, half-up."""
    return to_decimal(value).quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def is_valid_amount(value: Decimal) -> bool:
    """True for finite, non-negative amounts."""
    return value.is_finite() and value >= 0
