"""Decimal helpers shared by models and services."""
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union

Number = Union[Decimal, float, int, str]

MONEY_QUANTUM = Decimal("0.01")


def to_decimal(value: Number) -> Decimal:
    """Convert a number to Decimal without binary float artifacts.

    Floats go through ``str`` so that ``2.1`` becomes ``Decimal("2.1")``
    rather than ``Decimal("2.100000000000000088817841970012523...")``.
    """
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def quantize_money(value: Optional[Decimal]) -> Optional[Decimal]:
    """Round a money or percentage value to 2 places, half up."""
    if value is None:
        return None
    return value.quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)
