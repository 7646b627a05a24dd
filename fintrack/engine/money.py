"""
Fixed-point money arithmetic.

All amounts are Decimals quantized to cents. Percentages are whole numbers
rounded half-up, which matches how they are displayed.
"""

from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal
from typing import Iterable, Union

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

MoneyLike = Union[Decimal, int, str, float]


def _as_decimal(value: MoneyLike) -> Decimal:
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def to_money(value: MoneyLike) -> Decimal:
    """Coerce a value to a cent-precision Decimal."""
    return _as_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def add_money(*values: MoneyLike) -> Decimal:
    return sum_money(values)


def sum_money(values: Iterable[MoneyLike]) -> Decimal:
    total = ZERO
    for value in values:
        total += to_money(value)
    return total


def subtract_money(minuend: MoneyLike, subtrahend: MoneyLike) -> Decimal:
    return to_money(minuend) - to_money(subtrahend)


def clamp(value, low, high):
    """Limit value to the closed range [low, high]."""
    if low > high:
        raise ValueError(f"Empty range: {low} > {high}")
    return max(low, min(high, value))


def percentage_of(part: MoneyLike, whole: MoneyLike) -> int:
    """
    Whole-number percentage of part in whole.

    A zero whole yields 0 instead of dividing by zero.
    """
    whole = _as_decimal(whole)
    if whole == 0:
        return 0
    ratio = _as_decimal(part) / whole * 100
    return int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def capped_percentage(part: MoneyLike, whole: MoneyLike) -> int:
    """Percentage limited to [0, 100]."""
    return clamp(percentage_of(part, whole), 0, 100)


def split_evenly(total: MoneyLike, parts: int) -> list[Decimal]:
    """
    Split total into cent-exact shares that sum back to total.

    The cents left over by rounding down go to the first share.
    """
    if parts < 1:
        raise ValueError("parts must be at least 1")
    total = to_money(total)
    share = (total / parts).quantize(CENT, rounding=ROUND_DOWN)
    shares = [share] * parts
    shares[0] = total - share * (parts - 1)
    return shares
