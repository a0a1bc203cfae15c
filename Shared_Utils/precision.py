"""
Exact decimal helpers for quantity bookkeeping.

Every quantity that enters the engine goes through ``to_decimal`` and every
sum/difference goes through the exact context below, which traps ``Inexact``:
an operation that would need rounding raises instead of silently losing
digits.
"""

from decimal import (Context, Decimal, Inexact, InvalidOperation, Overflow,
                     DivisionByZero, ROUND_HALF_EVEN)
from typing import Iterable, Union

from Config.constants_core import QUANTITY_PRECISION, QUANTITY_SCALE, ZERO

DecimalLike = Union[Decimal, int, str]

EXACT_CONTEXT = Context(
    prec=QUANTITY_PRECISION,
    rounding=ROUND_HALF_EVEN,
    traps=[Inexact, InvalidOperation, Overflow, DivisionByZero],
)


def to_decimal(value: DecimalLike, field: str = 'quantity') -> Decimal:
    """
    Convert a boundary value to an exact Decimal.

    Strings, ints and Decimals are accepted. Binary floats are rejected since
    they cannot carry 18 fractional digits without representation error.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError(f"{field} must be an exact decimal (str, int or Decimal), got {type(value).__name__}")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, str)):
        try:
            result = Decimal(value.strip() if isinstance(value, str) else value)
        except InvalidOperation:
            raise ValueError(f"{field} is not a decimal number: {value!r}")
    else:
        raise TypeError(f"{field} must be an exact decimal (str, int or Decimal), got {type(value).__name__}")

    if not result.is_finite():
        raise ValueError(f"{field} must be finite, got {value!r}")
    return result


def add(a: Decimal, b: Decimal) -> Decimal:
    return EXACT_CONTEXT.add(a, b)


def subtract(a: Decimal, b: Decimal) -> Decimal:
    return EXACT_CONTEXT.subtract(a, b)


def total(values: Iterable[Decimal]) -> Decimal:
    """Exact sum of an iterable of Decimals (0 when empty)."""
    result = ZERO
    for value in values:
        result = EXACT_CONTEXT.add(result, value)
    return result


def scale_token_amount(raw_value: DecimalLike, adjustment: DecimalLike, token_decimal: int) -> Decimal:
    """
    (raw + signed adjustment) * 10^-decimals, e.g. wei -> ether.

    ``scaleb`` only moves the exponent, so the result is exact.
    """
    if token_decimal < 0:
        raise ValueError(f"token_decimal must be >= 0, got {token_decimal}")
    raw = to_decimal(raw_value, 'value')
    adj = to_decimal(adjustment if adjustment not in (None, '') else '0', 'value_adjustment')
    return EXACT_CONTEXT.scaleb(EXACT_CONTEXT.add(raw, adj), -token_decimal)


def exceeds_scale(value: Decimal, scale: int = QUANTITY_SCALE) -> bool:
    """True when ``value`` carries more fractional digits than ``scale``."""
    exponent = value.normalize(EXACT_CONTEXT).as_tuple().exponent
    return isinstance(exponent, int) and exponent < -scale


def format_quantity(value: Decimal) -> str:
    """Plain fixed-point string (no exponent), trailing zeros stripped."""
    if value == 0:
        return '0'
    text = format(value, 'f')
    if '.' in text:
        text = text.rstrip('0').rstrip('.')
    return text
