"""quantledger.core.decimals

Exact arithmetic surface.

Money and quantities never touch binary floats on the way in. Statistics that
need sqrt/log go through numpy and come back via `from_float`.

Scales:
- 4 dp for percentages and ratios
- 8 dp for quantities and currency amounts
"""

from __future__ import annotations

import math
from decimal import ROUND_DOWN, ROUND_HALF_UP, Context, Decimal, InvalidOperation

PCT_SCALE = 4
QTY_SCALE = 8

_PCT_Q = Decimal(1).scaleb(-PCT_SCALE)
_QTY_Q = Decimal(1).scaleb(-QTY_SCALE)

# Enough digits to quantize any finite float (max ~1.8e308) at 8 dp.
_WIDE = Context(prec=400)

ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")

# Stand-in for an undefined ratio (division by zero).
SENTINEL = Decimal("999.9999")


def to_decimal(value: object) -> Decimal:
    """Convert a number-like value to Decimal without float artifacts.

    Raises:
        ValueError: for None, NaN, infinities, or unparseable input.
    """

    if value is None:
        raise ValueError("value is None")
    if isinstance(value, Decimal):
        d = value
    elif isinstance(value, bool):
        raise ValueError("bool is not a number")
    elif isinstance(value, int):
        d = Decimal(value)
    else:
        try:
            d = Decimal(str(value).strip())
        except InvalidOperation as e:
            raise ValueError(f"not a number: {value!r}") from e
    if not d.is_finite():
        raise ValueError(f"not finite: {value!r}")
    return d


def quantize_pct(value: Decimal) -> Decimal:
    return value.quantize(_PCT_Q, rounding=ROUND_HALF_UP, context=_WIDE)


def quantize_qty(value: Decimal) -> Decimal:
    return value.quantize(_QTY_Q, rounding=ROUND_HALF_UP, context=_WIDE)


def floor_qty(value: Decimal) -> Decimal:
    return value.quantize(_QTY_Q, rounding=ROUND_DOWN, context=_WIDE)


def from_float(value: float) -> Decimal:
    """Float statistic -> 4 dp Decimal. Non-finite (or float-overflowing) input collapses to 0."""

    try:
        x = float(value)
    except OverflowError:
        return quantize_pct(ZERO)
    if not math.isfinite(x):
        return quantize_pct(ZERO)
    return quantize_pct(Decimal(repr(x)))
