"""Fixed-point Decimal helpers.

Every value that ends up in a snapshot, a trade or a report passes through
one of these functions, so the scale and rounding mode are part of the call
site rather than a library default. Rounding is always ROUND_HALF_UP.

Scales:
- PRICE_SCALE (8): prices, indicator levels, quantities
- RATIO_SCALE (6): RSI/ADX, per-trade return, total return
- METRIC_SCALE (4): win rate, annualized return, drawdown, Sharpe, profit factor
- CASH_SCALE (2): committed capital, realized P&L, averages
"""

from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Context, Decimal, localcontext

PRICE_SCALE = 8
QTY_SCALE = 8
RATIO_SCALE = 6
METRIC_SCALE = 4
CASH_SCALE = 2

ZERO = Decimal(0)
ONE = Decimal(1)

# Wide enough that intermediate products of 8-digit prices never round
# before the explicit quantize.
_CTX = Context(prec=40, rounding=ROUND_HALF_UP)
_EXPONENTS = {scale: Decimal(1).scaleb(-scale) for scale in range(0, 13)}


def quantize(value: Decimal, scale: int) -> Decimal:
    """Round ``value`` to ``scale`` fractional digits, half-up."""
    with localcontext(_CTX):
        return value.quantize(_EXPONENTS[scale], rounding=ROUND_HALF_UP)


def to_decimal(value: float | int | str | Decimal, scale: int) -> Decimal:
    """Convert a float/int/str into a Decimal at ``scale`` digits.

    Floats go through ``repr`` (shortest round-trip form) so the same float
    always produces the same Decimal.
    """
    if isinstance(value, Decimal):
        return quantize(value, scale)
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError(f"cannot convert non-finite value {value!r} to Decimal")
        return quantize(Decimal(repr(value)), scale)
    return quantize(Decimal(value), scale)


def div(numerator: Decimal, denominator: Decimal, scale: int) -> Decimal:
    """Divide and round to ``scale`` digits."""
    with localcontext(_CTX) as ctx:
        return (ctx.divide(numerator, denominator)).quantize(_EXPONENTS[scale], rounding=ROUND_HALF_UP)


def mul(a: Decimal, b: Decimal, scale: int) -> Decimal:
    with localcontext(_CTX) as ctx:
        return (ctx.multiply(a, b)).quantize(_EXPONENTS[scale], rounding=ROUND_HALF_UP)


def pct(value: float | Decimal) -> Decimal:
    """Parameter percentage (e.g. 0.02) as an exact Decimal."""
    if isinstance(value, Decimal):
        return value
    return Decimal(repr(float(value)))
