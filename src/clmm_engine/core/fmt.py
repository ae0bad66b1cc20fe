"""
Formatting helpers and Decimal bridges (non-core arithmetic).

Core arithmetic uses integers only. Decimal here is for display and for
turning human prices into Q64.64 at I/O boundaries (demo, research scans, tests).
"""

from decimal import Decimal, localcontext, ROUND_FLOOR
from typing import Union

from .constants import Q64
from .exc import AmountDomainError


DecimalLike = Union[Decimal, int, str]

#: Working precision for price conversions; Q64.64 over u128 needs ~40 digits.
PRICE_DECIMAL_PRECISION: int = 60


def to_decimal(x: DecimalLike) -> Decimal:
    """Normalise numeric-like to Decimal (I/O boundary only)."""
    return x if isinstance(x, Decimal) else Decimal(str(x))


def fmt_dec(x: Decimal, places: int = 18) -> str:
    """Format a Decimal in scientific notation with fixed fractional digits.

    The output is stable for logs and tests, e.g.:
      Decimal('1')        -> '1.000000000000000000E+0'
      Decimal('123456')   -> '1.234560000000000000E+5'
    """
    return format(x, f".{places}E")


def x64_to_decimal(value_x64: int) -> Decimal:
    """Render an X64 fixed-point value (growth, sqrt price) as a Decimal."""
    with localcontext() as ctx:
        ctx.prec = PRICE_DECIMAL_PRECISION
        return Decimal(value_x64) / Decimal(Q64)


def sqrt_price_to_price(sqrt_price_x64: int, decimals_a: int = 0, decimals_b: int = 0) -> Decimal:
    """Human price of token A in token B: (sqrt/2^64)^2 * 10^(decimals_a - decimals_b)."""
    with localcontext() as ctx:
        ctx.prec = PRICE_DECIMAL_PRECISION
        raw = x64_to_decimal(sqrt_price_x64) ** 2
        return raw.scaleb(decimals_a - decimals_b)


def price_to_sqrt_price(price: DecimalLike, decimals_a: int = 0, decimals_b: int = 0) -> int:
    """Inverse of `sqrt_price_to_price`, rounded down to the Q64.64 grid."""
    p = to_decimal(price)
    if p <= 0:
        raise AmountDomainError("price must be > 0")
    with localcontext() as ctx:
        ctx.prec = PRICE_DECIMAL_PRECISION
        raw = p.scaleb(decimals_b - decimals_a)
        return int((raw.sqrt() * Decimal(Q64)).to_integral_value(rounding=ROUND_FLOOR))


__all__ = [
    "PRICE_DECIMAL_PRECISION",
    "DecimalLike",
    "to_decimal",
    "fmt_dec",
    "x64_to_decimal",
    "sqrt_price_to_price",
    "price_to_sqrt_price",
]
