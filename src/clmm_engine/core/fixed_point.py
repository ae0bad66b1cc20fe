"""
Fixed-point primitives: checked multiply-divide, shifts and rounding variants.

- Prices are Q64.64, growth accumulators are X64; both are carried as plain ints.
- Every checked helper raises ArithmeticOverflowError/ArithmeticUnderflowError instead of wrapping.
- Rounding is explicit: the `_round_up` variants ceil, the plain variants floor.
- Only growth accumulators wrap (modulo 2^128); see `wrapping_add` / `wrapping_sub`.

# Alignment notes:
# - Intermediate products are unbounded Python ints, so only the final result is range-checked,
#   matching a U256 intermediate followed by a u128/u64 narrowing.
"""

from __future__ import annotations

from .constants import U64_MAX, U128_MAX, Q64_RESOLUTION
from .exc import AmountDomainError, ArithmeticOverflowError, ArithmeticUnderflowError

_U128_MOD = U128_MAX + 1


# ----------------------------
# Integer division helpers
# ----------------------------

def _ceil_div(a: int, b: int) -> int:
    if a < 0 or b <= 0:
        raise AmountDomainError("_ceil_div expects a>=0 and b>0")
    return 0 if a == 0 else -(-a // b)


def _floor_div(a: int, b: int) -> int:
    if a < 0 or b <= 0:
        raise AmountDomainError("_floor_div expects a>=0 and b>0")
    return a // b


def _narrow(value: int, limit: int, what: str) -> int:
    if value > limit:
        raise ArithmeticOverflowError(f"{what}: {value} exceeds {limit}")
    return value


def div_round_up(n: int, d: int) -> int:
    """Ceil division for non-negative operands."""
    return _ceil_div(n, d)


def div_round_up_if(n: int, d: int, round_up: bool) -> int:
    return _ceil_div(n, d) if round_up else _floor_div(n, d)


# ----------------------------
# Multiply-divide
# ----------------------------

def checked_mul_div(n0: int, n1: int, d: int, *, limit: int = U128_MAX) -> int:
    """floor(n0 * n1 / d), checked against `limit`."""
    return checked_mul_div_round_up_if(n0, n1, d, False, limit=limit)


def checked_mul_div_round_up(n0: int, n1: int, d: int, *, limit: int = U128_MAX) -> int:
    """ceil(n0 * n1 / d), checked against `limit`."""
    return checked_mul_div_round_up_if(n0, n1, d, True, limit=limit)


def checked_mul_div_round_up_if(n0: int, n1: int, d: int, round_up: bool, *, limit: int = U128_MAX) -> int:
    if d == 0:
        raise ArithmeticOverflowError("mul_div: division by zero")
    if n0 < 0 or n1 < 0:
        raise AmountDomainError("mul_div expects non-negative operands")
    if n0 == 0 or n1 == 0:
        return 0
    return _narrow(div_round_up_if(n0 * n1, d, round_up), limit, "mul_div")


def checked_mul_shift_right(n0: int, n1: int, *, limit: int = U64_MAX) -> int:
    """(n0 * n1) >> 64, rounded down; used to turn X64 growth into token amounts."""
    return checked_mul_shift_right_round_up_if(n0, n1, False, limit=limit)


def checked_mul_shift_right_round_up_if(n0: int, n1: int, round_up: bool, *, limit: int = U64_MAX) -> int:
    if n0 < 0 or n1 < 0:
        raise AmountDomainError("mul_shift_right expects non-negative operands")
    product = n0 * n1
    if product == 0:
        return 0
    result = product >> Q64_RESOLUTION
    if round_up and product & ((1 << Q64_RESOLUTION) - 1):
        result += 1
    return _narrow(result, limit, "mul_shift_right")


# ----------------------------
# Checked and wrapping add/sub
# ----------------------------

def checked_add(a: int, b: int, *, limit: int = U128_MAX, what: str = "add") -> int:
    return _narrow(a + b, limit, what)


def checked_sub(a: int, b: int, *, what: str = "sub") -> int:
    if b > a:
        raise ArithmeticUnderflowError(f"{what}: {a} - {b} < 0")
    return a - b


def wrapping_add(a: int, b: int) -> int:
    """u128 wrapping add (growth accumulators only)."""
    return (a + b) % _U128_MOD


def wrapping_sub(a: int, b: int) -> int:
    """u128 wrapping sub (growth accumulators only)."""
    return (a - b) % _U128_MOD


def to_u64(value: int, what: str = "amount") -> int:
    if value < 0:
        raise ArithmeticUnderflowError(f"{what}: {value} < 0")
    return _narrow(value, U64_MAX, what)


__all__ = [
    "div_round_up",
    "div_round_up_if",
    "checked_mul_div",
    "checked_mul_div_round_up",
    "checked_mul_div_round_up_if",
    "checked_mul_shift_right",
    "checked_mul_shift_right_round_up_if",
    "checked_add",
    "checked_sub",
    "wrapping_add",
    "wrapping_sub",
    "to_u64",
]
