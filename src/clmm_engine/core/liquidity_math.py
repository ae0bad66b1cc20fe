"""
Liquidity <-> token amount conversions over Q64.64 sqrt prices.

    amount_a = L * (sqrt_upper - sqrt_lower) * 2^64 / (sqrt_upper * sqrt_lower)
    amount_b = L * (sqrt_upper - sqrt_lower) / 2^64

Rounding (held identical everywhere in the engine):
  - deposits round up, withdrawals round down (the pool never under-collects);
  - the next sqrt price rounds up when moved by token A and down when moved by token B,
    so the price never moves further than the amount paid for.
"""

from __future__ import annotations

from typing import Tuple

from .constants import Q64_RESOLUTION, U128_MAX, I128_MIN, I128_MAX
from .exc import (
    AmountDomainError,
    ArithmeticOverflowError,
    ArithmeticUnderflowError,
    PriceOutOfBoundsError,
)
from .fixed_point import div_round_up_if, to_u64
from .tick_math import (
    MIN_SQRT_PRICE_X64,
    MAX_SQRT_PRICE_X64,
    sqrt_price_from_tick_index,
)

_Q64_MASK = (1 << Q64_RESOLUTION) - 1


# ----------------------------
# Amount deltas
# ----------------------------

def get_amount_delta_a_unbounded(sqrt_price_0: int, sqrt_price_1: int, liquidity: int, round_up: bool) -> int:
    """Token A spanned by `liquidity` between two sqrt prices, without the u64 narrowing.

    The swap step compares this against the remaining amount, where a value past u64 only
    means the target price is out of reach.
    """
    sqrt_lower, sqrt_upper = sorted((sqrt_price_0, sqrt_price_1))
    if sqrt_lower <= 0:
        raise AmountDomainError("sqrt price must be > 0")
    diff = sqrt_upper - sqrt_lower
    if diff == 0 or liquidity == 0:
        return 0
    numerator = (liquidity * diff) << Q64_RESOLUTION
    denominator = sqrt_upper * sqrt_lower
    return div_round_up_if(numerator, denominator, round_up)


def get_amount_delta_b_unbounded(sqrt_price_0: int, sqrt_price_1: int, liquidity: int, round_up: bool) -> int:
    sqrt_lower, sqrt_upper = sorted((sqrt_price_0, sqrt_price_1))
    product = liquidity * (sqrt_upper - sqrt_lower)
    result = product >> Q64_RESOLUTION
    if round_up and product & _Q64_MASK:
        result += 1
    return result


def get_amount_delta_a(sqrt_price_0: int, sqrt_price_1: int, liquidity: int, round_up: bool) -> int:
    """Token A spanned by `liquidity` between two sqrt prices (order-insensitive)."""
    return to_u64(get_amount_delta_a_unbounded(sqrt_price_0, sqrt_price_1, liquidity, round_up), "amount_delta_a")


def get_amount_delta_b(sqrt_price_0: int, sqrt_price_1: int, liquidity: int, round_up: bool) -> int:
    """Token B spanned by `liquidity` between two sqrt prices (order-insensitive)."""
    return to_u64(get_amount_delta_b_unbounded(sqrt_price_0, sqrt_price_1, liquidity, round_up), "amount_delta_b")


# ----------------------------
# Price movement
# ----------------------------

def get_next_sqrt_price_from_a_round_up(
    sqrt_price: int, liquidity: int, amount: int, amount_specified_is_input: bool
) -> int:
    if amount == 0:
        return sqrt_price
    if liquidity == 0:
        raise ArithmeticOverflowError("next sqrt price: zero liquidity")
    product = sqrt_price * amount
    liquidity_shifted = liquidity << Q64_RESOLUTION
    numerator = liquidity_shifted * sqrt_price
    if amount_specified_is_input:
        denominator = liquidity_shifted + product
    else:
        if product >= liquidity_shifted:
            raise ArithmeticUnderflowError("next sqrt price: token A output exceeds reserves")
        denominator = liquidity_shifted - product
    return _check_price(div_round_up_if(numerator, denominator, True))


def get_next_sqrt_price_from_b_round_down(
    sqrt_price: int, liquidity: int, amount: int, amount_specified_is_input: bool
) -> int:
    if amount == 0:
        return sqrt_price
    if liquidity == 0:
        raise ArithmeticOverflowError("next sqrt price: zero liquidity")
    delta = div_round_up_if(amount << Q64_RESOLUTION, liquidity, not amount_specified_is_input)
    if amount_specified_is_input:
        return _check_price(sqrt_price + delta)
    if delta > sqrt_price:
        raise ArithmeticUnderflowError("next sqrt price: token B output exceeds reserves")
    return _check_price(sqrt_price - delta)


def get_next_sqrt_price(
    sqrt_price: int,
    liquidity: int,
    amount: int,
    amount_specified_is_input: bool,
    a_to_b: bool,
) -> int:
    """Sqrt price after moving `amount` of the fixed-side token through `liquidity`.

    The fixed side is token A when it is the input of an a->b swap or the output of a b->a swap.
    """
    if amount_specified_is_input == a_to_b:
        return get_next_sqrt_price_from_a_round_up(sqrt_price, liquidity, amount, amount_specified_is_input)
    return get_next_sqrt_price_from_b_round_down(sqrt_price, liquidity, amount, amount_specified_is_input)


def _check_price(sqrt_price: int) -> int:
    if sqrt_price < MIN_SQRT_PRICE_X64 or sqrt_price > MAX_SQRT_PRICE_X64:
        raise PriceOutOfBoundsError(f"sqrt price {sqrt_price} out of bounds")
    return sqrt_price


# ----------------------------
# Liquidity deltas
# ----------------------------

def add_liquidity_delta(liquidity: int, delta: int) -> int:
    """Apply a signed delta to a u128 liquidity value, checked both ways."""
    result = liquidity + delta
    if result < 0:
        raise ArithmeticUnderflowError(f"liquidity {liquidity} + {delta} < 0")
    if result > U128_MAX:
        raise ArithmeticOverflowError(f"liquidity {liquidity} + {delta} exceeds u128")
    return result


def check_i128(value: int, what: str = "liquidity_net") -> int:
    if value < I128_MIN or value > I128_MAX:
        raise ArithmeticOverflowError(f"{what}: {value} exceeds i128")
    return value


def get_token_amounts_for_liquidity(
    tick_current_index: int,
    sqrt_price_current: int,
    tick_lower: int,
    tick_upper: int,
    liquidity_delta: int,
) -> Tuple[int, int]:
    """Token amounts moved by a signed liquidity change on [tick_lower, tick_upper).

    Positive deltas are deposits (rounded up); negative deltas are withdrawals (rounded down).
    The active leg uses the current price when `tick_lower <= tick_current_index < tick_upper`.
    """
    if liquidity_delta == 0:
        return 0, 0
    round_up = liquidity_delta > 0
    liquidity = abs(liquidity_delta)
    sqrt_lower = sqrt_price_from_tick_index(tick_lower)
    sqrt_upper = sqrt_price_from_tick_index(tick_upper)
    if tick_current_index < tick_lower:
        return get_amount_delta_a(sqrt_lower, sqrt_upper, liquidity, round_up), 0
    if tick_current_index < tick_upper:
        amount_a = get_amount_delta_a(sqrt_price_current, sqrt_upper, liquidity, round_up)
        amount_b = get_amount_delta_b(sqrt_lower, sqrt_price_current, liquidity, round_up)
        return amount_a, amount_b
    return 0, get_amount_delta_b(sqrt_lower, sqrt_upper, liquidity, round_up)


def get_active_amounts(sqrt_price: int, sqrt_lower: int, sqrt_upper: int, liquidity: int) -> Tuple[int, int]:
    """Token amounts a position of `liquidity` currently holds (rounded down)."""
    if sqrt_price <= sqrt_lower:
        return get_amount_delta_a(sqrt_lower, sqrt_upper, liquidity, False), 0
    if sqrt_price < sqrt_upper:
        return (
            get_amount_delta_a(sqrt_price, sqrt_upper, liquidity, False),
            get_amount_delta_b(sqrt_lower, sqrt_price, liquidity, False),
        )
    return 0, get_amount_delta_b(sqrt_lower, sqrt_upper, liquidity, False)


def _liquidity_from_a(sqrt_0: int, sqrt_1: int, amount_a: int) -> int:
    sqrt_lower, sqrt_upper = sorted((sqrt_0, sqrt_1))
    if sqrt_upper == sqrt_lower:
        return 0
    return (amount_a * sqrt_lower * sqrt_upper) // ((sqrt_upper - sqrt_lower) << Q64_RESOLUTION)


def _liquidity_from_b(sqrt_0: int, sqrt_1: int, amount_b: int) -> int:
    sqrt_lower, sqrt_upper = sorted((sqrt_0, sqrt_1))
    if sqrt_upper == sqrt_lower:
        return 0
    return (amount_b << Q64_RESOLUTION) // (sqrt_upper - sqrt_lower)


def get_liquidity_from_amounts(
    sqrt_price: int, sqrt_lower: int, sqrt_upper: int, amount_a: int, amount_b: int
) -> int:
    """Largest liquidity whose deposit fits within (amount_a, amount_b); rounded down."""
    if sqrt_lower >= sqrt_upper:
        raise AmountDomainError("sqrt_lower must be < sqrt_upper")
    if sqrt_price <= sqrt_lower:
        liquidity = _liquidity_from_a(sqrt_lower, sqrt_upper, amount_a)
    elif sqrt_price < sqrt_upper:
        liquidity = min(
            _liquidity_from_a(sqrt_price, sqrt_upper, amount_a),
            _liquidity_from_b(sqrt_lower, sqrt_price, amount_b),
        )
    else:
        liquidity = _liquidity_from_b(sqrt_lower, sqrt_upper, amount_b)
    return min(liquidity, U128_MAX)


__all__ = [
    "get_amount_delta_a",
    "get_amount_delta_a_unbounded",
    "get_amount_delta_b_unbounded",
    "get_amount_delta_b",
    "get_next_sqrt_price",
    "get_next_sqrt_price_from_a_round_up",
    "get_next_sqrt_price_from_b_round_down",
    "add_liquidity_delta",
    "check_i128",
    "get_token_amounts_for_liquidity",
    "get_active_amounts",
    "get_liquidity_from_amounts",
]
