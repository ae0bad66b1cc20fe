"""
Tick <-> sqrt price conversion (Q64.64).

    price       = 1.0001^tick
    sqrt_price  = sqrt(price) * 2^64

`sqrt_price_from_tick_index` multiplies the Q128.128 factors of 1.0001^(-2^i / 2) selected by
the bits of |tick| and narrows to Q64.64 (rounded down). `tick_index_from_sqrt_price` takes a
float log estimate and corrects it against the exact integer curve, so the two functions are
consistent by construction:

    sqrt_price_from_tick_index(t) <= p < sqrt_price_from_tick_index(t + 1)
        <=>  tick_index_from_sqrt_price(p) == t
"""

from __future__ import annotations

import math
from typing import Tuple

from .constants import (
    MIN_TICK_INDEX,
    MAX_TICK_INDEX,
    U128_MAX,
    Q64_RESOLUTION,
    FULL_RANGE_ONLY_TICK_SPACING_THRESHOLD,
)
from .exc import PriceOutOfBoundsError, InvalidRangeError

# Q128.128 factors for each bit of |tick|.
_BIT_FACTORS = (
    (0x2, 0xfff97272373d413259a46990580e213a),
    (0x4, 0xfff2e50f5f656932ef12357cf3c7fdcc),
    (0x8, 0xffe5caca7e10e4e61c3624eaa0941cd0),
    (0x10, 0xffcb9843d60f6159c9db58835c926644),
    (0x20, 0xff973b41fa98c081472e6896dfb254c0),
    (0x40, 0xff2ea16466c96a3843ec78b326b52861),
    (0x80, 0xfe5dee046a99a2a811c461f1969c3053),
    (0x100, 0xfcbe86c7900a88aedcffc83b479aa3a4),
    (0x200, 0xf987a7253ac413176f2b074cf7815e54),
    (0x400, 0xf3392b0822b70005940c7a398e4b70f3),
    (0x800, 0xe7159475a2c29b7443b29c7fa6e889d9),
    (0x1000, 0xd097f3bdfd2022b8845ad8f792aa5825),
    (0x2000, 0xa9f746462d870fdf8a65dc1f90e061e5),
    (0x4000, 0x70d869a156d2a1b890bb3df62baf32f7),
    (0x8000, 0x31be135f97d08fd981231505542fcfa6),
    (0x10000, 0x9aa508b5b7a84e1c677de54f3e99bc9),
    (0x20000, 0x5d6af8dedb81196699c329225ee604),
    (0x40000, 0x2216e584f5fa1ea926041bedfe98),
)

_LOG_SQRT_10001 = math.log(1.0001) / 2.0
_LOG_Q64 = Q64_RESOLUTION * math.log(2.0)


def sqrt_price_from_tick_index(tick_index: int) -> int:
    """Return the Q64.64 sqrt price at `tick_index` (rounded down)."""
    if tick_index < MIN_TICK_INDEX or tick_index > MAX_TICK_INDEX:
        raise PriceOutOfBoundsError(
            f"tick {tick_index} outside [{MIN_TICK_INDEX}, {MAX_TICK_INDEX}]"
        )
    abs_tick = abs(tick_index)
    ratio = 0xfffcb933bd6fad37aa2d162d1a594001 if abs_tick & 0x1 else 1 << 128
    for bit, factor in _BIT_FACTORS:
        if abs_tick & bit:
            ratio = (ratio * factor) >> 128
    if tick_index > 0:
        ratio = ((1 << 256) - 1) // ratio
    # Q128.128 -> Q64.64
    return ratio >> 64


MIN_SQRT_PRICE_X64: int = sqrt_price_from_tick_index(MIN_TICK_INDEX)
MAX_SQRT_PRICE_X64: int = sqrt_price_from_tick_index(MAX_TICK_INDEX)


def tick_index_from_sqrt_price(sqrt_price_x64: int) -> int:
    """Return the greatest tick whose sqrt price is <= `sqrt_price_x64`."""
    if sqrt_price_x64 < MIN_SQRT_PRICE_X64 or sqrt_price_x64 > MAX_SQRT_PRICE_X64:
        raise PriceOutOfBoundsError(
            f"sqrt price {sqrt_price_x64} outside [{MIN_SQRT_PRICE_X64}, {MAX_SQRT_PRICE_X64}]"
        )
    estimate = math.floor((math.log(sqrt_price_x64) - _LOG_Q64) / _LOG_SQRT_10001)
    tick = max(MIN_TICK_INDEX, min(MAX_TICK_INDEX, estimate))
    while tick > MIN_TICK_INDEX and sqrt_price_from_tick_index(tick) > sqrt_price_x64:
        tick -= 1
    while tick < MAX_TICK_INDEX and sqrt_price_from_tick_index(tick + 1) <= sqrt_price_x64:
        tick += 1
    return tick


def is_sqrt_price_in_bounds(sqrt_price_x64: int) -> bool:
    return MIN_SQRT_PRICE_X64 <= sqrt_price_x64 <= MAX_SQRT_PRICE_X64


# ----------------------------
# Tick spacing helpers
# ----------------------------

def is_tick_index_usable(tick_index: int, tick_spacing: int) -> bool:
    """A tick is usable when it is in bounds and a multiple of the pool's spacing."""
    if tick_index < MIN_TICK_INDEX or tick_index > MAX_TICK_INDEX:
        return False
    return tick_index % tick_spacing == 0


def full_range_ticks(tick_spacing: int) -> Tuple[int, int]:
    """Return the (lower, upper) usable ticks spanning the whole price range."""
    if tick_spacing <= 0:
        raise InvalidRangeError("tick_spacing must be > 0")
    upper = (MAX_TICK_INDEX // tick_spacing) * tick_spacing
    lower = -((-MIN_TICK_INDEX) // tick_spacing) * tick_spacing
    return lower, upper


def is_full_range_only(tick_spacing: int) -> bool:
    return tick_spacing >= FULL_RANGE_ONLY_TICK_SPACING_THRESHOLD


def max_liquidity_per_tick(tick_spacing: int) -> int:
    """Cap on liquidity_gross per tick: u128 shared evenly across every usable tick."""
    lower, upper = full_range_ticks(tick_spacing)
    num_ticks = (upper - lower) // tick_spacing + 1
    return U128_MAX // num_ticks


__all__ = [
    "MIN_SQRT_PRICE_X64",
    "MAX_SQRT_PRICE_X64",
    "sqrt_price_from_tick_index",
    "tick_index_from_sqrt_price",
    "is_sqrt_price_in_bounds",
    "is_tick_index_usable",
    "full_range_ticks",
    "is_full_range_only",
    "max_liquidity_per_tick",
]
