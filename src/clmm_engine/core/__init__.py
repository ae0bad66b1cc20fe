"""
CLMM Engine Core
================

Unified exports for the integer-domain primitives of the engine: constants,
checked fixed-point arithmetic, tick math, liquidity math and record types.
Decimal helpers are provided *only* for I/O formatting.
"""

# NOTE:
#   Everything under `core` is pure and stateless. Pool/tick/position state and the
#   operations that mutate it live one level up (tick_array, pool, swap, position, rewards).

# Integer-domain constants
from .constants import (
    U64_MAX,
    U128_MAX,
    Q64,
    Q64_RESOLUTION,
    MIN_TICK_INDEX,
    MAX_TICK_INDEX,
    TICK_ARRAY_SIZE,
    NUM_REWARDS,
    FEE_RATE_MUL_VALUE,
    PROTOCOL_FEE_RATE_MUL_VALUE,
    MAX_FEE_RATE,
    MAX_PROTOCOL_FEE_RATE,
    MAX_REFERRAL_FEE_RATE,
    MAX_REINVESTMENT_FEE_RATE,
    REINVESTMENT_FEE_RATE_MUL_VALUE,
)

# Fixed-point arithmetic
from .fixed_point import (
    checked_mul_div,
    checked_mul_div_round_up,
    checked_mul_shift_right,
    div_round_up,
    wrapping_add,
    wrapping_sub,
)

# Tick <-> sqrt price
from .tick_math import (
    MIN_SQRT_PRICE_X64,
    MAX_SQRT_PRICE_X64,
    sqrt_price_from_tick_index,
    tick_index_from_sqrt_price,
    is_tick_index_usable,
    full_range_ticks,
    max_liquidity_per_tick,
)

# Liquidity <-> amounts
from .liquidity_math import (
    get_amount_delta_a,
    get_amount_delta_b,
    get_next_sqrt_price,
    get_token_amounts_for_liquidity,
    get_active_amounts,
    get_liquidity_from_amounts,
)

# Record types
from .datatypes import Tick, RewardInfo, PositionRewardInfo, TimeWindow

# Decimal formatting helpers (non-core arithmetic)
from .fmt import fmt_dec, sqrt_price_to_price, price_to_sqrt_price, x64_to_decimal

# Core exceptions
from .exc import (
    ArithmeticOverflowError,
    ArithmeticUnderflowError,
    AmountDomainError,
    InvariantViolation,
    InvalidRangeError,
    InvalidTickArrayError,
    TickArrayNotLoadedError,
    InsufficientLiquidityError,
    LiquidityOverflowError,
    PriceLimitError,
    PriceOutOfBoundsError,
    SlippageExceededError,
    StaleOracleError,
    OracleDeviationError,
    InvalidTimestampError,
    RewardError,
    PoolConfigError,
    PositionNotEmptyError,
    WindowClosedError,
    SettlementError,
)

__all__ = [
    # constants
    "U64_MAX",
    "U128_MAX",
    "Q64",
    "Q64_RESOLUTION",
    "MIN_TICK_INDEX",
    "MAX_TICK_INDEX",
    "TICK_ARRAY_SIZE",
    "NUM_REWARDS",
    "FEE_RATE_MUL_VALUE",
    "PROTOCOL_FEE_RATE_MUL_VALUE",
    "MAX_FEE_RATE",
    "MAX_PROTOCOL_FEE_RATE",
    "MAX_REFERRAL_FEE_RATE",
    "MAX_REINVESTMENT_FEE_RATE",
    "REINVESTMENT_FEE_RATE_MUL_VALUE",
    # fixed point
    "checked_mul_div",
    "checked_mul_div_round_up",
    "checked_mul_shift_right",
    "div_round_up",
    "wrapping_add",
    "wrapping_sub",
    # tick math
    "MIN_SQRT_PRICE_X64",
    "MAX_SQRT_PRICE_X64",
    "sqrt_price_from_tick_index",
    "tick_index_from_sqrt_price",
    "is_tick_index_usable",
    "full_range_ticks",
    "max_liquidity_per_tick",
    # liquidity math
    "get_amount_delta_a",
    "get_amount_delta_b",
    "get_next_sqrt_price",
    "get_token_amounts_for_liquidity",
    "get_active_amounts",
    "get_liquidity_from_amounts",
    # datatypes
    "Tick",
    "RewardInfo",
    "PositionRewardInfo",
    "TimeWindow",
    # fmt
    "fmt_dec",
    "sqrt_price_to_price",
    "price_to_sqrt_price",
    "x64_to_decimal",
    # exceptions
    "ArithmeticOverflowError",
    "ArithmeticUnderflowError",
    "AmountDomainError",
    "InvariantViolation",
    "InvalidRangeError",
    "InvalidTickArrayError",
    "TickArrayNotLoadedError",
    "InsufficientLiquidityError",
    "LiquidityOverflowError",
    "PriceLimitError",
    "PriceOutOfBoundsError",
    "SlippageExceededError",
    "StaleOracleError",
    "OracleDeviationError",
    "InvalidTimestampError",
    "RewardError",
    "PoolConfigError",
    "PositionNotEmptyError",
    "WindowClosedError",
    "SettlementError",
]
