"""
CLMM Engine Core Constants (integer domain)
===========================================

Protocol-level integer constants only. Decimal display helpers live in `fmt.py`;
tick/price bounds derived from the tick curve live in `tick_math.py`.
"""

# NOTE: every width below is the persisted width; arithmetic is checked against it.

# ---------------------------------------------------------------------------
# Integer widths
# ---------------------------------------------------------------------------

#: Token amounts are u64.
U64_MAX: int = (1 << 64) - 1

#: Liquidity, sqrt prices and growth accumulators are u128.
U128_MAX: int = (1 << 128) - 1

#: Tick liquidity_net is i128.
I128_MIN: int = -(1 << 127)
I128_MAX: int = (1 << 127) - 1

#: Number of fractional bits in Q64.64 prices and X64 growth values.
Q64_RESOLUTION: int = 64
Q64: int = 1 << Q64_RESOLUTION


# ---------------------------------------------------------------------------
# Tick space
# ---------------------------------------------------------------------------

#: Tick bounds; sqrt(1.0001^MAX_TICK_INDEX) * 2^64 still fits in u128.
MIN_TICK_INDEX: int = -443636
MAX_TICK_INDEX: int = 443636

#: Number of tick slots per TickArray page.
TICK_ARRAY_SIZE: int = 88

#: Pools whose tick spacing reaches this value only accept full-range positions.
FULL_RANGE_ONLY_TICK_SPACING_THRESHOLD: int = 32768

#: Upper bound for tick spacing (persisted as u16).
MAX_TICK_SPACING: int = 65535


# ---------------------------------------------------------------------------
# Fees
# ---------------------------------------------------------------------------

#: fee_rate is expressed in hundredths of a basis point (3000 == 0.30%).
FEE_RATE_MUL_VALUE: int = 1_000_000
MAX_FEE_RATE: int = 30_000

#: protocol_fee_rate is expressed in basis points of the swap fee.
PROTOCOL_FEE_RATE_MUL_VALUE: int = 10_000
MAX_PROTOCOL_FEE_RATE: int = 2_500

#: Referral share of the swap fee, basis points.
REFERRAL_FEE_RATE_MUL_VALUE: int = 10_000
MAX_REFERRAL_FEE_RATE: int = 1_000

#: Protocol cut of reinvested position fees, basis points of the reinvested amount.
REINVESTMENT_FEE_RATE_MUL_VALUE: int = 10_000
MAX_REINVESTMENT_FEE_RATE: int = 2_500

#: Token transfer fees are quoted in basis points of the transferred amount.
MAX_TRANSFER_FEE_BASIS_POINTS: int = 10_000


# ---------------------------------------------------------------------------
# Rewards
# ---------------------------------------------------------------------------

#: Number of concurrent reward-emission streams per pool.
NUM_REWARDS: int = 3

#: A reward vault must cover this many seconds of emissions when the rate is set.
DAY_IN_SECONDS: int = 60 * 60 * 24


# ---------------------------------------------------------------------------
# Metadata
# ---------------------------------------------------------------------------

__all__ = [
    "U64_MAX",
    "U128_MAX",
    "I128_MIN",
    "I128_MAX",
    "Q64_RESOLUTION",
    "Q64",
    "MIN_TICK_INDEX",
    "MAX_TICK_INDEX",
    "TICK_ARRAY_SIZE",
    "FULL_RANGE_ONLY_TICK_SPACING_THRESHOLD",
    "MAX_TICK_SPACING",
    "FEE_RATE_MUL_VALUE",
    "MAX_FEE_RATE",
    "PROTOCOL_FEE_RATE_MUL_VALUE",
    "MAX_PROTOCOL_FEE_RATE",
    "REFERRAL_FEE_RATE_MUL_VALUE",
    "MAX_REFERRAL_FEE_RATE",
    "REINVESTMENT_FEE_RATE_MUL_VALUE",
    "MAX_REINVESTMENT_FEE_RATE",
    "MAX_TRANSFER_FEE_BASIS_POINTS",
    "NUM_REWARDS",
    "DAY_IN_SECONDS",
]
