"""
PoolState: the aggregate pool record and its direct mutators.

The pool holds the current sqrt price and tick, the active liquidity, the global fee and
reward accumulators and the protocol fee balances. Engine functions (swap, position,
rewards) never write to it directly; they return update records which are applied here.
"""
from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple

from .core.constants import (
    MAX_FEE_RATE,
    MAX_PROTOCOL_FEE_RATE,
    MAX_REFERRAL_FEE_RATE,
    MAX_TICK_SPACING,
    U64_MAX,
)
from .core.datatypes import RewardInfo, TimeWindow, empty_reward_infos
from .core.exc import PoolConfigError, PriceOutOfBoundsError, WindowClosedError
from .core.fixed_point import checked_add
from .core.liquidity_math import add_liquidity_delta
from .core.tick_math import is_sqrt_price_in_bounds, tick_index_from_sqrt_price

DEBUG_POOL = False

logger = logging.getLogger(__name__)


def _dbg(msg: str) -> None:
    if DEBUG_POOL:
        logger.debug("[POOL] %s", msg)


def _check_fee_rate(fee_rate: int) -> None:
    if not 0 <= fee_rate <= MAX_FEE_RATE:
        raise PoolConfigError(f"fee_rate {fee_rate} outside [0, {MAX_FEE_RATE}]")


def _check_protocol_fee_rate(protocol_fee_rate: int) -> None:
    if not 0 <= protocol_fee_rate <= MAX_PROTOCOL_FEE_RATE:
        raise PoolConfigError(f"protocol_fee_rate {protocol_fee_rate} outside [0, {MAX_PROTOCOL_FEE_RATE}]")


def _check_referral_fee_rate(referral_fee_rate: int) -> None:
    if not 0 <= referral_fee_rate <= MAX_REFERRAL_FEE_RATE:
        raise PoolConfigError(f"referral fee rate {referral_fee_rate} outside [0, {MAX_REFERRAL_FEE_RATE}]")


@dataclass(frozen=True)
class PoolConfig:
    """Pool defaults applied at initialization.

    default_fee_rate: hundredths of a basis point (3000 == 0.30%).
    default_protocol_fee_rate: basis points of the swap fee kept by the protocol.
    default_referral_fee_rate: basis points of the swap fee paid to a referrer.
    """
    default_fee_rate: int = 3000
    default_protocol_fee_rate: int = 0
    default_referral_fee_rate: int = 0

    def __post_init__(self) -> None:
        _check_fee_rate(self.default_fee_rate)
        _check_protocol_fee_rate(self.default_protocol_fee_rate)
        _check_referral_fee_rate(self.default_referral_fee_rate)


@dataclass
class Pool:
    """Aggregate state of one pool. Identity = (token_a, token_b, tick_spacing)."""

    token_a: str
    token_b: str
    tick_spacing: int
    sqrt_price: int
    tick_current_index: int
    fee_rate: int
    protocol_fee_rate: int = 0
    default_referral_fee_rate: int = 0
    liquidity: int = 0
    fee_growth_global_a: int = 0
    fee_growth_global_b: int = 0
    protocol_fee_owed_a: int = 0
    protocol_fee_owed_b: int = 0
    reward_infos: Tuple[RewardInfo, ...] = field(default_factory=empty_reward_infos)
    reward_last_updated_timestamp: int = 0
    swap_window: Optional[TimeWindow] = None
    lp_window: Optional[TimeWindow] = None

    @property
    def address(self) -> str:
        return f"{self.token_a}/{self.token_b}/{self.tick_spacing}"

    @property
    def key(self) -> Tuple[str, str, int]:
        return self.token_a, self.token_b, self.tick_spacing

    @property
    def is_temporary(self) -> bool:
        return self.swap_window is not None or self.lp_window is not None

    def input_token(self, a_to_b: bool) -> str:
        return self.token_a if a_to_b else self.token_b

    def output_token(self, a_to_b: bool) -> str:
        return self.token_b if a_to_b else self.token_a

    def copy(self) -> "Pool":
        return copy.copy(self)

    # --- temporary pool windows ---

    def check_swap_window(self, timestamp: int) -> None:
        if self.swap_window is not None and not self.swap_window.contains(timestamp):
            raise WindowClosedError(f"swap window {self.swap_window} closed at {timestamp}")

    def check_lp_window(self, timestamp: int) -> None:
        if self.lp_window is not None and not self.lp_window.contains(timestamp):
            raise WindowClosedError(f"liquidity window {self.lp_window} closed at {timestamp}")

    # --- fee configuration ---

    def update_fee_rate(self, fee_rate: int) -> None:
        _check_fee_rate(fee_rate)
        self.fee_rate = fee_rate

    def update_protocol_fee_rate(self, protocol_fee_rate: int) -> None:
        _check_protocol_fee_rate(protocol_fee_rate)
        self.protocol_fee_rate = protocol_fee_rate

    def update_default_referral_fee_rate(self, referral_fee_rate: int) -> None:
        _check_referral_fee_rate(referral_fee_rate)
        self.default_referral_fee_rate = referral_fee_rate

    # --- protocol fees ---

    def add_protocol_fees_owed(self, fee_a: int, fee_b: int) -> None:
        self.protocol_fee_owed_a = checked_add(self.protocol_fee_owed_a, fee_a, limit=U64_MAX, what="protocol_fee_owed_a")
        self.protocol_fee_owed_b = checked_add(self.protocol_fee_owed_b, fee_b, limit=U64_MAX, what="protocol_fee_owed_b")

    def reset_protocol_fees_owed(self) -> Tuple[int, int]:
        owed = (self.protocol_fee_owed_a, self.protocol_fee_owed_b)
        self.protocol_fee_owed_a = 0
        self.protocol_fee_owed_b = 0
        return owed

    # --- writebacks ---

    def update_rewards(self, reward_infos: Sequence[RewardInfo], timestamp: int) -> None:
        self.reward_infos = tuple(reward_infos)
        self.reward_last_updated_timestamp = timestamp

    def update_rewards_and_liquidity(self, reward_infos: Sequence[RewardInfo], liquidity: int, timestamp: int) -> None:
        self.update_rewards(reward_infos, timestamp)
        self.liquidity = liquidity


def initialize_pool(
    token_a: str,
    token_b: str,
    tick_spacing: int,
    sqrt_price: int,
    *,
    config: Optional[PoolConfig] = None,
    timestamp: int = 0,
    swap_window: Optional[TimeWindow] = None,
    lp_window: Optional[TimeWindow] = None,
) -> Pool:
    """Create a pool at `sqrt_price` with the config's default fee rates."""
    cfg = config or PoolConfig()
    if not token_a or not token_b or token_a >= token_b:
        raise PoolConfigError(f"tokens must be ordered token_a < token_b, got {token_a!r}, {token_b!r}")
    if not 0 < tick_spacing <= MAX_TICK_SPACING:
        raise PoolConfigError(f"tick_spacing {tick_spacing} outside (0, {MAX_TICK_SPACING}]")
    if not is_sqrt_price_in_bounds(sqrt_price):
        raise PriceOutOfBoundsError(f"initial sqrt price {sqrt_price} out of bounds")
    for window in (swap_window, lp_window):
        if window is not None and window.start > window.end:
            raise PoolConfigError(f"window {window} ends before it starts")
    pool = Pool(
        token_a=token_a,
        token_b=token_b,
        tick_spacing=tick_spacing,
        sqrt_price=sqrt_price,
        tick_current_index=tick_index_from_sqrt_price(sqrt_price),
        fee_rate=cfg.default_fee_rate,
        protocol_fee_rate=cfg.default_protocol_fee_rate,
        default_referral_fee_rate=cfg.default_referral_fee_rate,
        reward_last_updated_timestamp=timestamp,
        swap_window=swap_window,
        lp_window=lp_window,
    )
    _dbg(f"initialized {pool.address} at tick {pool.tick_current_index}")
    return pool


def next_pool_liquidity(pool: Pool, tick_lower: int, tick_upper: int, liquidity_delta: int) -> int:
    """Active liquidity after a position change; only in-range positions count."""
    if tick_lower <= pool.tick_current_index < tick_upper:
        return add_liquidity_delta(pool.liquidity, liquidity_delta)
    return pool.liquidity


__all__ = [
    "DEBUG_POOL",
    "Pool",
    "PoolConfig",
    "initialize_pool",
    "next_pool_liquidity",
]
