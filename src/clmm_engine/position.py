"""
PositionManager: open, resize, settle and close liquidity positions.

A position's earnings are never stored per swap. They are derived lazily from growth inside
its range:

    owed += (liquidity * (growth_inside_now - checkpoint)) >> 64

and the checkpoint is moved to `growth_inside_now`. Settlement always runs with the old
liquidity before a liquidity change is applied, so fees earned at the old size are never
paid out at the new one.

`modify_liquidity` is pure and returns a ModifyLiquidityUpdate; `apply_modify_liquidity`
commits it to the pool, both boundary ticks and the position together.

Owed fees can also be put back to work: `reinvest_fees` turns them into more liquidity on
the same range, less a protocol cut, without any tokens leaving the vaults.
"""
from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field, replace
from typing import Optional, Sequence, Tuple

from .core.constants import MAX_REINVESTMENT_FEE_RATE, NUM_REWARDS, REINVESTMENT_FEE_RATE_MUL_VALUE, U64_MAX
from .core.datatypes import PositionRewardInfo, RewardInfo, Tick, empty_position_reward_infos
from .core.exc import (
    AmountDomainError,
    InsufficientLiquidityError,
    InvalidRangeError,
    InvariantViolation,
    PoolConfigError,
    PositionNotEmptyError,
    RewardError,
    SlippageExceededError,
)
from .core.fixed_point import checked_mul_shift_right, wrapping_sub
from .core.liquidity_math import (
    add_liquidity_delta,
    get_active_amounts,
    get_liquidity_from_amounts,
    get_token_amounts_for_liquidity,
)
from .core.tick_math import (
    full_range_ticks,
    is_full_range_only,
    is_tick_index_usable,
    max_liquidity_per_tick,
    sqrt_price_from_tick_index,
)
from .ledger import NO_TRANSFER_FEE, TransferFee
from .pool import Pool, next_pool_liquidity
from .rewards import next_reward_infos
from .tick_array import (
    TickStore,
    fee_growths_inside,
    next_tick_modify_liquidity_update,
    reward_growths_inside,
)

# --- Debug utilities (toggleable) ---
DEBUG_POSITION = False

logger = logging.getLogger(__name__)


def _dbg(msg: str) -> None:
    if DEBUG_POSITION:
        logger.debug("[POSITION] %s", msg)


# ----------------------------
# Records
# ----------------------------

@dataclass(frozen=True)
class PositionUpdate:
    """Position fields after settlement (and after the liquidity change, if any)."""
    liquidity: int
    fee_growth_checkpoint_a: int
    fee_growth_checkpoint_b: int
    fee_owed_a: int
    fee_owed_b: int
    reward_infos: Tuple[PositionRewardInfo, ...]


@dataclass
class Position:
    position_id: str
    owner: str
    pool: str
    tick_lower: int
    tick_upper: int
    liquidity: int = 0
    fee_growth_checkpoint_a: int = 0
    fee_growth_checkpoint_b: int = 0
    fee_owed_a: int = 0
    fee_owed_b: int = 0
    reward_infos: Tuple[PositionRewardInfo, ...] = field(default_factory=empty_position_reward_infos)

    @property
    def is_empty(self) -> bool:
        if self.liquidity != 0 or self.fee_owed_a != 0 or self.fee_owed_b != 0:
            return False
        return all(info.amount_owed == 0 for info in self.reward_infos)

    def is_in_range(self, tick_current_index: int) -> bool:
        return self.tick_lower <= tick_current_index < self.tick_upper

    def copy(self) -> "Position":
        return copy.copy(self)

    def apply_update(self, update: PositionUpdate) -> None:
        self.liquidity = update.liquidity
        self.fee_growth_checkpoint_a = update.fee_growth_checkpoint_a
        self.fee_growth_checkpoint_b = update.fee_growth_checkpoint_b
        self.fee_owed_a = update.fee_owed_a
        self.fee_owed_b = update.fee_owed_b
        self.reward_infos = update.reward_infos


@dataclass(frozen=True)
class ModifyLiquidityUpdate:
    """Everything a liquidity change writes, computed before anything is written.

    amount_a / amount_b are what the pool vaults receive (delta > 0) or pay out (delta < 0),
    before any transfer fee.
    """
    liquidity_delta: int
    tick_lower_index: int
    tick_upper_index: int
    tick_lower_update: Tick
    tick_upper_update: Tick
    pool_liquidity: int
    reward_infos: Tuple[RewardInfo, ...]
    position_update: PositionUpdate
    amount_a: int
    amount_b: int
    timestamp: int


@dataclass(frozen=True)
class FeesAndRewardsUpdate:
    reward_infos: Tuple[RewardInfo, ...]
    position_update: PositionUpdate
    timestamp: int


@dataclass(frozen=True)
class ReinvestFeesUpdate:
    """A liquidity increase paid for out of owed fees.

    `liquidity_update.position_update` already has the spent fees taken off the owed amounts;
    protocol_fee_a / protocol_fee_b move from the position to the pool's protocol fees.
    """
    liquidity_update: ModifyLiquidityUpdate
    protocol_fee_a: int
    protocol_fee_b: int

    @property
    def liquidity_delta(self) -> int:
        return self.liquidity_update.liquidity_delta

    @property
    def spent_a(self) -> int:
        return self.liquidity_update.amount_a + self.protocol_fee_a

    @property
    def spent_b(self) -> int:
        return self.liquidity_update.amount_b + self.protocol_fee_b


# ----------------------------
# Settlement
# ----------------------------

def _add_owed(owed: int, delta: int) -> int:
    # owed balances are u64 and wrap; collecting regularly keeps them far from the edge
    return (owed + delta) & U64_MAX


def next_position_update(
    position: Position,
    fee_growth_inside_a: int,
    fee_growth_inside_b: int,
    reward_growths_inside_x64: Sequence[int],
    reward_infos: Sequence[RewardInfo],
    liquidity_delta: int = 0,
) -> PositionUpdate:
    """Settle owed fees and rewards with the current liquidity, then apply `liquidity_delta`."""
    liquidity = position.liquidity
    owed_a = checked_mul_shift_right(liquidity, wrapping_sub(fee_growth_inside_a, position.fee_growth_checkpoint_a))
    owed_b = checked_mul_shift_right(liquidity, wrapping_sub(fee_growth_inside_b, position.fee_growth_checkpoint_b))

    rewards = []
    for i in range(NUM_REWARDS):
        current = position.reward_infos[i]
        if not reward_infos[i].initialized:
            rewards.append(current)
            continue
        growth = reward_growths_inside_x64[i]
        earned = checked_mul_shift_right(liquidity, wrapping_sub(growth, current.growth_inside_checkpoint))
        rewards.append(
            PositionRewardInfo(
                growth_inside_checkpoint=growth,
                amount_owed=_add_owed(current.amount_owed, earned),
            )
        )

    return PositionUpdate(
        liquidity=add_liquidity_delta(liquidity, liquidity_delta),
        fee_growth_checkpoint_a=fee_growth_inside_a,
        fee_growth_checkpoint_b=fee_growth_inside_b,
        fee_owed_a=_add_owed(position.fee_owed_a, owed_a),
        fee_owed_b=_add_owed(position.fee_owed_b, owed_b),
        reward_infos=tuple(rewards),
    )


def _check_position_pool(pool: Pool, position: Position) -> None:
    if position.pool != pool.address:
        raise InvariantViolation(f"position {position.position_id} belongs to {position.pool}, not {pool.address}")


def _growths_inside(pool: Pool, position: Position, ticks: TickStore, reward_infos: Sequence[RewardInfo]):
    lower = ticks.get_tick(position.tick_lower)
    upper = ticks.get_tick(position.tick_upper)
    fee_a, fee_b = fee_growths_inside(
        pool.tick_current_index,
        lower,
        position.tick_lower,
        upper,
        position.tick_upper,
        pool.fee_growth_global_a,
        pool.fee_growth_global_b,
    )
    rewards = reward_growths_inside(
        pool.tick_current_index, lower, position.tick_lower, upper, position.tick_upper, reward_infos
    )
    return lower, upper, fee_a, fee_b, rewards


# ----------------------------
# Operations
# ----------------------------

def open_position(pool: Pool, position_id: str, owner: str, tick_lower: int, tick_upper: int) -> Position:
    """Validate the range and return an empty position on it."""
    if tick_lower >= tick_upper:
        raise InvalidRangeError(f"tick_lower {tick_lower} must be below tick_upper {tick_upper}")
    for tick in (tick_lower, tick_upper):
        if not is_tick_index_usable(tick, pool.tick_spacing):
            raise InvalidRangeError(f"tick {tick} is not usable with spacing {pool.tick_spacing}")
    if is_full_range_only(pool.tick_spacing) and (tick_lower, tick_upper) != full_range_ticks(pool.tick_spacing):
        raise InvalidRangeError(f"spacing {pool.tick_spacing} only allows full-range positions")
    _dbg(f"opened {position_id} on {pool.address} [{tick_lower}, {tick_upper})")
    return Position(
        position_id=position_id,
        owner=owner,
        pool=pool.address,
        tick_lower=tick_lower,
        tick_upper=tick_upper,
    )


def modify_liquidity(
    pool: Pool,
    position: Position,
    ticks: TickStore,
    liquidity_delta: int,
    timestamp: int,
) -> ModifyLiquidityUpdate:
    """Compute a signed liquidity change on `position` (pure)."""
    if liquidity_delta == 0:
        raise AmountDomainError("liquidity delta must be non-zero")
    _check_position_pool(pool, position)
    pool.check_lp_window(timestamp)
    if position.liquidity + liquidity_delta < 0:
        raise InsufficientLiquidityError(-liquidity_delta, available=position.liquidity)

    reward_infos = next_reward_infos(pool, timestamp)
    pool_liquidity = next_pool_liquidity(pool, position.tick_lower, position.tick_upper, liquidity_delta)

    lower, upper, fee_a, fee_b, rewards = _growths_inside(pool, position, ticks, reward_infos)
    max_liquidity = max_liquidity_per_tick(pool.tick_spacing)
    lower_update = next_tick_modify_liquidity_update(
        lower,
        position.tick_lower,
        pool.tick_current_index,
        pool.fee_growth_global_a,
        pool.fee_growth_global_b,
        reward_infos,
        liquidity_delta,
        False,
        max_liquidity,
    )
    upper_update = next_tick_modify_liquidity_update(
        upper,
        position.tick_upper,
        pool.tick_current_index,
        pool.fee_growth_global_a,
        pool.fee_growth_global_b,
        reward_infos,
        liquidity_delta,
        True,
        max_liquidity,
    )

    position_update = next_position_update(position, fee_a, fee_b, rewards, reward_infos, liquidity_delta)
    amount_a, amount_b = get_token_amounts_for_liquidity(
        pool.tick_current_index, pool.sqrt_price, position.tick_lower, position.tick_upper, liquidity_delta
    )
    _dbg(f"{position.position_id}: delta={liquidity_delta} amounts=({amount_a}, {amount_b})")
    return ModifyLiquidityUpdate(
        liquidity_delta=liquidity_delta,
        tick_lower_index=position.tick_lower,
        tick_upper_index=position.tick_upper,
        tick_lower_update=lower_update,
        tick_upper_update=upper_update,
        pool_liquidity=pool_liquidity,
        reward_infos=tuple(reward_infos),
        position_update=position_update,
        amount_a=amount_a,
        amount_b=amount_b,
        timestamp=timestamp,
    )


def apply_modify_liquidity(pool: Pool, position: Position, ticks: TickStore, update: ModifyLiquidityUpdate) -> None:
    ticks.set_tick(update.tick_lower_index, update.tick_lower_update)
    ticks.set_tick(update.tick_upper_index, update.tick_upper_update)
    position.apply_update(update.position_update)
    pool.update_rewards_and_liquidity(update.reward_infos, update.pool_liquidity, update.timestamp)


def increase_liquidity(
    pool: Pool,
    position: Position,
    ticks: TickStore,
    liquidity_amount: int,
    token_max_a: int,
    token_max_b: int,
    timestamp: int,
    *,
    transfer_fee_a: TransferFee = NO_TRANSFER_FEE,
    transfer_fee_b: TransferFee = NO_TRANSFER_FEE,
) -> ModifyLiquidityUpdate:
    """Add liquidity; the deposit (transfer fee included) must fit within the token maximums."""
    if liquidity_amount <= 0:
        raise AmountDomainError("liquidity amount must be > 0")
    update = modify_liquidity(pool, position, ticks, liquidity_amount, timestamp)
    paid_a = transfer_fee_a.included_amount(update.amount_a)
    paid_b = transfer_fee_b.included_amount(update.amount_b)
    if paid_a > token_max_a:
        raise SlippageExceededError(f"token A required {paid_a} > max {token_max_a}", amount=paid_a, threshold=token_max_a)
    if paid_b > token_max_b:
        raise SlippageExceededError(f"token B required {paid_b} > max {token_max_b}", amount=paid_b, threshold=token_max_b)
    return update


def decrease_liquidity(
    pool: Pool,
    position: Position,
    ticks: TickStore,
    liquidity_amount: int,
    token_min_a: int,
    token_min_b: int,
    timestamp: int,
    *,
    transfer_fee_a: TransferFee = NO_TRANSFER_FEE,
    transfer_fee_b: TransferFee = NO_TRANSFER_FEE,
) -> ModifyLiquidityUpdate:
    """Remove liquidity; what the owner receives (after transfer fee) must meet the minimums."""
    if liquidity_amount <= 0:
        raise AmountDomainError("liquidity amount must be > 0")
    update = modify_liquidity(pool, position, ticks, -liquidity_amount, timestamp)
    received_a = transfer_fee_a.excluded_amount(update.amount_a)
    received_b = transfer_fee_b.excluded_amount(update.amount_b)
    if received_a < token_min_a:
        raise SlippageExceededError(f"token A returned {received_a} < min {token_min_a}", amount=received_a, threshold=token_min_a)
    if received_b < token_min_b:
        raise SlippageExceededError(f"token B returned {received_b} < min {token_min_b}", amount=received_b, threshold=token_min_b)
    return update


def update_fees_and_rewards(
    pool: Pool, position: Position, ticks: TickStore, timestamp: int
) -> Optional[FeesAndRewardsUpdate]:
    """Settle owed amounts without touching liquidity; None for a zero-liquidity position."""
    _check_position_pool(pool, position)
    if position.liquidity == 0:
        return None
    reward_infos = next_reward_infos(pool, timestamp)
    _, _, fee_a, fee_b, rewards = _growths_inside(pool, position, ticks, reward_infos)
    return FeesAndRewardsUpdate(
        reward_infos=tuple(reward_infos),
        position_update=next_position_update(position, fee_a, fee_b, rewards, reward_infos),
        timestamp=timestamp,
    )


def apply_fees_and_rewards(pool: Pool, position: Position, update: Optional[FeesAndRewardsUpdate]) -> None:
    if update is None:
        return
    position.apply_update(update.position_update)
    pool.update_rewards(update.reward_infos, update.timestamp)


def collect_fees(pool: Pool, position: Position, ticks: TickStore, timestamp: int) -> Tuple[int, int]:
    """Settle, then hand out and zero the owed fees. Mutates pool and position."""
    apply_fees_and_rewards(pool, position, update_fees_and_rewards(pool, position, ticks, timestamp))
    owed = (position.fee_owed_a, position.fee_owed_b)
    position.fee_owed_a = 0
    position.fee_owed_b = 0
    return owed


def collect_reward(pool: Pool, position: Position, ticks: TickStore, index: int, timestamp: int) -> int:
    """Settle, then hand out and zero reward `index`. Mutates pool and position."""
    if not 0 <= index < NUM_REWARDS or not pool.reward_infos[index].initialized:
        raise RewardError(f"reward {index} is not initialized")
    apply_fees_and_rewards(pool, position, update_fees_and_rewards(pool, position, ticks, timestamp))
    infos = list(position.reward_infos)
    owed = infos[index].amount_owed
    infos[index] = PositionRewardInfo(growth_inside_checkpoint=infos[index].growth_inside_checkpoint, amount_owed=0)
    position.reward_infos = tuple(infos)
    return owed


def reinvest_fees(
    pool: Pool, position: Position, ticks: TickStore, fee_rate: int, timestamp: int
) -> Optional[ReinvestFeesUpdate]:
    """Compute turning the position's owed fees into liquidity on its own range (pure).

    The owed fees are settled first. The largest liquidity they can back at the current
    price picks the amounts used; `fee_rate` (basis points) of those goes to the protocol and
    the rest is deposited. Whatever the deposit leaves over stays owed. Returns None when the
    owed fees cannot back a single unit of liquidity.
    """
    if not 0 <= fee_rate <= MAX_REINVESTMENT_FEE_RATE:
        raise PoolConfigError(f"reinvestment fee rate {fee_rate} outside [0, {MAX_REINVESTMENT_FEE_RATE}]")
    _check_position_pool(pool, position)
    settled = update_fees_and_rewards(pool, position, ticks, timestamp)
    owed = settled.position_update if settled is not None else position
    owed_a, owed_b = owed.fee_owed_a, owed.fee_owed_b

    sqrt_lower = sqrt_price_from_tick_index(position.tick_lower)
    sqrt_upper = sqrt_price_from_tick_index(position.tick_upper)
    affordable = get_liquidity_from_amounts(pool.sqrt_price, sqrt_lower, sqrt_upper, owed_a, owed_b)
    if affordable == 0:
        return None
    used_a, used_b = get_token_amounts_for_liquidity(
        pool.tick_current_index, pool.sqrt_price, position.tick_lower, position.tick_upper, affordable
    )
    used_a, used_b = min(used_a, owed_a), min(used_b, owed_b)

    protocol_a = used_a * fee_rate // REINVESTMENT_FEE_RATE_MUL_VALUE
    protocol_b = used_b * fee_rate // REINVESTMENT_FEE_RATE_MUL_VALUE
    net_a, net_b = used_a - protocol_a, used_b - protocol_b
    liquidity_delta = get_liquidity_from_amounts(pool.sqrt_price, sqrt_lower, sqrt_upper, net_a, net_b)
    if liquidity_delta == 0:
        return None

    update = modify_liquidity(pool, position, ticks, liquidity_delta, timestamp)
    if update.amount_a > net_a or update.amount_b > net_b:
        raise InvariantViolation(
            f"reinvested deposit ({update.amount_a}, {update.amount_b}) exceeds fees ({net_a}, {net_b})"
        )
    settled_update = update.position_update
    update = replace(
        update,
        position_update=replace(
            settled_update,
            fee_owed_a=settled_update.fee_owed_a - update.amount_a - protocol_a,
            fee_owed_b=settled_update.fee_owed_b - update.amount_b - protocol_b,
        ),
    )
    _dbg(
        f"{position.position_id}: reinvest +{liquidity_delta} from ({owed_a}, {owed_b}), "
        f"protocol ({protocol_a}, {protocol_b})"
    )
    return ReinvestFeesUpdate(liquidity_update=update, protocol_fee_a=protocol_a, protocol_fee_b=protocol_b)


def apply_reinvest_fees(pool: Pool, position: Position, ticks: TickStore, update: Optional[ReinvestFeesUpdate]) -> None:
    if update is None:
        return
    apply_modify_liquidity(pool, position, ticks, update.liquidity_update)
    pool.add_protocol_fees_owed(update.protocol_fee_a, update.protocol_fee_b)


def close_position(position: Position) -> None:
    if not position.is_empty:
        raise PositionNotEmptyError(
            f"position {position.position_id} still holds liquidity {position.liquidity} or owed amounts"
        )
    _dbg(f"closed {position.position_id}")


def position_amounts(pool: Pool, position: Position) -> Tuple[int, int]:
    """Token amounts the position would return right now, rounded down."""
    return get_active_amounts(
        pool.sqrt_price,
        sqrt_price_from_tick_index(position.tick_lower),
        sqrt_price_from_tick_index(position.tick_upper),
        position.liquidity,
    )


__all__ = [
    "DEBUG_POSITION",
    "Position",
    "PositionUpdate",
    "ModifyLiquidityUpdate",
    "FeesAndRewardsUpdate",
    "ReinvestFeesUpdate",
    "next_position_update",
    "open_position",
    "modify_liquidity",
    "apply_modify_liquidity",
    "increase_liquidity",
    "decrease_liquidity",
    "update_fees_and_rewards",
    "apply_fees_and_rewards",
    "collect_fees",
    "collect_reward",
    "reinvest_fees",
    "apply_reinvest_fees",
    "close_position",
    "position_amounts",
]
