"""
SwapEngine: walk the price across initialized ticks until the amount or the price limit is spent.

The loop is pure. `swap()` reads a Pool and a TickStore and returns a SwapResult carrying the
new price, tick, liquidity and accumulators plus the staged tick crossings; `apply_swap()`
commits it. A failure anywhere leaves the pool and the ticks untouched.

Alignment notes:
- Exact input: the fee comes off the input before the price moves (`amount * (1e6 - fee) / 1e6`).
- Fee split order: referral share, then the protocol share of the rest, then LP growth.
- Crossing down leaves the working tick at `crossed - 1` while the price sits on the crossed tick.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from .core.constants import (
    FEE_RATE_MUL_VALUE,
    MAX_REFERRAL_FEE_RATE,
    PROTOCOL_FEE_RATE_MUL_VALUE,
    Q64_RESOLUTION,
    REFERRAL_FEE_RATE_MUL_VALUE,
    U64_MAX,
)
from .core.datatypes import RewardInfo, Tick
from .core.exc import (
    AmountDomainError,
    InsufficientLiquidityError,
    InvariantViolation,
    PoolConfigError,
    PriceLimitError,
)
from .core.fixed_point import checked_mul_div, checked_mul_div_round_up, to_u64, wrapping_add
from .core.liquidity_math import (
    add_liquidity_delta,
    get_amount_delta_a,
    get_amount_delta_a_unbounded,
    get_amount_delta_b,
    get_amount_delta_b_unbounded,
    get_next_sqrt_price,
)
from .core.tick_math import (
    MAX_SQRT_PRICE_X64,
    MIN_SQRT_PRICE_X64,
    is_sqrt_price_in_bounds,
    sqrt_price_from_tick_index,
    tick_index_from_sqrt_price,
)
from .pool import Pool
from .rewards import next_reward_infos
from .tick_array import TickStore, next_tick_cross_update

# --- Debug utilities (toggleable) ---
DEBUG_SWAP = False

logger = logging.getLogger(__name__)


def _dbg(msg: str) -> None:
    if DEBUG_SWAP:
        logger.debug("[SWAP] %s", msg)


# ----------------------------
# Single step
# ----------------------------

@dataclass(frozen=True)
class SwapStepResult:
    amount_in: int
    amount_out: int
    next_sqrt_price: int
    fee_amount: int


def _fixed_delta_unbounded(sqrt_current: int, sqrt_target: int, liquidity: int, is_input: bool, a_to_b: bool) -> int:
    if a_to_b == is_input:
        return get_amount_delta_a_unbounded(sqrt_current, sqrt_target, liquidity, is_input)
    return get_amount_delta_b_unbounded(sqrt_current, sqrt_target, liquidity, is_input)


def _fixed_delta(sqrt_current: int, sqrt_target: int, liquidity: int, is_input: bool, a_to_b: bool) -> int:
    if a_to_b == is_input:
        return get_amount_delta_a(sqrt_current, sqrt_target, liquidity, is_input)
    return get_amount_delta_b(sqrt_current, sqrt_target, liquidity, is_input)


def _unfixed_delta(sqrt_current: int, sqrt_target: int, liquidity: int, is_input: bool, a_to_b: bool) -> int:
    if a_to_b == is_input:
        return get_amount_delta_b(sqrt_current, sqrt_target, liquidity, not is_input)
    return get_amount_delta_a(sqrt_current, sqrt_target, liquidity, not is_input)


def compute_swap_step(
    amount_remaining: int,
    fee_rate: int,
    liquidity: int,
    sqrt_price_current: int,
    sqrt_price_target: int,
    amount_specified_is_input: bool,
    a_to_b: bool,
) -> SwapStepResult:
    """Move the price from current towards target with at most `amount_remaining`.

    The "fixed" side is the token the caller specified (input in exact-in mode, output in
    exact-out mode); the "unfixed" side is derived from the price actually reached.
    """
    is_input = amount_specified_is_input
    # a delta past u64 just means the target is out of reach
    reach = _fixed_delta_unbounded(sqrt_price_current, sqrt_price_target, liquidity, is_input, a_to_b)

    amount_calc = amount_remaining
    if is_input:
        amount_calc = checked_mul_div(amount_remaining, FEE_RATE_MUL_VALUE - fee_rate, FEE_RATE_MUL_VALUE)

    if amount_calc >= reach:
        next_sqrt_price = sqrt_price_target
    else:
        next_sqrt_price = get_next_sqrt_price(sqrt_price_current, liquidity, amount_calc, is_input, a_to_b)

    is_max_swap = next_sqrt_price == sqrt_price_target
    if is_max_swap:
        amount_fixed = to_u64(reach, "amount_fixed_delta")
    else:
        amount_fixed = _fixed_delta(sqrt_price_current, next_sqrt_price, liquidity, is_input, a_to_b)
    amount_unfixed = _unfixed_delta(sqrt_price_current, next_sqrt_price, liquidity, is_input, a_to_b)

    if is_input:
        amount_in, amount_out = amount_fixed, amount_unfixed
    else:
        amount_in, amount_out = amount_unfixed, min(amount_fixed, amount_remaining)

    if is_input and not is_max_swap:
        if amount_in > amount_remaining:
            raise InvariantViolation(f"step input {amount_in} exceeds remaining {amount_remaining}")
        fee_amount = amount_remaining - amount_in
    else:
        fee_amount = checked_mul_div_round_up(amount_in, fee_rate, FEE_RATE_MUL_VALUE - fee_rate, limit=U64_MAX)

    return SwapStepResult(
        amount_in=amount_in,
        amount_out=amount_out,
        next_sqrt_price=next_sqrt_price,
        fee_amount=fee_amount,
    )


def split_fee(fee_amount: int, protocol_fee_rate: int, referral_fee_rate: int, liquidity: int) -> Tuple[int, int, int]:
    """Split a step fee into (referral_fee, protocol_fee, lp_growth_delta_x64).

    With no active liquidity the LP share has nobody to accrue to and goes to the protocol.
    """
    referral_fee = fee_amount * referral_fee_rate // REFERRAL_FEE_RATE_MUL_VALUE
    rest = fee_amount - referral_fee
    protocol_fee = rest * protocol_fee_rate // PROTOCOL_FEE_RATE_MUL_VALUE
    lp_fee = rest - protocol_fee
    if liquidity == 0:
        return referral_fee, protocol_fee + lp_fee, 0
    return referral_fee, protocol_fee, (lp_fee << Q64_RESOLUTION) // liquidity


# ----------------------------
# Swap loop
# ----------------------------

@dataclass
class SwapState:
    amount_remaining: int
    amount_calculated: int
    sqrt_price: int
    tick_index: int
    liquidity: int
    fee_growth_global_input: int
    fee_amount: int = 0
    protocol_fee: int = 0
    referral_fee: int = 0
    tick_updates: Dict[int, Tick] = field(default_factory=dict)
    steps: int = 0


@dataclass(frozen=True)
class SwapResult:
    """Outcome of a swap, not yet applied.

    amount_a / amount_b are what moved on each side of the pool, fee included on the
    input side. `tick_updates` holds the crossed ticks in crossing order.
    """
    a_to_b: bool
    amount_specified_is_input: bool
    amount_a: int
    amount_b: int
    next_sqrt_price: int
    next_tick_index: int
    next_liquidity: int
    next_fee_growth_global: int
    next_reward_infos: Tuple[RewardInfo, ...]
    fee_amount: int
    protocol_fee: int
    referral_fee: int
    tick_updates: Tuple[Tuple[int, Tick], ...]
    timestamp: int
    steps: int

    @property
    def amount_in(self) -> int:
        return self.amount_a if self.a_to_b else self.amount_b

    @property
    def amount_out(self) -> int:
        return self.amount_b if self.a_to_b else self.amount_a

    @property
    def ticks_crossed(self) -> int:
        return len(self.tick_updates)


def _resolve_price_limit(pool: Pool, sqrt_price_limit: Optional[int], a_to_b: bool) -> int:
    if sqrt_price_limit is None:
        return MIN_SQRT_PRICE_X64 if a_to_b else MAX_SQRT_PRICE_X64
    if not is_sqrt_price_in_bounds(sqrt_price_limit):
        raise PriceLimitError(f"price limit {sqrt_price_limit} outside sqrt price bounds")
    if a_to_b and sqrt_price_limit > pool.sqrt_price:
        raise PriceLimitError(f"a->b price limit {sqrt_price_limit} above current {pool.sqrt_price}")
    if not a_to_b and sqrt_price_limit < pool.sqrt_price:
        raise PriceLimitError(f"b->a price limit {sqrt_price_limit} below current {pool.sqrt_price}")
    return sqrt_price_limit


def swap(
    pool: Pool,
    ticks: TickStore,
    amount: int,
    *,
    a_to_b: bool,
    amount_specified_is_input: bool = True,
    sqrt_price_limit: Optional[int] = None,
    timestamp: int,
    referral_fee_rate: int = 0,
) -> SwapResult:
    """Compute a swap of `amount` against `pool` (pure).

    `sqrt_price_limit=None` lets the price run to the global bound; in that case any amount
    left unfilled means the pool ran out of liquidity and InsufficientLiquidityError is raised.
    With an explicit limit, stopping at the limit is a successful partial fill.
    """
    if amount <= 0 or amount > U64_MAX:
        raise AmountDomainError(f"swap amount {amount} outside (0, u64]")
    if not 0 <= referral_fee_rate <= MAX_REFERRAL_FEE_RATE:
        raise PoolConfigError(f"referral fee rate {referral_fee_rate} outside [0, {MAX_REFERRAL_FEE_RATE}]")
    pool.check_swap_window(timestamp)
    limit = _resolve_price_limit(pool, sqrt_price_limit, a_to_b)
    bound = MIN_SQRT_PRICE_X64 if a_to_b else MAX_SQRT_PRICE_X64
    limit_tick = tick_index_from_sqrt_price(limit)

    reward_infos = next_reward_infos(pool, timestamp)
    is_input = amount_specified_is_input
    state = SwapState(
        amount_remaining=amount,
        amount_calculated=0,
        sqrt_price=pool.sqrt_price,
        tick_index=pool.tick_current_index,
        liquidity=pool.liquidity,
        fee_growth_global_input=pool.fee_growth_global_a if a_to_b else pool.fee_growth_global_b,
    )

    while state.amount_remaining > 0 and state.sqrt_price != limit:
        next_tick = ticks.next_initialized_tick(state.tick_index, a_to_b, limit_tick)
        if next_tick is None:
            if state.liquidity == 0 and sqrt_price_limit is None:
                raise InsufficientLiquidityError(
                    amount,
                    available=0,
                    filled=amount - state.amount_remaining,
                    spent=state.amount_calculated,
                    tick_index=state.tick_index,
                )
            next_tick_sqrt_price = bound
        else:
            next_tick_sqrt_price = sqrt_price_from_tick_index(next_tick)
        target = max(next_tick_sqrt_price, limit) if a_to_b else min(next_tick_sqrt_price, limit)

        step = compute_swap_step(
            state.amount_remaining,
            pool.fee_rate,
            state.liquidity,
            state.sqrt_price,
            target,
            is_input,
            a_to_b,
        )
        state.steps += 1

        if is_input:
            state.amount_remaining -= step.amount_in + step.fee_amount
            state.amount_calculated += step.amount_out
        else:
            state.amount_remaining -= step.amount_out
            state.amount_calculated += step.amount_in + step.fee_amount
        if state.amount_remaining < 0:
            raise InvariantViolation(f"swap consumed more than requested ({state.amount_remaining})")

        referral_fee, protocol_fee, growth_delta = split_fee(
            step.fee_amount, pool.protocol_fee_rate, referral_fee_rate, state.liquidity
        )
        state.fee_amount += step.fee_amount
        state.referral_fee += referral_fee
        state.protocol_fee += protocol_fee
        state.fee_growth_global_input = wrapping_add(state.fee_growth_global_input, growth_delta)

        if next_tick is not None and step.next_sqrt_price == next_tick_sqrt_price:
            tick = state.tick_updates.get(next_tick)
            if tick is None:
                tick = ticks.get_tick(next_tick)
            if a_to_b:
                fee_a, fee_b = state.fee_growth_global_input, pool.fee_growth_global_b
            else:
                fee_a, fee_b = pool.fee_growth_global_a, state.fee_growth_global_input
            state.tick_updates[next_tick] = next_tick_cross_update(tick, fee_a, fee_b, reward_infos)
            net = -tick.liquidity_net if a_to_b else tick.liquidity_net
            state.liquidity = add_liquidity_delta(state.liquidity, net)
            state.tick_index = next_tick - 1 if a_to_b else next_tick
            _dbg(f"crossed {next_tick}: liquidity -> {state.liquidity}")
        elif step.next_sqrt_price != state.sqrt_price:
            state.tick_index = tick_index_from_sqrt_price(step.next_sqrt_price)
        state.sqrt_price = step.next_sqrt_price

        if state.sqrt_price == bound:
            break

    if state.amount_remaining > 0 and sqrt_price_limit is None:
        raise InsufficientLiquidityError(
            amount,
            filled=amount - state.amount_remaining,
            spent=state.amount_calculated,
            tick_index=state.tick_index,
        )

    if a_to_b == is_input:
        amount_a, amount_b = amount - state.amount_remaining, state.amount_calculated
    else:
        amount_a, amount_b = state.amount_calculated, amount - state.amount_remaining

    _dbg(
        f"{pool.address} a_to_b={a_to_b} exact_in={is_input}: a={amount_a} b={amount_b} "
        f"steps={state.steps} crossed={len(state.tick_updates)}"
    )
    return SwapResult(
        a_to_b=a_to_b,
        amount_specified_is_input=is_input,
        amount_a=amount_a,
        amount_b=amount_b,
        next_sqrt_price=state.sqrt_price,
        next_tick_index=state.tick_index,
        next_liquidity=state.liquidity,
        next_fee_growth_global=state.fee_growth_global_input,
        next_reward_infos=tuple(reward_infos),
        fee_amount=state.fee_amount,
        protocol_fee=state.protocol_fee,
        referral_fee=state.referral_fee,
        tick_updates=tuple(state.tick_updates.items()),
        timestamp=timestamp,
        steps=state.steps,
    )


def apply_swap(pool: Pool, ticks: TickStore, result: SwapResult) -> None:
    """Commit a SwapResult to the pool and its tick store."""
    for tick_index, tick in result.tick_updates:
        ticks.set_tick(tick_index, tick)
    pool.update_rewards_and_liquidity(result.next_reward_infos, result.next_liquidity, result.timestamp)
    pool.sqrt_price = result.next_sqrt_price
    pool.tick_current_index = result.next_tick_index
    if result.a_to_b:
        pool.fee_growth_global_a = result.next_fee_growth_global
        pool.add_protocol_fees_owed(result.protocol_fee, 0)
    else:
        pool.fee_growth_global_b = result.next_fee_growth_global
        pool.add_protocol_fees_owed(0, result.protocol_fee)


__all__ = [
    "DEBUG_SWAP",
    "SwapStepResult",
    "SwapState",
    "SwapResult",
    "compute_swap_step",
    "split_fee",
    "swap",
    "apply_swap",
]
