"""
Operation flows: the thin surface that chains engine calls, token settlement and the
optional oracle guard into one all-or-nothing unit of work.

Every flow follows the same shape:

    1. compute update records with the pure engine functions;
    2. check slippage thresholds against what the caller will actually pay or receive;
    3. inside `ledger.transaction()`, settle token transfers and verify each receipt;
    4. stage the engine writebacks in a PoolSandbox and apply them last.

An exception at any point propagates after the ledger has rolled back and before any
writeback has run, so pools, ticks, positions and balances are all left as they were.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from .core.exc import (
    AmountDomainError,
    InvariantViolation,
    RewardError,
    SettlementError,
    SlippageExceededError,
)
from .context import PoolContext
from .ledger import TokenLedger
from .oracle import OracleGuard, sqrt_price_from_oracle_price
from .pool import PoolConfig, initialize_pool
from .position import (
    Position,
    apply_modify_liquidity,
    update_fees_and_rewards,
)
from . import position as position_engine
from . import rewards as reward_engine
from .sandbox import PoolSandbox
from .swap import SwapResult, apply_swap
from .swap import swap as compute_swap
from .tick_array import TickArray

# --- Debug utilities (toggleable) ---
DEBUG_FLOW = False

logger = logging.getLogger(__name__)


def _dbg(msg: str) -> None:
    if DEBUG_FLOW:
        logger.debug("[FLOW] %s", msg)


# ----------------------------
# Settlement helpers
# ----------------------------

def _settle(ledger: TokenLedger, token: str, source: str, destination: str, amount: int, expected: int) -> int:
    """Transfer `amount` and verify the destination's balance grew by at least `expected`."""
    if amount == 0:
        if expected > 0:
            raise SettlementError(f"{destination} expected {expected} {token} but nothing was sent")
        return 0
    before = ledger.balance_of(destination, token)
    ledger.transfer(token, source, destination, amount)
    received = ledger.balance_of(destination, token) - before
    if received < expected:
        raise SettlementError(f"{destination} received {received} {token}, expected {expected}")
    return received


# ----------------------------
# Pool setup
# ----------------------------

def initialize_pool_from_oracle(
    token_a: str,
    token_b: str,
    tick_spacing: int,
    guard: OracleGuard,
    *,
    decimals_a: int,
    decimals_b: int,
    now: int,
    config: Optional[PoolConfig] = None,
) -> PoolContext:
    """New pool seeded at the oracle's current price; a stale reading is refused."""
    sqrt_price = sqrt_price_from_oracle_price(guard.fresh_price(now), decimals_a, decimals_b)
    pool = initialize_pool(token_a, token_b, tick_spacing, sqrt_price, config=config, timestamp=now)
    return PoolContext.for_pool(pool)


def initialize_tick_array(ctx: PoolContext, start_index: int) -> TickArray:
    return ctx.ticks.initialize_page(start_index)


def initialize_reward(ctx: PoolContext, index: int, token: str, authority: str) -> str:
    """Open reward stream `index`; returns the vault account emissions are paid from."""
    reward_engine.initialize_reward(ctx.pool, index, token, authority)
    return ctx.reward_vault(index)


def set_reward_emissions(
    ctx: PoolContext,
    ledger: TokenLedger,
    index: int,
    emissions_per_second_x64: int,
    timestamp: int,
    *,
    authority: str,
) -> None:
    """Set a stream's rate once its vault holds at least one day of emissions."""
    info = ctx.pool.reward_infos[index] if 0 <= index < len(ctx.pool.reward_infos) else None
    if info is None or not info.initialized:
        raise RewardError(f"reward {index} is not initialized")
    vault_balance = ledger.balance_of(ctx.reward_vault(index), info.token)
    reward_engine.set_reward_emissions(
        ctx.pool,
        index,
        emissions_per_second_x64,
        timestamp,
        authority=authority,
        vault_balance=vault_balance,
    )


# ----------------------------
# Positions
# ----------------------------

def open_position(ctx: PoolContext, position_id: str, owner: str, tick_lower: int, tick_upper: int) -> Position:
    position = position_engine.open_position(ctx.pool, position_id, owner, tick_lower, tick_upper)
    ctx.add_position(position)
    return position


def increase_liquidity(
    ctx: PoolContext,
    ledger: TokenLedger,
    position_id: str,
    liquidity_amount: int,
    token_max_a: int,
    token_max_b: int,
    timestamp: int,
) -> Tuple[int, int]:
    """Deposit liquidity; returns what the owner paid for each token (transfer fee included)."""
    pool, position = ctx.pool, ctx.position(position_id)
    fee_a = ledger.transfer_fee(pool.token_a)
    fee_b = ledger.transfer_fee(pool.token_b)
    update = position_engine.increase_liquidity(
        pool,
        position,
        ctx.ticks,
        liquidity_amount,
        token_max_a,
        token_max_b,
        timestamp,
        transfer_fee_a=fee_a,
        transfer_fee_b=fee_b,
    )
    paid_a = fee_a.included_amount(update.amount_a)
    paid_b = fee_b.included_amount(update.amount_b)

    sandbox = PoolSandbox()
    with ledger.transaction():
        _settle(ledger, pool.token_a, position.owner, ctx.vault_a, paid_a, update.amount_a)
        _settle(ledger, pool.token_b, position.owner, ctx.vault_b, paid_b, update.amount_b)
        sandbox.stage(lambda: apply_modify_liquidity(pool, position, ctx.ticks, update))
        sandbox.apply()
    _dbg(f"{position_id} +{liquidity_amount}: paid ({paid_a}, {paid_b})")
    return paid_a, paid_b


def decrease_liquidity(
    ctx: PoolContext,
    ledger: TokenLedger,
    position_id: str,
    liquidity_amount: int,
    token_min_a: int,
    token_min_b: int,
    timestamp: int,
) -> Tuple[int, int]:
    """Withdraw liquidity; returns what the owner received (transfer fee excluded)."""
    pool, position = ctx.pool, ctx.position(position_id)
    fee_a = ledger.transfer_fee(pool.token_a)
    fee_b = ledger.transfer_fee(pool.token_b)
    update = position_engine.decrease_liquidity(
        pool,
        position,
        ctx.ticks,
        liquidity_amount,
        token_min_a,
        token_min_b,
        timestamp,
        transfer_fee_a=fee_a,
        transfer_fee_b=fee_b,
    )

    sandbox = PoolSandbox()
    with ledger.transaction():
        received_a = _settle(
            ledger, pool.token_a, ctx.vault_a, position.owner, update.amount_a, fee_a.excluded_amount(update.amount_a)
        )
        received_b = _settle(
            ledger, pool.token_b, ctx.vault_b, position.owner, update.amount_b, fee_b.excluded_amount(update.amount_b)
        )
        sandbox.stage(lambda: apply_modify_liquidity(pool, position, ctx.ticks, update))
        sandbox.apply()
    _dbg(f"{position_id} -{liquidity_amount}: received ({received_a}, {received_b})")
    return received_a, received_b


def close_position(ctx: PoolContext, position_id: str) -> Position:
    position = ctx.position(position_id)
    position_engine.close_position(position)
    return ctx.remove_position(position_id)


def collect_fees(ctx: PoolContext, ledger: TokenLedger, position_id: str, timestamp: int) -> Tuple[int, int]:
    """Pay out a position's owed fees; returns what the owner received."""
    pool, position = ctx.pool, ctx.position(position_id)
    settled = update_fees_and_rewards(pool, position, ctx.ticks, timestamp)
    owed = settled.position_update if settled is not None else position
    owed_a, owed_b = owed.fee_owed_a, owed.fee_owed_b
    fee_a = ledger.transfer_fee(pool.token_a)
    fee_b = ledger.transfer_fee(pool.token_b)

    sandbox = PoolSandbox()
    with ledger.transaction():
        received_a = _settle(ledger, pool.token_a, ctx.vault_a, position.owner, owed_a, fee_a.excluded_amount(owed_a))
        received_b = _settle(ledger, pool.token_b, ctx.vault_b, position.owner, owed_b, fee_b.excluded_amount(owed_b))
        sandbox.stage(lambda: position_engine.collect_fees(pool, position, ctx.ticks, timestamp))
        sandbox.apply()
    return received_a, received_b


def collect_reward(ctx: PoolContext, ledger: TokenLedger, position_id: str, index: int, timestamp: int) -> int:
    """Pay out a position's owed reward `index` from the reward vault."""
    pool, position = ctx.pool, ctx.position(position_id)
    if not 0 <= index < len(pool.reward_infos) or not pool.reward_infos[index].initialized:
        raise RewardError(f"reward {index} is not initialized")
    token = pool.reward_infos[index].token
    settled = update_fees_and_rewards(pool, position, ctx.ticks, timestamp)
    infos = settled.position_update.reward_infos if settled is not None else position.reward_infos
    owed = infos[index].amount_owed
    transfer_fee = ledger.transfer_fee(token)

    sandbox = PoolSandbox()
    with ledger.transaction():
        received = _settle(
            ledger, token, ctx.reward_vault(index), position.owner, owed, transfer_fee.excluded_amount(owed)
        )
        sandbox.stage(lambda: position_engine.collect_reward(pool, position, ctx.ticks, index, timestamp))
        sandbox.apply()
    return received


def reinvest_fees(ctx: PoolContext, position_id: str, fee_rate: int, timestamp: int) -> int:
    """Turn a position's owed fees into liquidity; returns the liquidity added (0 if none).

    The fees already sit in the pool vaults, so nothing is transferred.
    """
    pool, position = ctx.pool, ctx.position(position_id)
    update = position_engine.reinvest_fees(pool, position, ctx.ticks, fee_rate, timestamp)
    if update is None:
        return 0

    sandbox = PoolSandbox()
    sandbox.stage(lambda: position_engine.apply_reinvest_fees(pool, position, ctx.ticks, update))
    sandbox.apply()
    _dbg(f"{position_id} reinvested +{update.liquidity_delta}: spent ({update.spent_a}, {update.spent_b})")
    return update.liquidity_delta


def collect_protocol_fees(ctx: PoolContext, ledger: TokenLedger, recipient: str) -> Tuple[int, int]:
    pool = ctx.pool
    owed_a, owed_b = pool.protocol_fee_owed_a, pool.protocol_fee_owed_b
    fee_a = ledger.transfer_fee(pool.token_a)
    fee_b = ledger.transfer_fee(pool.token_b)

    sandbox = PoolSandbox()
    with ledger.transaction():
        received_a = _settle(ledger, pool.token_a, ctx.vault_a, recipient, owed_a, fee_a.excluded_amount(owed_a))
        received_b = _settle(ledger, pool.token_b, ctx.vault_b, recipient, owed_b, fee_b.excluded_amount(owed_b))
        sandbox.stage(pool.reset_protocol_fees_owed)
        sandbox.apply()
    return received_a, received_b


# ----------------------------
# Swaps
# ----------------------------

@dataclass(frozen=True)
class SwapReceipt:
    """What the trader paid and received, after transfer fees, plus the engine results."""
    amount_in: int
    amount_out: int
    results: Tuple[SwapResult, ...]
    referral_fee: int = 0

    @property
    def result(self) -> SwapResult:
        return self.results[-1]


def _check_threshold(
    amount_specified_is_input: bool, paid: int, received: int, other_amount_threshold: Optional[int]
) -> None:
    if other_amount_threshold is None:
        return
    if amount_specified_is_input and received < other_amount_threshold:
        raise SlippageExceededError(
            f"output {received} below threshold {other_amount_threshold}",
            amount=received,
            threshold=other_amount_threshold,
        )
    if not amount_specified_is_input and paid > other_amount_threshold:
        raise SlippageExceededError(
            f"input {paid} above threshold {other_amount_threshold}",
            amount=paid,
            threshold=other_amount_threshold,
        )


def swap(
    ctx: PoolContext,
    ledger: TokenLedger,
    trader: str,
    amount: int,
    *,
    a_to_b: bool,
    amount_specified_is_input: bool = True,
    other_amount_threshold: Optional[int] = None,
    sqrt_price_limit: Optional[int] = None,
    timestamp: int,
    referral: Optional[str] = None,
    referral_fee_rate: int = 0,
    oracle_guard: Optional[OracleGuard] = None,
    decimals: Tuple[int, int] = (0, 0),
    tick_array_starts: Optional[Sequence[int]] = None,
) -> SwapReceipt:
    """Swap against one pool and settle with the trader.

    `amount` is what the trader sends (exact input) or wants to receive (exact output);
    transfer fees on either token are absorbed so that those amounts hold at the trader's end.
    With `tick_array_starts` the engine only sees those pages and fails with
    TickArrayNotLoadedError when it walks past them.
    """
    pool = ctx.pool
    token_in, token_out = pool.input_token(a_to_b), pool.output_token(a_to_b)
    fee_in = ledger.transfer_fee(token_in)
    fee_out = ledger.transfer_fee(token_out)

    if amount_specified_is_input:
        engine_amount = fee_in.excluded_amount(amount)
    else:
        engine_amount = fee_out.included_amount(amount)
    if engine_amount <= 0:
        raise AmountDomainError(f"swap amount {amount} is consumed by the transfer fee")

    rate = 0
    if referral is not None:
        rate = max(pool.default_referral_fee_rate, referral_fee_rate)

    ticks = ctx.ticks if tick_array_starts is None else ctx.ticks.working_set(tick_array_starts)
    result = compute_swap(
        pool,
        ticks,
        engine_amount,
        a_to_b=a_to_b,
        amount_specified_is_input=amount_specified_is_input,
        sqrt_price_limit=sqrt_price_limit,
        timestamp=timestamp,
        referral_fee_rate=rate,
    )
    if oracle_guard is not None:
        oracle_guard.check_sqrt_price(result.next_sqrt_price, timestamp, *decimals)

    paid = fee_in.included_amount(result.amount_in)
    received = fee_out.excluded_amount(result.amount_out)
    _check_threshold(amount_specified_is_input, paid, received, other_amount_threshold)

    sandbox = PoolSandbox()
    with ledger.transaction():
        _settle(ledger, token_in, trader, ctx.vault(token_in), paid, result.amount_in)
        received = _settle(ledger, token_out, ctx.vault(token_out), trader, result.amount_out, received)
        if referral is not None and result.referral_fee:
            _settle(
                ledger,
                token_in,
                ctx.vault(token_in),
                referral,
                result.referral_fee,
                fee_in.excluded_amount(result.referral_fee),
            )
        sandbox.stage(lambda: apply_swap(pool, ticks, result))
        sandbox.apply()

    _dbg(f"{trader} swapped {paid} {token_in} -> {received} {token_out} on {pool.address}")
    return SwapReceipt(amount_in=paid, amount_out=received, results=(result,), referral_fee=result.referral_fee)


def _route(contexts: Sequence[PoolContext], token_in: str) -> Tuple[List[bool], str]:
    """Swap direction of every hop, and the final output token."""
    if len(contexts) < 2:
        raise AmountDomainError("a multi-hop swap needs at least two pools")
    addresses = [ctx.address for ctx in contexts]
    if len(set(addresses)) != len(addresses):
        raise AmountDomainError(f"duplicate pool in route {addresses}")
    directions = []
    token = token_in
    for ctx in contexts:
        pool = ctx.pool
        if token not in (pool.token_a, pool.token_b):
            raise AmountDomainError(f"{token} is not traded on {pool.address}")
        a_to_b = token == pool.token_a
        directions.append(a_to_b)
        token = pool.output_token(a_to_b)
    return directions, token


def _quote_exact_in(contexts, ledger, directions, amount, timestamp) -> List[SwapResult]:
    results = []
    hop_amount = ledger.transfer_fee(contexts[0].pool.input_token(directions[0])).excluded_amount(amount)
    for ctx, a_to_b in zip(contexts, directions):
        if hop_amount <= 0:
            raise AmountDomainError("nothing left to swap after transfer fees")
        result = compute_swap(ctx.pool, ctx.ticks, hop_amount, a_to_b=a_to_b, amount_specified_is_input=True, timestamp=timestamp)
        if result.amount_in != hop_amount:
            raise InvariantViolation(f"hop on {ctx.address} consumed {result.amount_in} of {hop_amount}")
        results.append(result)
        # the intermediate output moves vault to vault, paying the transfer fee once
        hop_amount = ledger.transfer_fee(ctx.pool.output_token(a_to_b)).excluded_amount(result.amount_out)
    return results


def _quote_exact_out(contexts, ledger, directions, amount, timestamp) -> List[SwapResult]:
    results = []
    last = contexts[-1].pool
    hop_amount = ledger.transfer_fee(last.output_token(directions[-1])).included_amount(amount)
    for ctx, a_to_b in zip(reversed(contexts), reversed(directions)):
        result = compute_swap(ctx.pool, ctx.ticks, hop_amount, a_to_b=a_to_b, amount_specified_is_input=False, timestamp=timestamp)
        if result.amount_out != hop_amount:
            raise InvariantViolation(f"hop on {ctx.address} delivered {result.amount_out} of {hop_amount}")
        results.append(result)
        hop_amount = ledger.transfer_fee(ctx.pool.input_token(a_to_b)).included_amount(result.amount_in)
    results.reverse()
    return results


def multi_hop_swap(
    contexts: Sequence[PoolContext],
    ledger: TokenLedger,
    trader: str,
    amount: int,
    *,
    token_in: str,
    amount_specified_is_input: bool = True,
    other_amount_threshold: Optional[int] = None,
    timestamp: int,
) -> SwapReceipt:
    """Swap through two or more pools, settling every hop in one unit of work.

    Exact input runs the hops forward, feeding each hop what actually arrives from the
    previous one; exact output runs them backwards from the requested output. Every pool
    must be distinct and each hop's output token must be the next hop's input token.
    """
    directions, token_out = _route(contexts, token_in)
    if amount_specified_is_input:
        results = _quote_exact_in(contexts, ledger, directions, amount, timestamp)
    else:
        results = _quote_exact_out(contexts, ledger, directions, amount, timestamp)

    first, last = results[0], results[-1]
    paid = ledger.transfer_fee(token_in).included_amount(first.amount_in)
    received = ledger.transfer_fee(token_out).excluded_amount(last.amount_out)
    _check_threshold(amount_specified_is_input, paid, received, other_amount_threshold)

    sandbox = PoolSandbox()
    with ledger.transaction():
        _settle(ledger, token_in, trader, contexts[0].vault(token_in), paid, first.amount_in)
        for i in range(len(contexts) - 1):
            ctx, nxt = contexts[i], contexts[i + 1]
            mid_token = ctx.pool.output_token(directions[i])
            _settle(ledger, mid_token, ctx.vault(mid_token), nxt.vault(mid_token), results[i].amount_out, results[i + 1].amount_in)
        received = _settle(ledger, token_out, contexts[-1].vault(token_out), trader, last.amount_out, received)
        for ctx, result in zip(contexts, results):
            sandbox.stage(lambda ctx=ctx, result=result: apply_swap(ctx.pool, ctx.ticks, result))
        sandbox.apply()

    _dbg(f"{trader} multi-hop {paid} {token_in} -> {received} {token_out} over {len(contexts)} pools")
    return SwapReceipt(amount_in=paid, amount_out=received, results=tuple(results))


__all__ = [
    "DEBUG_FLOW",
    "SwapReceipt",
    "initialize_pool_from_oracle",
    "initialize_tick_array",
    "initialize_reward",
    "set_reward_emissions",
    "open_position",
    "increase_liquidity",
    "decrease_liquidity",
    "close_position",
    "collect_fees",
    "collect_reward",
    "reinvest_fees",
    "collect_protocol_fees",
    "swap",
    "multi_hop_swap",
]
