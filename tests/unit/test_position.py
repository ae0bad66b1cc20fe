import pytest

from clmm_engine import (
    apply_modify_liquidity,
    close_position,
    collect_fees,
    decrease_liquidity,
    increase_liquidity,
    initialize_pool,
    modify_liquidity,
    open_position,
    reinvest_fees,
    update_fees_and_rewards,
)
from clmm_engine.core import Q64, TimeWindow, full_range_ticks
from clmm_engine.core.datatypes import EMPTY_TICK
from clmm_engine.core.exc import (
    AmountDomainError,
    InsufficientLiquidityError,
    InvalidRangeError,
    InvariantViolation,
    PoolConfigError,
    PositionNotEmptyError,
    SlippageExceededError,
    WindowClosedError,
)
from clmm_engine.ledger import TransferFee
from clmm_engine.position import apply_reinvest_fees, position_amounts

L = 1_000_000


# -----------------------------
# Opening
# -----------------------------

@pytest.mark.parametrize("lower,upper", [(128, 128), (128, -128), (100, 128), (-128, 100), (-443_648, 0)])
def test_open_position_rejects_bad_ranges(pool, lower, upper):
    with pytest.raises(InvalidRangeError):
        open_position(pool, "p", "lp", lower, upper)


def test_full_range_only_spacing():
    pool = initialize_pool("A", "B", 32_768, Q64)
    lower, upper = full_range_ticks(32_768)
    position = open_position(pool, "full", "lp", lower, upper)
    assert (position.tick_lower, position.tick_upper) == (lower, upper)
    with pytest.raises(InvalidRangeError):
        open_position(pool, "narrow", "lp", -32_768, 32_768)


def test_open_position_is_empty(pool):
    position = open_position(pool, "p1", "lp", -128, 128)
    assert position.pool == pool.address
    assert position.liquidity == 0 and position.is_empty
    assert position.is_in_range(0) and not position.is_in_range(128)


# -----------------------------
# Liquidity changes
# -----------------------------

def test_modify_liquidity_is_pure_until_applied(pool, ticks):
    position = open_position(pool, "p1", "lp", -128, 128)
    update = modify_liquidity(pool, position, ticks, L, 0)
    assert pool.liquidity == 0 and position.liquidity == 0
    assert ticks.get_tick(-128) == EMPTY_TICK
    apply_modify_liquidity(pool, position, ticks, update)
    assert pool.liquidity == L and position.liquidity == L
    assert ticks.get_tick(-128).liquidity_net == L
    assert ticks.get_tick(128).liquidity_net == -L


def test_modify_liquidity_guards(pool, ticks, provide):
    position = provide("p1", -128, 128, L)
    with pytest.raises(AmountDomainError):
        modify_liquidity(pool, position, ticks, 0, 0)
    with pytest.raises(InsufficientLiquidityError):
        modify_liquidity(pool, position, ticks, -(L + 1), 0)
    other = initialize_pool("A", "C", 64, Q64)
    with pytest.raises(InvariantViolation):
        modify_liquidity(other, position, ticks, 1, 0)


def test_lp_window_enforced(ticks):
    pool = initialize_pool("A", "B", 64, Q64, lp_window=TimeWindow(0, 10))
    position = open_position(pool, "p1", "lp", -128, 128)
    modify_liquidity(pool, position, ticks, L, 10)
    with pytest.raises(WindowClosedError):
        modify_liquidity(pool, position, ticks, L, 11)


def test_out_of_range_deposit_is_single_sided(pool, ticks):
    above = open_position(pool, "above", "lp", 64, 640)
    below = open_position(pool, "below", "lp", -640, -64)
    up = modify_liquidity(pool, above, ticks, L, 0)
    down = modify_liquidity(pool, below, ticks, L, 0)
    assert up.amount_a > 0 and up.amount_b == 0
    assert down.amount_a == 0 and down.amount_b > 0
    assert up.pool_liquidity == down.pool_liquidity == 0


def test_increase_respects_token_maximums(pool, ticks):
    position = open_position(pool, "p1", "lp", -128, 128)
    update = increase_liquidity(pool, position, ticks, L, 10**12, 10**12, 0)
    need_a = update.amount_a
    with pytest.raises(SlippageExceededError):
        increase_liquidity(pool, position, ticks, L, need_a - 1, 10**12, 0)
    # a 1% transfer fee raises what the owner must send
    fee = TransferFee(basis_points=100)
    with pytest.raises(SlippageExceededError):
        increase_liquidity(pool, position, ticks, L, need_a, 10**12, 0, transfer_fee_a=fee)
    increase_liquidity(pool, position, ticks, L, fee.included_amount(need_a), 10**12, 0, transfer_fee_a=fee)
    with pytest.raises(AmountDomainError):
        increase_liquidity(pool, position, ticks, 0, 1, 1, 0)


def test_decrease_respects_token_minimums(pool, ticks, provide):
    position = provide("p1", -128, 128, L)
    update = decrease_liquidity(pool, position, ticks, L, 0, 0, 0)
    with pytest.raises(SlippageExceededError):
        decrease_liquidity(pool, position, ticks, L, update.amount_a + 1, 0, 0)
    apply_modify_liquidity(pool, position, ticks, update)
    assert position.liquidity == 0 and pool.liquidity == 0
    # both bounds are released once nobody references them
    assert ticks.get_tick(-128) == EMPTY_TICK and ticks.get_tick(128) == EMPTY_TICK


def test_withdrawal_never_exceeds_deposit(pool, ticks):
    position = open_position(pool, "p1", "lp", -192, 64)
    deposit = increase_liquidity(pool, position, ticks, 123_457, 10**12, 10**12, 0)
    apply_modify_liquidity(pool, position, ticks, deposit)
    withdrawal = decrease_liquidity(pool, position, ticks, 123_457, 0, 0, 0)
    assert withdrawal.amount_a <= deposit.amount_a
    assert withdrawal.amount_b <= deposit.amount_b
    assert position_amounts(pool, position) == (withdrawal.amount_a, withdrawal.amount_b)


# -----------------------------
# Fees and closing
# -----------------------------

def test_fees_accrue_to_in_range_positions(pool, ticks, provide, execute):
    p1 = provide("p1", -128, 128, L)
    p2 = provide("p2", -128, 128, 3 * L)
    idle = provide("idle", 640, 1280, L)
    result = execute(10_000, a_to_b=True, timestamp=1)
    fees_1 = collect_fees(pool, p1, ticks, 1)
    fees_2 = collect_fees(pool, p2, ticks, 1)
    fees_idle = collect_fees(pool, idle, ticks, 1)
    print(f"fee={result.fee_amount} p1={fees_1} p2={fees_2} idle={fees_idle}")
    assert fees_idle == (0, 0)
    assert fees_1[1] == fees_2[1] == 0
    assert fees_1[0] + fees_2[0] <= result.fee_amount
    assert fees_1[0] + fees_2[0] >= result.fee_amount - 2
    assert abs(3 * fees_1[0] - fees_2[0]) <= 3
    # owed balances are zeroed by the collection
    assert (p1.fee_owed_a, p1.fee_owed_b) == (0, 0)
    assert collect_fees(pool, p1, ticks, 1) == (0, 0)


def test_update_fees_and_rewards_skips_empty_positions(pool, ticks):
    position = open_position(pool, "p1", "lp", -128, 128)
    assert update_fees_and_rewards(pool, position, ticks, 0) is None


def test_close_position_requires_empty(pool, ticks, provide, execute):
    position = provide("p1", -128, 128, L)
    execute(1_000, a_to_b=True, timestamp=1)
    with pytest.raises(PositionNotEmptyError):
        close_position(position)
    apply_modify_liquidity(pool, position, ticks, decrease_liquidity(pool, position, ticks, L, 0, 0, 2))
    # liquidity is gone but fees are still owed
    assert position.fee_owed_a > 0
    with pytest.raises(PositionNotEmptyError):
        close_position(position)
    position.fee_owed_a = 0
    close_position(position)


# -----------------------------
# Reinvestment
# -----------------------------

def _owed(pool, position, ticks, timestamp):
    settled = update_fees_and_rewards(pool, position, ticks, timestamp)
    return settled.position_update.fee_owed_a, settled.position_update.fee_owed_b


def test_reinvest_turns_owed_fees_into_liquidity(pool, ticks, provide, execute):
    position = provide("p1", -128, 128, 10**8)
    execute(10_000, a_to_b=True, timestamp=1)
    execute(10_000, a_to_b=False, timestamp=2)
    owed_a, owed_b = _owed(pool, position, ticks, 3)
    pool_liquidity = pool.liquidity

    update = reinvest_fees(pool, position, ticks, 0, 3)
    print(f"owed=({owed_a}, {owed_b}) reinvest +{update.liquidity_delta} spent=({update.spent_a}, {update.spent_b})")
    # computing the update writes nothing
    assert position.liquidity == 10**8
    assert pool.liquidity == pool_liquidity
    assert update.liquidity_delta > 0
    assert (update.protocol_fee_a, update.protocol_fee_b) == (0, 0)
    assert 0 < update.spent_a <= owed_a
    assert 0 < update.spent_b <= owed_b

    apply_reinvest_fees(pool, position, ticks, update)
    assert position.liquidity == 10**8 + update.liquidity_delta
    assert pool.liquidity == pool_liquidity + update.liquidity_delta
    assert position.fee_owed_a == owed_a - update.spent_a
    assert position.fee_owed_b == owed_b - update.spent_b
    assert ticks.get_tick(-128).liquidity_net == 10**8 + update.liquidity_delta


def test_reinvest_protocol_cut_goes_to_the_pool(pool, ticks, provide, execute):
    position = provide("p1", -128, 128, 10**8)
    execute(10_000, a_to_b=True, timestamp=1)
    execute(10_000, a_to_b=False, timestamp=2)
    owed_a, owed_b = _owed(pool, position, ticks, 3)
    protocol_before = (pool.protocol_fee_owed_a, pool.protocol_fee_owed_b)

    update = reinvest_fees(pool, position, ticks, 2_500, 3)
    used_a = update.liquidity_update.amount_a + update.protocol_fee_a
    used_b = update.liquidity_update.amount_b + update.protocol_fee_b
    assert update.protocol_fee_a + update.protocol_fee_b > 0
    assert update.protocol_fee_a <= used_a // 4
    assert update.protocol_fee_b <= used_b // 4

    apply_reinvest_fees(pool, position, ticks, update)
    assert pool.protocol_fee_owed_a == protocol_before[0] + update.protocol_fee_a
    assert pool.protocol_fee_owed_b == protocol_before[1] + update.protocol_fee_b
    # nothing is created or lost: fees owed before = deposit + protocol cut + still owed
    assert owed_a == update.liquidity_update.amount_a + update.protocol_fee_a + position.fee_owed_a
    assert owed_b == update.liquidity_update.amount_b + update.protocol_fee_b + position.fee_owed_b


def test_reinvest_below_range_uses_token_a_only(pool, ticks, provide, execute):
    provide("backstop", -6400, 6400, 10**8)
    position = provide("p1", -128, 128, 10**8)
    execute(2_000_000, a_to_b=True, timestamp=1)
    assert pool.tick_current_index < -128
    owed_a, owed_b = _owed(pool, position, ticks, 2)
    assert owed_a > 0 and owed_b == 0

    update = reinvest_fees(pool, position, ticks, 0, 2)
    assert update.liquidity_delta > 0
    assert update.liquidity_update.amount_b == 0
    assert 0 < update.liquidity_update.amount_a <= owed_a
    # the position is out of range, so active liquidity is unchanged
    assert update.liquidity_update.pool_liquidity == pool.liquidity


def test_reinvest_without_a_usable_fee_pair_is_a_no_op(pool, ticks, provide, execute):
    position = provide("p1", -128, 128, 10**8)
    assert reinvest_fees(pool, position, ticks, 0, 1) is None
    # in range, fees in one token alone cannot back liquidity
    execute(1_000, a_to_b=True, timestamp=1)
    assert pool.tick_current_index >= -128
    assert reinvest_fees(pool, position, ticks, 0, 2) is None
    apply_reinvest_fees(pool, position, ticks, None)
    assert position.liquidity == 10**8


@pytest.mark.parametrize("fee_rate", [-1, 2_501])
def test_reinvest_fee_rate_is_checked(pool, ticks, provide, fee_rate):
    position = provide("p1", -128, 128, L)
    with pytest.raises(PoolConfigError):
        reinvest_fees(pool, position, ticks, fee_rate, 1)
