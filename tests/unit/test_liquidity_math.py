import pytest

from clmm_engine.core import (
    Q64,
    get_active_amounts,
    get_amount_delta_a,
    get_amount_delta_b,
    get_liquidity_from_amounts,
    get_next_sqrt_price,
    get_token_amounts_for_liquidity,
    sqrt_price_from_tick_index,
)
from clmm_engine.core.exc import (
    AmountDomainError,
    ArithmeticOverflowError,
    ArithmeticUnderflowError,
)
from clmm_engine.core.liquidity_math import add_liquidity_delta, get_amount_delta_a_unbounded

L = 1_000_000


def test_amount_deltas_are_order_insensitive():
    lo, hi = sqrt_price_from_tick_index(-128), Q64
    assert get_amount_delta_a(lo, hi, L, True) == get_amount_delta_a(hi, lo, L, True)
    assert get_amount_delta_b(lo, hi, L, False) == get_amount_delta_b(hi, lo, L, False)


def test_round_up_never_below_round_down():
    lo, hi = sqrt_price_from_tick_index(-128), sqrt_price_from_tick_index(64)
    up_a = get_amount_delta_a(lo, hi, L, True)
    down_a = get_amount_delta_a(lo, hi, L, False)
    up_b = get_amount_delta_b(lo, hi, L, True)
    down_b = get_amount_delta_b(lo, hi, L, False)
    assert 0 <= up_a - down_a <= 1
    assert 0 <= up_b - down_b <= 1


def test_delta_b_closed_form():
    # L * (2 - 1) = L with sqrt prices 1.0 and 2.0
    assert get_amount_delta_b(Q64, 2 * Q64, L, False) == L
    # L * (1/1 - 1/2) = L / 2
    assert get_amount_delta_a(Q64, 2 * Q64, L, False) == L // 2


def test_zero_cases():
    assert get_amount_delta_a(Q64, Q64, L, True) == 0
    assert get_amount_delta_a(Q64, 2 * Q64, 0, True) == 0
    with pytest.raises(AmountDomainError):
        get_amount_delta_a_unbounded(0, Q64, L, True)


def test_delta_past_u64_raises_only_when_bounded():
    huge = 1 << 100
    assert get_amount_delta_a_unbounded(Q64, 2 * Q64, huge, True) == huge // 2
    with pytest.raises(ArithmeticOverflowError):
        get_amount_delta_a(Q64, 2 * Q64, huge, True)


def test_next_sqrt_price_moves_in_swap_direction():
    assert get_next_sqrt_price(Q64, L, 1_000, True, True) < Q64
    assert get_next_sqrt_price(Q64, L, 1_000, True, False) > Q64
    assert get_next_sqrt_price(Q64, L, 1_000, False, True) < Q64
    assert get_next_sqrt_price(Q64, L, 1_000, False, False) > Q64
    assert get_next_sqrt_price(Q64, L, 0, True, True) == Q64


def test_next_sqrt_price_from_b_exact():
    # adding b = L/2 of token B through L moves sqrt price by exactly 0.5
    assert get_next_sqrt_price(Q64, L, L // 2, True, False) == Q64 + Q64 // 2


def test_next_sqrt_price_output_exceeding_reserves():
    with pytest.raises(ArithmeticUnderflowError):
        get_next_sqrt_price(Q64, L, 2 * L, False, True)
    with pytest.raises(ArithmeticUnderflowError):
        get_next_sqrt_price(Q64, L, 2 * L, False, False)


def test_token_amounts_by_range_position():
    lower, upper = -128, 128
    above = get_token_amounts_for_liquidity(-200, sqrt_price_from_tick_index(-200), lower, upper, L)
    inside = get_token_amounts_for_liquidity(0, Q64, lower, upper, L)
    below = get_token_amounts_for_liquidity(200, sqrt_price_from_tick_index(200), lower, upper, L)
    assert above[0] > 0 and above[1] == 0
    assert inside[0] > 0 and inside[1] > 0
    assert below[0] == 0 and below[1] > 0
    # symmetric range around price 1.0: A and B legs within rounding of each other
    assert abs(inside[0] - inside[1]) <= 1


def test_deposit_rounds_up_withdrawal_rounds_down():
    dep = get_token_amounts_for_liquidity(0, Q64, -128, 128, L)
    wd = get_token_amounts_for_liquidity(0, Q64, -128, 128, -L)
    assert dep[0] >= wd[0] and dep[1] >= wd[1]
    assert get_token_amounts_for_liquidity(0, Q64, -128, 128, 0) == (0, 0)


def test_active_amounts_match_withdrawal():
    lo, hi = sqrt_price_from_tick_index(-128), sqrt_price_from_tick_index(128)
    assert get_active_amounts(Q64, lo, hi, L) == get_token_amounts_for_liquidity(0, Q64, -128, 128, -L)


def test_liquidity_from_amounts_fits_within_amounts():
    lo, hi = sqrt_price_from_tick_index(-128), sqrt_price_from_tick_index(128)
    liquidity = get_liquidity_from_amounts(Q64, lo, hi, 10_000, 10_000)
    need_a, need_b = get_token_amounts_for_liquidity(0, Q64, -128, 128, liquidity)
    print(f"L={liquidity} needs A={need_a} B={need_b}")
    assert liquidity > 0
    assert need_a <= 10_000 + 1 and need_b <= 10_000 + 1
    with pytest.raises(AmountDomainError):
        get_liquidity_from_amounts(Q64, hi, lo, 1, 1)


def test_add_liquidity_delta_checked():
    assert add_liquidity_delta(5, -5) == 0
    with pytest.raises(ArithmeticUnderflowError):
        add_liquidity_delta(5, -6)
