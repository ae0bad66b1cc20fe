import pytest

from clmm_engine import initialize_pool, initialize_reward, set_reward_emissions
from clmm_engine.core import Q64, TICK_ARRAY_SIZE, TimeWindow
from clmm_engine.core.datatypes import EMPTY_TICK
from clmm_engine.core.exc import AmountDomainError
from clmm_engine.position import apply_fees_and_rewards, update_fees_and_rewards
from clmm_engine.records import (
    POOL_RECORD_SIZE,
    POSITION_RECORD_SIZE,
    TICK_ARRAY_RECORD_SIZE,
    TICK_RECORD_SIZE,
    decode_pool,
    decode_position,
    decode_tick_array,
    encode_pool,
    encode_position,
    encode_tick_array,
)

L = 1_000_000


def test_record_sizes_are_fixed(pool, ticks, provide):
    position = provide("p1", -128, 128, L)
    assert len(encode_pool(pool)) == POOL_RECORD_SIZE
    assert len(encode_position(position)) == POSITION_RECORD_SIZE
    for page in ticks.pages():
        assert len(encode_tick_array(page)) == TICK_ARRAY_RECORD_SIZE
    assert TICK_ARRAY_RECORD_SIZE > TICK_ARRAY_SIZE * TICK_RECORD_SIZE


def test_live_pool_survives_encoding(pool, ticks, provide, execute):
    initialize_reward(pool, 0, "R", "admin")
    set_reward_emissions(pool, 0, 3 * Q64, 0, authority="admin")
    provide("p1", -128, 128, L)
    execute(5_000, a_to_b=True, timestamp=7)
    pool.update_protocol_fee_rate(300)
    decoded = decode_pool(encode_pool(pool))
    print(f"pool record: {POOL_RECORD_SIZE} bytes, tick={decoded.tick_current_index}")
    assert decoded == pool


def test_temporary_pool_windows_survive_encoding():
    pool = initialize_pool("A", "B", 8, Q64, swap_window=TimeWindow(10, 20), lp_window=TimeWindow(0, 15))
    decoded = decode_pool(encode_pool(pool))
    assert decoded.swap_window == TimeWindow(10, 20)
    assert decoded.lp_window == TimeWindow(0, 15)
    assert decode_pool(encode_pool(initialize_pool("A", "B", 8, Q64))).swap_window is None


def test_tick_array_keeps_signed_net_and_empty_slots(pool, ticks, provide, execute):
    provide("p1", -128, 128, L)
    provide("p2", -64, 64, 2 * L)
    execute(10_000, a_to_b=True, timestamp=3)
    for page in ticks.pages():
        decoded = decode_tick_array(encode_tick_array(page))
        assert decoded == page
    upper_page = decode_tick_array(encode_tick_array(ticks.page(0)))
    assert upper_page.get(128).liquidity_net == -L
    assert upper_page.get(192) == EMPTY_TICK


def test_position_survives_encoding(pool, ticks, provide, execute):
    position = provide("p1", -128, 128, L)
    execute(5_000, a_to_b=True, timestamp=1)
    apply_fees_and_rewards(pool, position, update_fees_and_rewards(pool, position, ticks, 1))
    assert position.fee_owed_a > 0
    assert decode_position(encode_position(position)) == position


def test_decoding_rejects_wrong_length(pool):
    data = encode_pool(pool)
    with pytest.raises(AmountDomainError):
        decode_pool(data[:-1])
    with pytest.raises(AmountDomainError):
        decode_tick_array(b"\x00" * 10)
    with pytest.raises(AmountDomainError):
        decode_position(b"")


def test_identifiers_must_fit():
    pool = initialize_pool("A" * 33, "B" * 33, 64, Q64)
    with pytest.raises(AmountDomainError):
        encode_pool(pool)
