import pytest

from clmm_engine import TickArray, TickStore
from clmm_engine.core import MAX_TICK_INDEX, MIN_TICK_INDEX, RewardInfo, TICK_ARRAY_SIZE, Tick
from clmm_engine.core.datatypes import EMPTY_TICK, empty_reward_infos
from clmm_engine.core.exc import (
    InsufficientLiquidityError,
    InvalidRangeError,
    InvalidTickArrayError,
    LiquidityOverflowError,
    TickArrayNotLoadedError,
)
from clmm_engine.tick_array import (
    fee_growths_inside,
    next_tick_cross_update,
    next_tick_modify_liquidity_update,
    page_start_index,
    reward_growths_inside,
    tick_array_span,
)

SPACING = 64
SPAN = TICK_ARRAY_SIZE * SPACING  # 5632


def _live(net: int = 1, gross: int = 1, fee_a: int = 0, fee_b: int = 0) -> Tick:
    return Tick(liquidity_net=net, liquidity_gross=gross, fee_growth_outside_a=fee_a, fee_growth_outside_b=fee_b)


# -----------------------------
# Page geometry
# -----------------------------

def test_page_start_floors_towards_negative_infinity():
    assert tick_array_span(SPACING) == SPAN
    assert page_start_index(0, SPACING) == 0
    assert page_start_index(SPAN - SPACING, SPACING) == 0
    assert page_start_index(-SPACING, SPACING) == -SPAN
    assert page_start_index(-SPAN, SPACING) == -SPAN


def test_tick_array_rejects_misaligned_start():
    with pytest.raises(InvalidTickArrayError):
        TickArray(64, SPACING)
    with pytest.raises(InvalidTickArrayError):
        TickArray(0, SPACING, [EMPTY_TICK] * 3)


def test_tick_array_offsets():
    page = TickArray(-SPAN, SPACING)
    assert page.offset(-SPAN) == 0
    assert page.offset(-SPACING) == TICK_ARRAY_SIZE - 1
    with pytest.raises(InvalidRangeError):
        page.offset(0)
    with pytest.raises(InvalidRangeError):
        page.offset(-SPAN + 1)


# -----------------------------
# TickStore
# -----------------------------

def test_store_reads_default_and_creates_pages_on_write():
    store = TickStore(SPACING)
    assert store.get_tick(640) == EMPTY_TICK
    assert not store.has_page(0)
    store.set_tick(640, _live())
    assert store.has_page(0)
    assert store.get_tick(640).initialized
    # clearing a tick on a missing page is a no-op
    store.set_tick(-SPAN * 3, EMPTY_TICK)
    assert not store.has_page(-SPAN * 3)


def test_store_rejects_unusable_ticks_and_duplicate_pages():
    store = TickStore(SPACING)
    with pytest.raises(InvalidRangeError):
        store.get_tick(100)
    with pytest.raises(InvalidRangeError):
        store.get_tick(MAX_TICK_INDEX + SPACING)
    store.initialize_page(0)
    with pytest.raises(InvalidTickArrayError):
        store.initialize_page(0)
    with pytest.raises(InvalidTickArrayError):
        store.initialize_page(SPACING)


def test_next_initialized_tick_down_is_inclusive_up_is_exclusive():
    store = TickStore(SPACING)
    for t in (-128, 0, 128):
        store.set_tick(t, _live())
    assert store.next_initialized_tick(0, True) == 0
    assert store.next_initialized_tick(-1, True) == -128
    assert store.next_initialized_tick(0, False) == 128
    assert store.next_initialized_tick(-1, False) == 0
    assert store.next_initialized_tick(-129, True) is None
    assert store.next_initialized_tick(128, False) is None


def test_next_initialized_tick_spans_pages_and_gaps():
    store = TickStore(SPACING)
    far_down = -SPAN * 5 + SPACING
    far_up = SPAN * 7
    store.set_tick(far_down, _live())
    store.set_tick(far_up, _live())
    assert store.next_initialized_tick(0, True) == far_down
    assert store.next_initialized_tick(0, False) == far_up
    assert store.next_initialized_tick(SPAN - 1, False) == far_up


def test_next_initialized_tick_near_global_bounds():
    store = TickStore(1)
    store.set_tick(MIN_TICK_INDEX, _live())
    store.set_tick(MAX_TICK_INDEX, _live())
    assert store.next_initialized_tick(0, True) == MIN_TICK_INDEX
    assert store.next_initialized_tick(0, False) == MAX_TICK_INDEX
    assert store.next_initialized_tick(MAX_TICK_INDEX, False) is None


def test_working_set_shares_pages_and_refuses_missing_ones():
    store = TickStore(SPACING)
    store.set_tick(128, _live())
    store.initialize_page(-SPAN)
    view = store.working_set([0])
    assert view.next_initialized_tick(0, False) == 128
    with pytest.raises(TickArrayNotLoadedError):
        view.next_initialized_tick(0, True)
    with pytest.raises(TickArrayNotLoadedError):
        view.get_tick(-SPACING)
    view.set_tick(192, _live(net=5, gross=5))
    assert store.get_tick(192).liquidity_net == 5
    with pytest.raises(TickArrayNotLoadedError):
        store.working_set([SPAN])


def test_search_stops_at_the_limit_tick():
    store = TickStore(SPACING)
    store.set_tick(-SPAN - 640, _live())
    store.set_tick(SPAN + 640, _live())
    store.initialize_page(0)
    view = store.working_set([0])
    # pages wholly past the limit are never asked for
    assert view.next_initialized_tick(640, True, limit_tick=0) is None
    assert view.next_initialized_tick(640, False, limit_tick=SPAN - SPACING) is None
    with pytest.raises(TickArrayNotLoadedError):
        view.next_initialized_tick(640, True, limit_tick=-SPACING)
    with pytest.raises(TickArrayNotLoadedError):
        view.next_initialized_tick(640, False, limit_tick=SPAN)
    # a complete store skips absent pages but still honours the limit
    assert store.next_initialized_tick(0, True, limit_tick=-SPAN - 640) == -SPAN - 640
    assert store.next_initialized_tick(0, False, limit_tick=SPAN) == SPAN + 640
    assert store.next_initialized_tick(0, False, limit_tick=SPAN - SPACING) is None


def test_copy_is_independent():
    store = TickStore(SPACING)
    store.set_tick(0, _live())
    clone = store.copy()
    clone.set_tick(0, EMPTY_TICK)
    assert store.get_tick(0).initialized
    assert not clone.get_tick(0).initialized


# -----------------------------
# Tick updates
# -----------------------------

def test_modify_liquidity_initializes_growth_outside_by_side():
    infos = empty_reward_infos()
    below = next_tick_modify_liquidity_update(EMPTY_TICK, -64, 0, 100, 200, infos, 10, False, 10**30)
    above = next_tick_modify_liquidity_update(EMPTY_TICK, 64, 0, 100, 200, infos, 10, True, 10**30)
    # tick at or below the current price starts with all growth outside
    assert (below.fee_growth_outside_a, below.fee_growth_outside_b) == (100, 200)
    assert (above.fee_growth_outside_a, above.fee_growth_outside_b) == (0, 0)
    assert below.liquidity_net == 10 and above.liquidity_net == -10
    assert below.liquidity_gross == above.liquidity_gross == 10


def test_modify_liquidity_keeps_existing_growth_and_clears_on_zero():
    infos = empty_reward_infos()
    tick = _live(net=10, gross=10, fee_a=7, fee_b=9)
    more = next_tick_modify_liquidity_update(tick, 0, 0, 100, 200, infos, 5, False, 10**30)
    assert (more.fee_growth_outside_a, more.fee_growth_outside_b) == (7, 9)
    assert more.liquidity_gross == 15
    cleared = next_tick_modify_liquidity_update(tick, 0, 0, 100, 200, infos, -10, False, 10**30)
    assert cleared == EMPTY_TICK


def test_modify_liquidity_limits():
    infos = empty_reward_infos()
    with pytest.raises(LiquidityOverflowError):
        next_tick_modify_liquidity_update(EMPTY_TICK, 0, 0, 0, 0, infos, 11, False, 10)
    with pytest.raises(InsufficientLiquidityError):
        next_tick_modify_liquidity_update(_live(gross=3), 0, 0, 0, 0, infos, -4, False, 10)


def test_cross_update_flips_outside():
    infos = (RewardInfo("R", "admin", 0, 50),) + empty_reward_infos()[1:]
    tick = Tick(1, 1, 30, 40, (20, 0, 0))
    crossed = next_tick_cross_update(tick, 100, 100, infos)
    assert (crossed.fee_growth_outside_a, crossed.fee_growth_outside_b) == (70, 60)
    assert crossed.reward_growths_outside == (30, 0, 0)
    # crossing back restores the snapshot
    assert next_tick_cross_update(crossed, 100, 100, infos) == tick


def test_growth_inside_by_current_position():
    lower = _live(fee_a=10, fee_b=10)
    upper = _live(fee_a=5, fee_b=5)
    # current inside: global - below - above
    assert fee_growths_inside(0, lower, -64, upper, 64, 100, 100) == (85, 85)
    # current below the range: lower is above current, so below = global - outside
    assert fee_growths_inside(-128, lower, -64, upper, 64, 100, 100) == (100 - 90 - 5, 100 - 90 - 5)
    # uninitialized bounds contribute nothing inside
    assert fee_growths_inside(0, EMPTY_TICK, -64, EMPTY_TICK, 64, 100, 100) == (0, 0)


def test_reward_growth_inside_skips_free_slots():
    infos = (RewardInfo("R", "admin", 0, 40),) + empty_reward_infos()[1:]
    lower = Tick(1, 1, 0, 0, (10, 0, 0))
    upper = Tick(1, 1, 0, 0, (5, 0, 0))
    assert reward_growths_inside(0, lower, -64, upper, 64, infos) == (25, 0, 0)
