"""
TickStore: paged, sparse tick storage with boundary lookup and crossing updates.

Ticks live in fixed-size pages (`TickArray`, 88 slots) keyed by a page-aligned start index
(`88 * tick_spacing`). A store is either the pool's complete arena, where an absent page is
known to hold no initialized tick, or a caller-supplied working set (`complete=False`), where an
absent page is simply not loaded and any lookup that needs it fails with TickArrayNotLoadedError.

Alignment notes:
- Crossing flips growth-outside with `outside = global - outside` (wrapping) on every crossing.
- A tick initialized for the first time assumes all prior growth happened below it.
- Growth inside [lower, upper) is derived from the two boundary ticks only.
"""
from __future__ import annotations

import bisect
import logging
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from .core.constants import TICK_ARRAY_SIZE, MIN_TICK_INDEX, MAX_TICK_INDEX, I128_MIN, I128_MAX
from .core.datatypes import Tick, EMPTY_TICK, RewardInfo
from .core.exc import (
    InvalidRangeError,
    InvalidTickArrayError,
    TickArrayNotLoadedError,
    InsufficientLiquidityError,
    LiquidityOverflowError,
)
from .core.fixed_point import wrapping_sub

# --- Debug utilities (toggleable) ---
DEBUG_TICKS = False

logger = logging.getLogger(__name__)


def _dbg(msg: str) -> None:
    if DEBUG_TICKS:
        logger.debug("[TICKS] %s", msg)


# ----------------------------
# Page geometry
# ----------------------------

def tick_array_span(tick_spacing: int) -> int:
    return TICK_ARRAY_SIZE * tick_spacing


def page_start_index(tick_index: int, tick_spacing: int) -> int:
    """Start index of the page holding `tick_index` (floors towards -inf)."""
    span = tick_array_span(tick_spacing)
    return (tick_index // span) * span


def is_valid_page_start(start_index: int, tick_spacing: int) -> bool:
    if start_index % tick_array_span(tick_spacing) != 0:
        return False
    return (
        page_start_index(MIN_TICK_INDEX, tick_spacing)
        <= start_index
        <= page_start_index(MAX_TICK_INDEX, tick_spacing)
    )


@dataclass
class TickArray:
    """One page of TICK_ARRAY_SIZE tick slots starting at `start_index`."""

    start_index: int
    tick_spacing: int
    ticks: List[Tick] = field(default_factory=lambda: [EMPTY_TICK] * TICK_ARRAY_SIZE)

    def __post_init__(self) -> None:
        if self.tick_spacing <= 0:
            raise InvalidTickArrayError("tick_spacing must be > 0")
        if not is_valid_page_start(self.start_index, self.tick_spacing):
            raise InvalidTickArrayError(
                f"start index {self.start_index} is not aligned to {tick_array_span(self.tick_spacing)}"
            )
        if len(self.ticks) != TICK_ARRAY_SIZE:
            raise InvalidTickArrayError(f"page must hold {TICK_ARRAY_SIZE} ticks, got {len(self.ticks)}")

    def contains(self, tick_index: int) -> bool:
        return self.start_index <= tick_index < self.start_index + tick_array_span(self.tick_spacing)

    def offset(self, tick_index: int) -> int:
        if tick_index % self.tick_spacing != 0:
            raise InvalidRangeError(f"tick {tick_index} is not a multiple of spacing {self.tick_spacing}")
        if not self.contains(tick_index):
            raise InvalidRangeError(f"tick {tick_index} is outside page {self.start_index}")
        return (tick_index - self.start_index) // self.tick_spacing

    def get(self, tick_index: int) -> Tick:
        return self.ticks[self.offset(tick_index)]

    def set(self, tick_index: int, tick: Tick) -> None:
        self.ticks[self.offset(tick_index)] = tick

    def initialized_offsets(self) -> List[int]:
        return [i for i, t in enumerate(self.ticks) if t.initialized]

    def copy(self) -> "TickArray":
        return TickArray(self.start_index, self.tick_spacing, list(self.ticks))


# ----------------------------
# TickStore
# ----------------------------

class TickStore:
    """Sparse arena of TickArray pages for one pool."""

    def __init__(self, tick_spacing: int, pages: Iterable[TickArray] = (), *, complete: bool = True) -> None:
        if tick_spacing <= 0:
            raise InvalidTickArrayError("tick_spacing must be > 0")
        self.tick_spacing = tick_spacing
        self.complete = complete
        self._pages: Dict[int, TickArray] = {}
        self._starts: List[int] = []
        for page in pages:
            self._add_page(page)

    def _add_page(self, page: TickArray) -> None:
        if page.tick_spacing != self.tick_spacing:
            raise InvalidTickArrayError(
                f"page spacing {page.tick_spacing} differs from store spacing {self.tick_spacing}"
            )
        if page.start_index in self._pages:
            raise InvalidTickArrayError(f"tick array {page.start_index} already exists")
        self._pages[page.start_index] = page
        bisect.insort(self._starts, page.start_index)

    # --- page management ---

    def initialize_page(self, start_index: int) -> TickArray:
        """Create an empty page; fails if misaligned or already present."""
        page = TickArray(start_index, self.tick_spacing)
        self._add_page(page)
        _dbg(f"initialized page {start_index}")
        return page

    def has_page(self, start_index: int) -> bool:
        return start_index in self._pages

    def page(self, start_index: int) -> TickArray:
        page = self._pages.get(start_index)
        if page is None:
            raise TickArrayNotLoadedError(start_index)
        return page

    def pages(self) -> List[TickArray]:
        return [self._pages[s] for s in self._starts]

    def page_start_index(self, tick_index: int) -> int:
        return page_start_index(tick_index, self.tick_spacing)

    def working_set(self, start_indices: Sequence[int]) -> "TickStore":
        """Partial view over the given pages (shared, not copied)."""
        return TickStore(self.tick_spacing, [self.page(s) for s in start_indices], complete=False)

    def copy(self) -> "TickStore":
        return TickStore(self.tick_spacing, [p.copy() for p in self.pages()], complete=self.complete)

    # --- tick access ---

    def _check_aligned(self, tick_index: int) -> None:
        if tick_index % self.tick_spacing != 0:
            raise InvalidRangeError(f"tick {tick_index} is not a multiple of spacing {self.tick_spacing}")
        if tick_index < MIN_TICK_INDEX or tick_index > MAX_TICK_INDEX:
            raise InvalidRangeError(f"tick {tick_index} outside [{MIN_TICK_INDEX}, {MAX_TICK_INDEX}]")

    def get_tick(self, tick_index: int) -> Tick:
        """Return the tick at `tick_index`; default zero values if uninitialized."""
        self._check_aligned(tick_index)
        start = self.page_start_index(tick_index)
        page = self._pages.get(start)
        if page is None:
            if not self.complete:
                raise TickArrayNotLoadedError(start)
            return EMPTY_TICK
        return page.get(tick_index)

    def set_tick(self, tick_index: int, tick: Tick) -> None:
        self._check_aligned(tick_index)
        start = self.page_start_index(tick_index)
        page = self._pages.get(start)
        if page is None:
            if not self.complete:
                raise TickArrayNotLoadedError(start)
            if not tick.initialized:
                return
            page = self.initialize_page(start)
        page.set(tick_index, tick)

    def initialized_ticks(self) -> Iterator[Tuple[int, Tick]]:
        for start in self._starts:
            page = self._pages[start]
            for off in page.initialized_offsets():
                yield start + off * self.tick_spacing, page.ticks[off]

    # --- boundary lookup ---

    def next_initialized_tick(self, tick_index: int, a_to_b: bool, limit_tick: Optional[int] = None) -> Optional[int]:
        """Nearest initialized tick from `tick_index` in the swap direction.

        Moving down (a_to_b) the search includes `tick_index` itself; moving up it starts
        strictly above. Returns None when no initialized tick exists before the global bound,
        or before `limit_tick` when given: pages wholly past the limit are never visited.
        """
        spacing = self.tick_spacing
        span = tick_array_span(spacing)
        start = self.page_start_index(tick_index)
        if a_to_b:
            offset = (tick_index - start) // spacing
            last_start = page_start_index(MIN_TICK_INDEX, spacing)
            while start >= last_start:
                if limit_tick is not None and start + span - spacing < limit_tick:
                    return None
                page = self._pages.get(start)
                if page is None:
                    if not self.complete:
                        raise TickArrayNotLoadedError(start)
                    i = bisect.bisect_left(self._starts, start)
                    if i == 0:
                        return None
                    start, offset = self._starts[i - 1], TICK_ARRAY_SIZE - 1
                    continue
                for off in range(offset, -1, -1):
                    if page.ticks[off].initialized:
                        return start + off * spacing
                start, offset = start - span, TICK_ARRAY_SIZE - 1
            return None

        offset = (tick_index - start) // spacing + 1
        if offset >= TICK_ARRAY_SIZE:
            start, offset = start + span, 0
        last_start = page_start_index(MAX_TICK_INDEX, spacing)
        while start <= last_start:
            if limit_tick is not None and start > limit_tick:
                return None
            page = self._pages.get(start)
            if page is None:
                if not self.complete:
                    raise TickArrayNotLoadedError(start)
                i = bisect.bisect_right(self._starts, start)
                if i == len(self._starts):
                    return None
                start, offset = self._starts[i], 0
                continue
            for off in range(offset, TICK_ARRAY_SIZE):
                if page.ticks[off].initialized:
                    return start + off * spacing
            start, offset = start + span, 0
        return None


# ----------------------------
# Tick updates
# ----------------------------

def reward_growths_global(reward_infos: Sequence[RewardInfo]) -> Tuple[int, ...]:
    return tuple(info.growth_global_x64 if info.initialized else 0 for info in reward_infos)


def next_tick_cross_update(
    tick: Tick,
    fee_growth_global_a: int,
    fee_growth_global_b: int,
    reward_infos: Sequence[RewardInfo],
) -> Tick:
    """Flip growth-outside on a crossing: outside = global - outside."""
    rewards = tuple(
        wrapping_sub(info.growth_global_x64, outside) if info.initialized else outside
        for info, outside in zip(reward_infos, tick.reward_growths_outside)
    )
    return replace(
        tick,
        fee_growth_outside_a=wrapping_sub(fee_growth_global_a, tick.fee_growth_outside_a),
        fee_growth_outside_b=wrapping_sub(fee_growth_global_b, tick.fee_growth_outside_b),
        reward_growths_outside=rewards,
    )


def next_tick_modify_liquidity_update(
    tick: Tick,
    tick_index: int,
    tick_current_index: int,
    fee_growth_global_a: int,
    fee_growth_global_b: int,
    reward_infos: Sequence[RewardInfo],
    liquidity_delta: int,
    is_upper_tick: bool,
    max_liquidity: int,
) -> Tick:
    """Tick after a position bounded by it changes liquidity by `liquidity_delta`."""
    if liquidity_delta == 0:
        return tick

    liquidity_gross = tick.liquidity_gross + liquidity_delta
    if liquidity_gross < 0:
        raise InsufficientLiquidityError(-liquidity_delta, available=tick.liquidity_gross, tick_index=tick_index)
    if liquidity_gross > max_liquidity:
        raise LiquidityOverflowError(tick_index, liquidity_gross, max_liquidity)
    if liquidity_gross == 0:
        _dbg(f"tick {tick_index} uninitialized")
        return EMPTY_TICK

    if tick.liquidity_gross == 0:
        # all prior growth is assumed to have happened below the tick
        if tick_current_index >= tick_index:
            fee_a, fee_b = fee_growth_global_a, fee_growth_global_b
            rewards = reward_growths_global(reward_infos)
        else:
            fee_a, fee_b = 0, 0
            rewards = (0,) * len(reward_infos)
    else:
        fee_a, fee_b = tick.fee_growth_outside_a, tick.fee_growth_outside_b
        rewards = tick.reward_growths_outside

    liquidity_net = tick.liquidity_net - liquidity_delta if is_upper_tick else tick.liquidity_net + liquidity_delta
    if liquidity_net < I128_MIN or liquidity_net > I128_MAX:
        raise LiquidityOverflowError(tick_index, liquidity_net, I128_MAX)

    return Tick(
        liquidity_net=liquidity_net,
        liquidity_gross=liquidity_gross,
        fee_growth_outside_a=fee_a,
        fee_growth_outside_b=fee_b,
        reward_growths_outside=tuple(rewards),
    )


# ----------------------------
# Growth inside a range
# ----------------------------

def _growth_below(initialized: bool, tick_above_current: bool, global_value: int, outside: int) -> int:
    if not initialized:
        return global_value
    return wrapping_sub(global_value, outside) if tick_above_current else outside


def _growth_above(initialized: bool, tick_above_current: bool, global_value: int, outside: int) -> int:
    if not initialized:
        return 0
    return outside if tick_above_current else wrapping_sub(global_value, outside)


def _inside(global_value: int, below: int, above: int) -> int:
    return wrapping_sub(wrapping_sub(global_value, below), above)


def fee_growths_inside(
    tick_current_index: int,
    tick_lower: Tick,
    tick_lower_index: int,
    tick_upper: Tick,
    tick_upper_index: int,
    fee_growth_global_a: int,
    fee_growth_global_b: int,
) -> Tuple[int, int]:
    """Fee growth per unit liquidity earned inside [lower, upper), tokens A and B."""
    lower_above_current = tick_current_index < tick_lower_index
    upper_above_current = tick_current_index < tick_upper_index
    result = []
    for global_value, lower_outside, upper_outside in (
        (fee_growth_global_a, tick_lower.fee_growth_outside_a, tick_upper.fee_growth_outside_a),
        (fee_growth_global_b, tick_lower.fee_growth_outside_b, tick_upper.fee_growth_outside_b),
    ):
        below = _growth_below(tick_lower.initialized, lower_above_current, global_value, lower_outside)
        above = _growth_above(tick_upper.initialized, upper_above_current, global_value, upper_outside)
        result.append(_inside(global_value, below, above))
    return result[0], result[1]


def reward_growths_inside(
    tick_current_index: int,
    tick_lower: Tick,
    tick_lower_index: int,
    tick_upper: Tick,
    tick_upper_index: int,
    reward_infos: Sequence[RewardInfo],
) -> Tuple[int, ...]:
    """Reward growth per unit liquidity inside [lower, upper); 0 for free slots."""
    lower_above_current = tick_current_index < tick_lower_index
    upper_above_current = tick_current_index < tick_upper_index
    result = []
    for i, info in enumerate(reward_infos):
        if not info.initialized:
            result.append(0)
            continue
        g = info.growth_global_x64
        below = _growth_below(tick_lower.initialized, lower_above_current, g, tick_lower.reward_growths_outside[i])
        above = _growth_above(tick_upper.initialized, upper_above_current, g, tick_upper.reward_growths_outside[i])
        result.append(_inside(g, below, above))
    return tuple(result)


__all__ = [
    "DEBUG_TICKS",
    "TickArray",
    "TickStore",
    "tick_array_span",
    "page_start_index",
    "is_valid_page_start",
    "reward_growths_global",
    "next_tick_cross_update",
    "next_tick_modify_liquidity_update",
    "fee_growths_inside",
    "reward_growths_inside",
]
