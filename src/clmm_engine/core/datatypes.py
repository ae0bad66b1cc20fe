"""
Core record types shared by the tick store, pool, positions and reward accounting.

These datatypes are immutable so that engine functions can compute a full update
before anything is written back (see `clmm_engine.sandbox`).

Notes:
- Growth values are X64 fixed point and wrap modulo 2^128.
- A reward stream is initialized iff it has a token; an empty token marks a free slot.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Tuple

from .constants import NUM_REWARDS


def _zero_rewards() -> Tuple[int, ...]:
    return (0,) * NUM_REWARDS


# ---------------------------------------------------------------------------
# Tick
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Tick:
    """Per-tick liquidity and growth-outside snapshot.

    Fields:
    - liquidity_net: signed liquidity added when price crosses this tick upwards.
    - liquidity_gross: total liquidity of positions referencing this tick.
    - fee_growth_outside_a / _b: fee growth on the far side of this tick (X64).
    - reward_growths_outside: per-stream reward growth on the far side (X64).
    """

    liquidity_net: int = 0
    liquidity_gross: int = 0
    fee_growth_outside_a: int = 0
    fee_growth_outside_b: int = 0
    reward_growths_outside: Tuple[int, ...] = field(default_factory=_zero_rewards)

    @property
    def initialized(self) -> bool:
        return self.liquidity_gross > 0


EMPTY_TICK = Tick()


# ---------------------------------------------------------------------------
# Rewards
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RewardInfo:
    """One reward-emission stream on a pool."""

    token: str = ""
    authority: str = ""
    emissions_per_second_x64: int = 0
    growth_global_x64: int = 0

    @property
    def initialized(self) -> bool:
        return bool(self.token)


@dataclass(frozen=True)
class PositionRewardInfo:
    growth_inside_checkpoint: int = 0
    amount_owed: int = 0


def empty_reward_infos() -> Tuple[RewardInfo, ...]:
    return tuple(RewardInfo() for _ in range(NUM_REWARDS))


def empty_position_reward_infos() -> Tuple[PositionRewardInfo, ...]:
    return tuple(PositionRewardInfo() for _ in range(NUM_REWARDS))


# ---------------------------------------------------------------------------
# Temporary pool windows
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TimeWindow:
    """Inclusive [start, end] window in unix seconds."""

    start: int
    end: int

    def contains(self, timestamp: int) -> bool:
        return self.start <= timestamp <= self.end


__all__ = [
    "Tick",
    "EMPTY_TICK",
    "RewardInfo",
    "PositionRewardInfo",
    "TimeWindow",
    "empty_reward_infos",
    "empty_position_reward_infos",
]
