"""
RewardAccounting: time-based emission streams distributed over active liquidity.

Each initialized stream accrues

    growth_global_x64 += elapsed * emissions_per_second_x64 / liquidity

on demand, whenever an operation touches the pool. Intervals with zero active liquidity
accrue nothing and are never credited later: the timestamp still advances. Growth inside a
position's range reuses the fee flip trick (see `tick_array.reward_growths_inside`).
"""
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Optional, Tuple

from .core.constants import DAY_IN_SECONDS, NUM_REWARDS, U128_MAX
from .core.datatypes import RewardInfo
from .core.exc import InvalidTimestampError, RewardError
from .core.fixed_point import checked_mul_shift_right, wrapping_add
from .pool import Pool

DEBUG_REWARDS = False

logger = logging.getLogger(__name__)


def _dbg(msg: str) -> None:
    if DEBUG_REWARDS:
        logger.debug("[REWARDS] %s", msg)


def _check_index(index: int) -> None:
    if not 0 <= index < NUM_REWARDS:
        raise RewardError(f"reward index {index} outside [0, {NUM_REWARDS})")


def next_reward_infos(pool: Pool, timestamp: int) -> Tuple[RewardInfo, ...]:
    """Reward streams accrued up to `timestamp` (pure)."""
    last = pool.reward_last_updated_timestamp
    if timestamp < last:
        raise InvalidTimestampError(f"timestamp {timestamp} precedes last reward update {last}")
    if pool.liquidity == 0 or timestamp == last:
        return pool.reward_infos

    elapsed = timestamp - last
    infos = []
    for info in pool.reward_infos:
        if not info.initialized or info.emissions_per_second_x64 == 0:
            infos.append(info)
            continue
        delta = elapsed * info.emissions_per_second_x64 // pool.liquidity
        if delta > U128_MAX:
            # an overflowing interval stops the stream for that interval only
            _dbg(f"growth delta overflow for {info.token}; interval skipped")
            delta = 0
        infos.append(replace(info, growth_global_x64=wrapping_add(info.growth_global_x64, delta)))
    return tuple(infos)


def initialize_reward(pool: Pool, index: int, token: str, authority: str) -> None:
    """Open stream `index`; it must be the lowest uninitialized slot."""
    _check_index(index)
    lowest_free = next((i for i, info in enumerate(pool.reward_infos) if not info.initialized), None)
    if lowest_free is None or index != lowest_free:
        raise RewardError(f"reward index {index} is not the lowest free slot ({lowest_free})")
    if not token:
        raise RewardError("reward token must be set")
    if any(info.token == token for info in pool.reward_infos):
        raise RewardError(f"token {token} already streams rewards on this pool")
    infos = list(pool.reward_infos)
    infos[index] = RewardInfo(token=token, authority=authority)
    pool.reward_infos = tuple(infos)
    _dbg(f"reward {index} initialized: {token}")


def set_reward_emissions(
    pool: Pool,
    index: int,
    emissions_per_second_x64: int,
    timestamp: int,
    *,
    authority: str,
    vault_balance: Optional[int] = None,
) -> None:
    """Accrue every stream to `timestamp`, then set stream `index`'s rate.

    When `vault_balance` is given it must cover one day of emissions.
    """
    _check_index(index)
    info = pool.reward_infos[index]
    if not info.initialized:
        raise RewardError(f"reward {index} is not initialized")
    if authority != info.authority:
        raise RewardError(f"{authority} is not the authority of reward {index}")
    if emissions_per_second_x64 < 0 or emissions_per_second_x64 > U128_MAX:
        raise RewardError(f"emissions rate {emissions_per_second_x64} outside u128")
    if vault_balance is not None:
        per_day = checked_mul_shift_right(DAY_IN_SECONDS, emissions_per_second_x64)
        if vault_balance < per_day:
            raise RewardError(f"reward vault holds {vault_balance}, one day of emissions needs {per_day}")

    infos = list(next_reward_infos(pool, timestamp))
    infos[index] = replace(infos[index], emissions_per_second_x64=emissions_per_second_x64)
    pool.update_rewards(infos, timestamp)


def set_reward_authority(pool: Pool, index: int, *, authority: str, new_authority: str) -> None:
    _check_index(index)
    info = pool.reward_infos[index]
    if authority != info.authority:
        raise RewardError(f"{authority} is not the authority of reward {index}")
    infos = list(pool.reward_infos)
    infos[index] = replace(info, authority=new_authority)
    pool.reward_infos = tuple(infos)


__all__ = [
    "DEBUG_REWARDS",
    "next_reward_infos",
    "initialize_reward",
    "set_reward_emissions",
    "set_reward_authority",
]
