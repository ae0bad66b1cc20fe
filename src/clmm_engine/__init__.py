"""
Top-level API for clmm_engine (integer-domain).

This module exposes the stable interface of the concentrated-liquidity engine:
  - Pool / PoolConfig / initialize_pool: pool state and creation
  - TickStore / TickArray: paged tick storage
  - swap / apply_swap: the swap engine
  - Position and the position operations: liquidity provision and settlement
  - flow: the operation surface with token settlement (see `clmm_engine.flow`)

All engine arithmetic is integer-domain (u64 amounts, u128 liquidity, Q64.64 prices).
The price-impact scan lives under `clmm_engine.research` and is not imported here.
"""

from __future__ import annotations

from .pool import Pool, PoolConfig, initialize_pool
from .tick_array import TickArray, TickStore
from .swap import SwapResult, SwapStepResult, apply_swap, compute_swap_step, swap
from .position import (
    ModifyLiquidityUpdate,
    Position,
    apply_modify_liquidity,
    close_position,
    collect_fees,
    collect_reward,
    decrease_liquidity,
    increase_liquidity,
    modify_liquidity,
    open_position,
    reinvest_fees,
    update_fees_and_rewards,
)
from .rewards import initialize_reward, next_reward_infos, set_reward_authority, set_reward_emissions
from .context import PoolContext
from .sandbox import PoolSandbox
from .ledger import InMemoryLedger, TokenLedger, TransferFee
from .oracle import OracleFeed, OracleGuard, OraclePrice, StaticOracleFeed, sqrt_price_from_oracle_price

__all__ = [
    # pool state
    "Pool",
    "PoolConfig",
    "initialize_pool",
    "TickArray",
    "TickStore",
    # swap engine
    "SwapResult",
    "SwapStepResult",
    "compute_swap_step",
    "swap",
    "apply_swap",
    # positions
    "Position",
    "ModifyLiquidityUpdate",
    "open_position",
    "modify_liquidity",
    "apply_modify_liquidity",
    "increase_liquidity",
    "decrease_liquidity",
    "update_fees_and_rewards",
    "collect_fees",
    "collect_reward",
    "reinvest_fees",
    "close_position",
    # rewards
    "next_reward_infos",
    "initialize_reward",
    "set_reward_emissions",
    "set_reward_authority",
    # collaborators and flow plumbing
    "PoolContext",
    "PoolSandbox",
    "TokenLedger",
    "InMemoryLedger",
    "TransferFee",
    "OracleFeed",
    "OracleGuard",
    "OraclePrice",
    "StaticOracleFeed",
    "sqrt_price_from_oracle_price",
]
