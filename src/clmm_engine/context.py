"""Per-pool state bundle handed to the operation flows: pool, ticks, positions and vault names."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict

from .core.constants import NUM_REWARDS
from .core.exc import InvariantViolation, RewardError
from .pool import Pool
from .position import Position
from .tick_array import TickStore


@dataclass
class PoolContext:
    """
    Everything the operation flows need to know about one pool.

    Semantics:
      - `pool` and `ticks` are the pool's live state; `ticks` is the complete arena.
      - `positions` maps position_id -> Position for positions opened on this pool.
      - Vault accounts are named after the pool address, so two pools never share one.

    Notes:
      * The context owns no locks. One context is one serialized unit of mutation; callers
        must not run two flows against the same context at once.
    """

    pool: Pool
    ticks: TickStore
    positions: Dict[str, Position] = field(default_factory=dict)

    @classmethod
    def for_pool(cls, pool: Pool) -> "PoolContext":
        return cls(pool=pool, ticks=TickStore(pool.tick_spacing))

    @property
    def address(self) -> str:
        return self.pool.address

    @property
    def vault_a(self) -> str:
        return f"{self.pool.address}:vault_a"

    @property
    def vault_b(self) -> str:
        return f"{self.pool.address}:vault_b"

    def vault(self, token: str) -> str:
        if token == self.pool.token_a:
            return self.vault_a
        if token == self.pool.token_b:
            return self.vault_b
        raise InvariantViolation(f"{token} is not traded on {self.pool.address}")

    def reward_vault(self, index: int) -> str:
        if not 0 <= index < NUM_REWARDS:
            raise RewardError(f"reward index {index} outside [0, {NUM_REWARDS})")
        return f"{self.pool.address}:reward_vault_{index}"

    def position(self, position_id: str) -> Position:
        position = self.positions.get(position_id)
        if position is None:
            raise InvariantViolation(f"no position {position_id} on {self.pool.address}")
        return position

    def add_position(self, position: Position) -> None:
        if position.position_id in self.positions:
            raise InvariantViolation(f"position {position.position_id} already exists")
        self.positions[position.position_id] = position

    def remove_position(self, position_id: str) -> Position:
        return self.positions.pop(position_id)


__all__ = ["PoolContext"]
