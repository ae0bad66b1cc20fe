from __future__ import annotations

from typing import Callable

import pytest

# Import project primitives
from clmm_engine import (
    InMemoryLedger,
    Pool,
    PoolConfig,
    PoolContext,
    Position,
    TickStore,
    apply_modify_liquidity,
    apply_swap,
    initialize_pool,
    modify_liquidity,
    open_position,
    swap,
)
from clmm_engine import flow
from clmm_engine.core import Q64

LP = "lp"
TRADER = "trader"
FUNDING = 10**12


# -----------------------------
# Pytest fixtures
# -----------------------------

@pytest.fixture()
def pool() -> Pool:
    """Pool A/B at price 1.0 (tick 0), spacing 64, fee 0.30%."""
    return initialize_pool("A", "B", 64, Q64, config=PoolConfig(default_fee_rate=3000))


@pytest.fixture()
def ticks(pool: Pool) -> TickStore:
    return TickStore(pool.tick_spacing)


@pytest.fixture()
def provide(pool: Pool, ticks: TickStore) -> Callable[..., Position]:
    """Factory: open a position on `pool` and deposit liquidity at engine level (no tokens move)."""

    def _provide(position_id: str, tick_lower: int, tick_upper: int, liquidity: int, timestamp: int = 0) -> Position:
        position = open_position(pool, position_id, LP, tick_lower, tick_upper)
        update = modify_liquidity(pool, position, ticks, liquidity, timestamp)
        apply_modify_liquidity(pool, position, ticks, update)
        return position

    return _provide


@pytest.fixture()
def execute(pool: Pool, ticks: TickStore):
    """Factory: compute a swap against `pool` and commit it."""

    def _execute(amount: int, *, a_to_b: bool, timestamp: int = 0, **kwargs):
        result = swap(pool, ticks, amount, a_to_b=a_to_b, timestamp=timestamp, **kwargs)
        apply_swap(pool, ticks, result)
        return result

    return _execute


@pytest.fixture()
def ctx() -> PoolContext:
    pool = initialize_pool("A", "B", 64, Q64, config=PoolConfig(default_fee_rate=3000))
    return PoolContext.for_pool(pool)


@pytest.fixture()
def ledger() -> InMemoryLedger:
    """LP and trader funded with every token the tests use."""
    led = InMemoryLedger()
    for token in ("A", "B", "C", "R"):
        led.mint(LP, token, FUNDING)
        led.mint(TRADER, token, FUNDING)
    return led


@pytest.fixture()
def deposit(ledger: InMemoryLedger) -> Callable[..., tuple]:
    """Factory: open a position on a context and fund it through the flow."""

    def _deposit(context: PoolContext, position_id: str, tick_lower: int, tick_upper: int, liquidity: int, timestamp: int = 0):
        flow.open_position(context, position_id, LP, tick_lower, tick_upper)
        return flow.increase_liquidity(context, ledger, position_id, liquidity, FUNDING, FUNDING, timestamp)

    return _deposit
