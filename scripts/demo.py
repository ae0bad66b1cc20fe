"""Demo: concentrated-liquidity pool lifecycle end to end, through the operation flows.

Scenarios covered:
S1) Single in-range position, small exact-input swap (a->b)
S2) Two overlapping positions, swap crossing an initialized tick
S3) Exact-output swap (b->a) with a price limit (partial fill)
S4) Fee collection and full withdrawal, then close_position
S5) Reward emissions over time, with a zero-liquidity interval
S6) Two-hop exact-input swap through two pools
S7) Price-impact ladder (research scan)
"""
from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass
from typing import Callable, List

from clmm_engine import InMemoryLedger, PoolConfig, PoolContext, initialize_pool
from clmm_engine import flow
from clmm_engine.core import Q64, fmt_dec, sqrt_price_from_tick_index, sqrt_price_to_price, x64_to_decimal
from clmm_engine.core.exc import InsufficientLiquidityError
from clmm_engine.research import scan_price_impact, summarize_price_impact

TRADER = "trader"
LP = "lp"

# ---------- setup helpers ----------


def make_pool(token_a: str, token_b: str, *, spacing: int, fee_rate: int, protocol_fee_rate: int = 0) -> PoolContext:
    cfg = PoolConfig(default_fee_rate=fee_rate, default_protocol_fee_rate=protocol_fee_rate)
    pool = initialize_pool(token_a, token_b, spacing, Q64, config=cfg)
    return PoolContext.for_pool(pool)


def funded_ledger(*tokens: str, amount: int = 10**12) -> InMemoryLedger:
    ledger = InMemoryLedger()
    for token in tokens:
        ledger.mint(LP, token, amount)
        ledger.mint(TRADER, token, amount)
    return ledger


def deposit(ctx: PoolContext, ledger: InMemoryLedger, pid: str, lower: int, upper: int, liquidity: int) -> None:
    flow.open_position(ctx, pid, LP, lower, upper)
    paid = flow.increase_liquidity(ctx, ledger, pid, liquidity, 10**12, 10**12, 0)
    print(f"- {pid} [{lower}, {upper}) L={liquidity}: paid A={paid[0]} B={paid[1]}")


def print_pool(ctx: PoolContext) -> None:
    pool = ctx.pool
    price = sqrt_price_to_price(pool.sqrt_price)
    print(f"  pool {pool.address}: tick={pool.tick_current_index} price={fmt_dec(price, 8)} L={pool.liquidity}")
    growth_a = fmt_dec(x64_to_decimal(pool.fee_growth_global_a), 6)
    growth_b = fmt_dec(x64_to_decimal(pool.fee_growth_global_b), 6)
    print(f"  fee growth per unit L: A={growth_a} B={growth_b}")


# ---------- scenarios ----------


def s1() -> None:
    ctx = make_pool("A", "B", spacing=64, fee_rate=3000)
    ledger = funded_ledger("A", "B")
    deposit(ctx, ledger, "p1", -128, 128, 1_000_000)
    receipt = flow.swap(ctx, ledger, TRADER, 1_000, a_to_b=True, timestamp=1)
    print(f"- swap 1000 A -> {receipt.amount_out} B (fee {receipt.result.fee_amount})")
    print_pool(ctx)


def s2() -> None:
    ctx = make_pool("A", "B", spacing=64, fee_rate=3000)
    ledger = funded_ledger("A", "B")
    deposit(ctx, ledger, "wide", -640, 640, 1_000_000)
    deposit(ctx, ledger, "narrow", -64, 64, 4_000_000)
    receipt = flow.swap(ctx, ledger, TRADER, 8_000, a_to_b=True, timestamp=1)
    r = receipt.result
    print(f"- swap 8000 A -> {receipt.amount_out} B, crossed {r.ticks_crossed} tick(s) in {r.steps} step(s)")
    print_pool(ctx)


def s3() -> None:
    ctx = make_pool("A", "B", spacing=64, fee_rate=3000)
    ledger = funded_ledger("A", "B")
    deposit(ctx, ledger, "p1", -128, 128, 1_000_000)
    limit = sqrt_price_from_tick_index(32)
    receipt = flow.swap(
        ctx, ledger, TRADER, 5_000, a_to_b=False, amount_specified_is_input=False, sqrt_price_limit=limit, timestamp=1
    )
    print(f"- wanted 5000 A, limit tick 32: got {receipt.amount_out} A for {receipt.amount_in} B (partial)")
    print_pool(ctx)


def s4() -> None:
    ctx = make_pool("A", "B", spacing=64, fee_rate=3000, protocol_fee_rate=1000)
    ledger = funded_ledger("A", "B")
    deposit(ctx, ledger, "p1", -128, 128, 1_000_000)
    flow.swap(ctx, ledger, TRADER, 2_000, a_to_b=True, timestamp=1)
    flow.swap(ctx, ledger, TRADER, 2_000, a_to_b=False, timestamp=2)
    fees = flow.collect_fees(ctx, ledger, "p1", 3)
    protocol = flow.collect_protocol_fees(ctx, ledger, "treasury")
    out = flow.decrease_liquidity(ctx, ledger, "p1", 1_000_000, 0, 0, 3)
    flow.close_position(ctx, "p1")
    print(f"- LP fees A={fees[0]} B={fees[1]}; protocol A={protocol[0]} B={protocol[1]}")
    print(f"- withdrawn A={out[0]} B={out[1]}; position closed")
    print_pool(ctx)


def s5() -> None:
    ctx = make_pool("A", "B", spacing=64, fee_rate=3000)
    ledger = funded_ledger("A", "B", "R")
    vault = flow.initialize_reward(ctx, 0, "R", "admin")
    ledger.mint(vault, "R", 10**9)
    flow.set_reward_emissions(ctx, ledger, 0, 10 * Q64, 0, authority="admin")
    # nobody in range for the first 100s: those emissions are never credited
    flow.open_position(ctx, "p1", LP, -128, 128)
    flow.increase_liquidity(ctx, ledger, "p1", 1_000_000, 10**12, 10**12, 100)
    reward = flow.collect_reward(ctx, ledger, "p1", 0, 160)
    print(f"- 10 R/s, position in range for 60s of 160s: collected {reward} R")


def s6() -> None:
    ab = make_pool("A", "B", spacing=64, fee_rate=3000)
    bc = make_pool("B", "C", spacing=64, fee_rate=3000)
    ledger = funded_ledger("A", "B", "C")
    deposit(ab, ledger, "ab", -1280, 1280, 10_000_000)
    deposit(bc, ledger, "bc", -1280, 1280, 10_000_000)
    receipt = flow.multi_hop_swap([ab, bc], ledger, TRADER, 5_000, token_in="A", timestamp=1)
    mid = receipt.results[0].amount_out
    print(f"- 5000 A -> {mid} B -> {receipt.amount_out} C")


def s7() -> None:
    ctx = make_pool("A", "B", spacing=64, fee_rate=3000)
    ledger = funded_ledger("A", "B")
    deposit(ctx, ledger, "wide", -1280, 1280, 1_000_000)
    deposit(ctx, ledger, "narrow", -128, 128, 5_000_000)
    points = scan_price_impact(ctx.pool, ctx.ticks, [1_000, 10_000, 50_000, 100_000, 10**9], a_to_b=True)
    print(summarize_price_impact(points))


# -------- scenario registry helpers --------

@dataclass
class Scenario:
    sid: str
    title: str
    fn: Callable[[], None]


SCENARIOS: List[Scenario] = [
    Scenario("S1", "Single position, small exact-input swap", s1),
    Scenario("S2", "Swap crossing an initialized tick", s2),
    Scenario("S3", "Exact-output swap with a price limit", s3),
    Scenario("S4", "Fee collection, withdrawal and close", s4),
    Scenario("S5", "Reward emissions with a zero-liquidity interval", s5),
    Scenario("S6", "Two-hop exact-input swap", s6),
    Scenario("S7", "Price-impact ladder", s7),
]


# ---------- run scenarios ----------
if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Concentrated-liquidity engine demo")
    parser.add_argument("--only", type=str, default=None, help="Comma-separated scenario ids to run (e.g., S1,S4)")
    parser.add_argument("--skip", type=str, default=None, help="Comma-separated scenario ids to skip")
    parser.add_argument("--debug", action="store_true", help="Log engine debug output (enables every DEBUG_* toggle)")
    args = parser.parse_args(sys.argv[1:])

    logging.basicConfig(level=logging.DEBUG if args.debug else logging.INFO, format="%(name)s: %(message)s")
    if args.debug:
        from clmm_engine import flow as _flow, pool as _pool, position as _position, swap as _swap, tick_array as _ticks

        _flow.DEBUG_FLOW = True
        _pool.DEBUG_POOL = True
        _position.DEBUG_POSITION = True
        _swap.DEBUG_SWAP = True
        _ticks.DEBUG_TICKS = True

    only_set = set(s.strip() for s in args.only.split(",") if s.strip()) if args.only else None
    skip_set = set(s.strip() for s in args.skip.split(",") if s.strip()) if args.skip else None

    for sc in SCENARIOS:
        if only_set is not None and sc.sid not in only_set:
            continue
        if skip_set is not None and sc.sid in skip_set:
            continue
        print("\n" + "=" * 80)
        print(f"Scenario {sc.sid}) {sc.title}")
        try:
            sc.fn()
        except InsufficientLiquidityError as e:
            print(f"- insufficient liquidity: {e}")
