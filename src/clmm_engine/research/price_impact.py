from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Sequence

import pandas as pd

from ..core.exc import InsufficientLiquidityError
from ..core.fmt import sqrt_price_to_price
from ..pool import Pool
from ..swap import swap
from ..tick_array import TickStore


@dataclass(frozen=True)
class ImpactPoint:
    """One point of a price-impact ladder: a quoted exact-input swap of `size`.

    avg_price is output per unit input (0 when infeasible); impact_bps compares the
    post-trade spot price with the pre-trade spot price, in the direction of the trade.
    """
    size: int
    feasible: bool
    amount_in: int
    amount_out: int
    fee_amount: int
    ticks_crossed: int
    steps: int
    avg_price: Decimal
    spot_after: Decimal
    impact_bps: Decimal


def _quote(pool: Pool, ticks: TickStore, size: int, a_to_b: bool, timestamp: int, spot_before: Decimal) -> ImpactPoint:
    try:
        result = swap(pool, ticks, size, a_to_b=a_to_b, timestamp=timestamp)
    except InsufficientLiquidityError:
        zero = Decimal(0)
        return ImpactPoint(size, False, 0, 0, 0, 0, 0, zero, zero, zero)

    spot_after = sqrt_price_to_price(result.next_sqrt_price)
    avg_price = Decimal(result.amount_out) / Decimal(result.amount_in) if result.amount_in else Decimal(0)
    # a_to_b pushes the price of A down; report impact as a positive number either way
    moved = spot_before - spot_after if a_to_b else spot_after - spot_before
    impact_bps = moved / spot_before * Decimal(10_000) if spot_before else Decimal(0)
    return ImpactPoint(
        size=size,
        feasible=True,
        amount_in=result.amount_in,
        amount_out=result.amount_out,
        fee_amount=result.fee_amount,
        ticks_crossed=result.ticks_crossed,
        steps=result.steps,
        avg_price=avg_price,
        spot_after=spot_after,
        impact_bps=impact_bps,
    )


def scan_price_impact(
    pool: Pool,
    ticks: TickStore,
    sizes: Sequence[int],
    *,
    a_to_b: bool,
    timestamp: Optional[int] = None,
) -> List[ImpactPoint]:
    """Quote an exact-input swap for every size, leaving the pool untouched.

    Sizes the pool cannot fill are kept as infeasible points rather than dropped, so the
    ladder shows where depth runs out.
    """
    ts = pool.reward_last_updated_timestamp if timestamp is None else timestamp
    spot_before = sqrt_price_to_price(pool.sqrt_price)
    return [_quote(pool, ticks, size, a_to_b, ts, spot_before) for size in sizes]


def impact_frame(points: Sequence[ImpactPoint]) -> pd.DataFrame:
    """Tabulate a ladder; Decimal columns are converted to float for analysis."""
    records = [
        {
            "size": p.size,
            "feasible": p.feasible,
            "amount_in": p.amount_in,
            "amount_out": p.amount_out,
            "fee_amount": p.fee_amount,
            "ticks_crossed": p.ticks_crossed,
            "steps": p.steps,
            "avg_price": float(p.avg_price),
            "spot_after": float(p.spot_after),
            "impact_bps": float(p.impact_bps),
        }
        for p in points
    ]
    columns = [
        "size",
        "feasible",
        "amount_in",
        "amount_out",
        "fee_amount",
        "ticks_crossed",
        "steps",
        "avg_price",
        "spot_after",
        "impact_bps",
    ]
    return pd.DataFrame(records, columns=columns)


def summarize_price_impact(points: Sequence[ImpactPoint]) -> str:
    lines = ["size | out | fee | crossed | impact_bps"]
    for p in points:
        if not p.feasible:
            lines.append(f"{p.size} | N/A (insufficient liquidity)")
            continue
        lines.append(f"{p.size} | {p.amount_out} | {p.fee_amount} | {p.ticks_crossed} | {p.impact_bps:.4f}")
    return "\n".join(lines)


__all__ = [
    "ImpactPoint",
    "scan_price_impact",
    "impact_frame",
    "summarize_price_impact",
]
