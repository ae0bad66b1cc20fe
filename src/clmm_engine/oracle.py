"""
Price-oracle collaborator.

An oracle reading is an integer `price` scaled by `10**exponent` (a negative exponent is the
usual case), with a confidence interval `conf` in the same units and the unix time it was
published. Readings quote one whole token A in whole tokens B.

Core swap math never consults the oracle. It is used in two places only:
- `sqrt_price_from_oracle_price` seeds a new pool's initial sqrt price;
- `OracleGuard` lets a flow opt in to staleness and price-deviation checks.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from math import isqrt

from .core.exc import OracleDeviationError, PriceOutOfBoundsError, StaleOracleError
from .core.tick_math import is_sqrt_price_in_bounds

DEBUG_ORACLE = False

_BPS = 10_000

logger = logging.getLogger(__name__)


def _dbg(msg: str) -> None:
    if DEBUG_ORACLE:
        logger.debug("[ORACLE] %s", msg)


@dataclass(frozen=True)
class OraclePrice:
    price: int
    conf: int
    exponent: int
    publish_time: int


class OracleFeed:
    """Interface of the price-oracle collaborator."""

    def latest_price(self) -> OraclePrice:
        raise NotImplementedError


class StaticOracleFeed(OracleFeed):
    """Feed returning whatever reading was last pushed into it."""

    def __init__(self, price: OraclePrice) -> None:
        self._price = price

    def push(self, price: OraclePrice) -> None:
        self._price = price

    def latest_price(self) -> OraclePrice:
        return self._price


def _price_ratio(price: OraclePrice, decimals_a: int, decimals_b: int):
    # whole-token price -> atomic units of B per atomic unit of A
    exponent = price.exponent + decimals_b - decimals_a
    if exponent >= 0:
        return price.price * 10 ** exponent, 1
    return price.price, 10 ** (-exponent)


def sqrt_price_from_oracle_price(price: OraclePrice, decimals_a: int, decimals_b: int) -> int:
    """Q64.64 sqrt price for an oracle reading, rounded down."""
    if price.price <= 0:
        raise StaleOracleError(f"oracle price {price.price} is not positive")
    num, den = _price_ratio(price, decimals_a, decimals_b)
    sqrt_price = isqrt((num << 128) // den)
    if not is_sqrt_price_in_bounds(sqrt_price):
        raise PriceOutOfBoundsError(f"oracle price maps to sqrt price {sqrt_price}, out of bounds")
    return sqrt_price


class OracleGuard:
    """Opt-in staleness and deviation check around a pool operation.

    maximum_age: seconds a reading stays usable.
    max_deviation_bps: largest allowed |pool - oracle| / oracle, in basis points of price.
    """

    def __init__(self, feed: OracleFeed, maximum_age: int, max_deviation_bps: int) -> None:
        self.feed = feed
        self.maximum_age = maximum_age
        self.max_deviation_bps = max_deviation_bps

    def fresh_price(self, now: int) -> OraclePrice:
        price = self.feed.latest_price()
        if price.price <= 0:
            raise StaleOracleError(f"oracle price {price.price} is not positive")
        age = now - price.publish_time
        if age > self.maximum_age:
            raise StaleOracleError(f"oracle price is {age}s old (max {self.maximum_age}s)")
        return price

    def check_sqrt_price(self, sqrt_price_x64: int, now: int, decimals_a: int = 0, decimals_b: int = 0) -> int:
        """Return the deviation in bps of a pool sqrt price from the oracle, or raise."""
        oracle_sqrt = sqrt_price_from_oracle_price(self.fresh_price(now), decimals_a, decimals_b)
        pool_sq = sqrt_price_x64 * sqrt_price_x64
        oracle_sq = oracle_sqrt * oracle_sqrt
        deviation_bps = abs(pool_sq - oracle_sq) * _BPS // oracle_sq
        _dbg(f"deviation {deviation_bps} bps (max {self.max_deviation_bps})")
        if deviation_bps > self.max_deviation_bps:
            raise OracleDeviationError(deviation_bps, self.max_deviation_bps)
        return deviation_bps


__all__ = [
    "DEBUG_ORACLE",
    "OraclePrice",
    "OracleFeed",
    "StaticOracleFeed",
    "OracleGuard",
    "sqrt_price_from_oracle_price",
]
