"""
Core exception types for clmm_engine.

These are dependency-free and may be imported by all core modules.
"""

__all__ = [
    "ArithmeticOverflowError",
    "ArithmeticUnderflowError",
    "AmountDomainError",
    "InvariantViolation",
    "InvalidRangeError",
    "InvalidTickArrayError",
    "TickArrayNotLoadedError",
    "InsufficientLiquidityError",
    "LiquidityOverflowError",
    "PriceLimitError",
    "PriceOutOfBoundsError",
    "SlippageExceededError",
    "StaleOracleError",
    "OracleDeviationError",
    "InvalidTimestampError",
    "RewardError",
    "PoolConfigError",
    "PositionNotEmptyError",
    "WindowClosedError",
    "SettlementError",
]


class ArithmeticOverflowError(Exception):
    """Raised when a checked operation would exceed its integer width."""
    pass


class ArithmeticUnderflowError(Exception):
    """Raised when a checked operation would go below zero (or below the signed minimum)."""
    pass


class AmountDomainError(Exception):
    """Raised when inputs violate the non-negative domain or basic preconditions."""
    pass


class InvariantViolation(Exception):
    """Raised when arithmetic or guards would break core invariants."""
    pass


class InvalidRangeError(Exception):
    """Raised for misaligned, inverted or out-of-bounds tick ranges."""
    pass


class InvalidTickArrayError(Exception):
    """Raised for a misaligned page start index or a page that already exists."""
    pass


class TickArrayNotLoadedError(Exception):
    """Raised when a required tick page is missing from the caller's working set.

    Recoverable: retry with the page included.
    """

    def __init__(self, start_index: int):
        super().__init__(f"tick array starting at {start_index} is not loaded")
        self.start_index = start_index


class InsufficientLiquidityError(Exception):
    """Raised when a swap or withdrawal cannot complete as requested.

    Attributes
    ----------
    requested : int
        The requested amount (swap amount or liquidity to remove).
    filled : int | None
        Amount actually filled before the engine gave up (swap only).
    spent : int | None
        Counter amount corresponding to `filled` (swap only).
    tick_index : int | None
        Working tick at the decision point.
    """

    def __init__(self, requested, *, available=None, filled=None, spent=None, tick_index=None):
        detail = f" (available={available})" if available is not None else ""
        super().__init__(f"insufficient liquidity for requested={requested}{detail}")
        self.requested = requested
        self.available = available
        self.filled = filled
        self.spent = spent
        self.tick_index = tick_index


class LiquidityOverflowError(Exception):
    """Raised when a tick's liquidity_gross cap (or liquidity_net width) is exceeded."""

    def __init__(self, tick_index: int, liquidity: int, cap: int):
        super().__init__(f"tick {tick_index}: liquidity {liquidity} exceeds cap {cap}")
        self.tick_index = tick_index
        self.liquidity = liquidity
        self.cap = cap


class PriceLimitError(Exception):
    """Raised when a swap's sqrt price limit is out of bounds or on the wrong side."""
    pass


class PriceOutOfBoundsError(Exception):
    """Raised when a sqrt price or tick falls outside the supported range."""
    pass


class SlippageExceededError(Exception):
    """Raised when settled amounts violate the caller's threshold."""

    def __init__(self, message: str, *, amount=None, threshold=None):
        super().__init__(message)
        self.amount = amount
        self.threshold = threshold


class StaleOracleError(Exception):
    """Raised to opted-in operations when the oracle reading is too old or invalid."""
    pass


class OracleDeviationError(Exception):
    """Raised when the pool price strays further from the oracle price than allowed."""

    def __init__(self, deviation_bps: int, max_deviation_bps: int):
        super().__init__(
            f"pool price deviates {deviation_bps} bps from oracle (max {max_deviation_bps} bps)"
        )
        self.deviation_bps = deviation_bps
        self.max_deviation_bps = max_deviation_bps


class InvalidTimestampError(Exception):
    """Raised when an operation's timestamp precedes the pool's last reward update."""
    pass


class RewardError(Exception):
    """Raised for invalid reward index, authority, token or vault coverage."""
    pass


class PoolConfigError(Exception):
    """Raised for invalid pool parameters (token order, tick spacing, fee rates)."""
    pass


class PositionNotEmptyError(Exception):
    """Raised when closing a position that still holds liquidity or owed amounts."""
    pass


class WindowClosedError(Exception):
    """Raised when a temporary pool is used outside its swap/LP window."""
    pass


class SettlementError(Exception):
    """Raised when the token collaborator cannot settle what the engine computed."""
    pass
