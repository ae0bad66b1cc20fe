"""
Token-transfer collaborator.

The engine never moves tokens itself. Flows settle the amounts a SwapResult or a
ModifyLiquidityUpdate reports through a TokenLedger, quoting fee-on-transfer tokens with
their TransferFee, and trust only the balance the receiving account actually gained.

`InMemoryLedger` is the reference implementation used by the flows, the demo and the tests.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Iterator, Mapping, Optional, Tuple

from .core.constants import MAX_TRANSFER_FEE_BASIS_POINTS, U64_MAX
from .core.exc import AmountDomainError, InvariantViolation, SettlementError
from .core.fixed_point import div_round_up

# --- Debug utilities (toggleable) ---
DEBUG_LEDGER = False

logger = logging.getLogger(__name__)


def _dbg(msg: str) -> None:
    if DEBUG_LEDGER:
        logger.debug("[LEDGER] %s", msg)


# ----------------------------
# Transfer fees
# ----------------------------

@dataclass(frozen=True)
class TransferFee:
    """Fee withheld on every transfer of a token: ceil(amount * bps / 10_000), capped."""

    basis_points: int = 0
    maximum_fee: int = U64_MAX

    def __post_init__(self) -> None:
        if not 0 <= self.basis_points <= MAX_TRANSFER_FEE_BASIS_POINTS:
            raise AmountDomainError(
                f"transfer fee {self.basis_points} bps outside [0, {MAX_TRANSFER_FEE_BASIS_POINTS}]"
            )
        if self.maximum_fee < 0:
            raise AmountDomainError("maximum_fee must be >= 0")

    @property
    def is_zero(self) -> bool:
        return self.basis_points == 0 or self.maximum_fee == 0

    def fee_on(self, amount: int) -> int:
        """Fee withheld when `amount` is sent."""
        if amount == 0 or self.is_zero:
            return 0
        return min(div_round_up(amount * self.basis_points, MAX_TRANSFER_FEE_BASIS_POINTS), self.maximum_fee)

    def excluded_amount(self, amount: int) -> int:
        """What the receiver gets when `amount` is sent."""
        return amount - self.fee_on(amount)

    def included_amount(self, amount: int) -> int:
        """Smallest amount to send so that the receiver gets `amount`.

        Zero stays zero: nothing is sent for nothing.
        """
        if amount == 0 or self.is_zero:
            return amount
        if self.basis_points == MAX_TRANSFER_FEE_BASIS_POINTS:
            return amount + self.maximum_fee
        raw = div_round_up(
            amount * MAX_TRANSFER_FEE_BASIS_POINTS,
            MAX_TRANSFER_FEE_BASIS_POINTS - self.basis_points,
        )
        fee = min(raw - amount, self.maximum_fee)
        included = amount + fee
        if self.fee_on(included) != fee:
            raise InvariantViolation(f"inverse transfer fee for {amount} does not verify ({included})")
        return included


NO_TRANSFER_FEE = TransferFee()


# ----------------------------
# Ledger interface
# ----------------------------

class TokenLedger:
    """Interface of the token-transfer collaborator."""

    def balance_of(self, account: str, token: str) -> int:
        raise NotImplementedError

    def transfer(self, token: str, source: str, destination: str, amount: int) -> int:
        """Move `amount` from source; return what the destination received."""
        raise NotImplementedError

    def transfer_fee(self, token: str) -> TransferFee:
        raise NotImplementedError

    def transaction(self):
        """Context manager: balance changes inside are undone if an exception escapes."""
        raise NotImplementedError


class InMemoryLedger(TokenLedger):
    """Dict-backed balances with optional fee-on-transfer tokens.

    Transfer fees are withheld on the token (see `withheld`), never credited to anyone.
    """

    def __init__(self, transfer_fees: Optional[Mapping[str, TransferFee]] = None) -> None:
        self._balances: Dict[Tuple[str, str], int] = {}
        self._withheld: Dict[str, int] = {}
        self._fees: Dict[str, TransferFee] = dict(transfer_fees or {})

    def mint(self, account: str, token: str, amount: int) -> None:
        if amount < 0:
            raise AmountDomainError("mint amount must be >= 0")
        key = (account, token)
        self._balances[key] = self._balances.get(key, 0) + amount

    def balance_of(self, account: str, token: str) -> int:
        return self._balances.get((account, token), 0)

    def withheld(self, token: str) -> int:
        return self._withheld.get(token, 0)

    def set_transfer_fee(self, token: str, fee: TransferFee) -> None:
        self._fees[token] = fee

    def transfer_fee(self, token: str) -> TransferFee:
        return self._fees.get(token, NO_TRANSFER_FEE)

    def transfer(self, token: str, source: str, destination: str, amount: int) -> int:
        if amount < 0:
            raise AmountDomainError(f"transfer amount {amount} < 0")
        if amount == 0:
            return 0
        available = self.balance_of(source, token)
        if available < amount:
            raise SettlementError(f"{source} holds {available} {token}, cannot send {amount}")
        fee = self.transfer_fee(token).fee_on(amount)
        self._balances[(source, token)] = available - amount
        key = (destination, token)
        self._balances[key] = self._balances.get(key, 0) + amount - fee
        if fee:
            self._withheld[token] = self._withheld.get(token, 0) + fee
        _dbg(f"{amount} {token}: {source} -> {destination} (fee {fee})")
        return amount - fee

    @contextmanager
    def transaction(self) -> Iterator["InMemoryLedger"]:
        balances = dict(self._balances)
        withheld = dict(self._withheld)
        try:
            yield self
        except Exception:
            self._balances = balances
            self._withheld = withheld
            _dbg("transaction rolled back")
            raise


__all__ = [
    "DEBUG_LEDGER",
    "TransferFee",
    "NO_TRANSFER_FEE",
    "TokenLedger",
    "InMemoryLedger",
]
