"""Staged writebacks for the operation flows."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List

# ----------------------------
# Pool sandbox
# ----------------------------

Writeback = Callable[[], None]


@dataclass
class PoolSandbox:
    """Stage pool/tick/position writebacks until a unit of work has fully succeeded.

    Engine calls only compute update records. Flows stage the matching `apply_*` call
    here and run `apply()` as the last statement of the unit of work, after every token
    transfer has settled. Anything raised earlier leaves the staged list unapplied.
    """
    staged: List[Writeback]

    def __init__(self) -> None:
        self.staged = []

    def stage(self, writeback: Writeback) -> None:
        self.staged.append(writeback)

    def discard(self) -> None:
        self.staged.clear()

    def apply(self) -> int:
        """Run staged writebacks in order; return how many ran."""
        staged, self.staged = self.staged, []
        for writeback in staged:
            writeback()
        return len(staged)


__all__ = ["PoolSandbox", "Writeback"]
