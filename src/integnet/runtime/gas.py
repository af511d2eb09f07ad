from __future__ import annotations

from typing import Optional


class OutOfGasError(Exception):
    def __init__(self, descriptor: str, limit: int, consumed: int) -> None:
        super().__init__(f"out of gas in location: {descriptor}; gasWanted: {limit}, gasUsed: {consumed}")
        self.descriptor = descriptor
        self.limit = limit
        self.consumed = consumed


class GasMeter:
    """Counts gas; a meter without a limit never runs out (used by simulate)."""

    def __init__(self, limit: Optional[int] = None) -> None:
        self.limit = limit
        self.consumed = 0

    def consume(self, amount: int, descriptor: str) -> None:
        self.consumed += int(amount)
        if self.limit is not None and self.consumed > self.limit:
            raise OutOfGasError(descriptor, int(self.limit), int(self.consumed))

    def used(self) -> int:
        # Cap at the limit so a failed tx never reports more than it asked for.
        if self.limit is not None:
            return min(self.consumed, int(self.limit))
        return self.consumed
