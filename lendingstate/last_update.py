"""Tracking of when account state was last refreshed."""

from __future__ import annotations

import functools
from dataclasses import dataclass

from lendingstate.common import ErrorCode, LendingError

# Number of slots after which state is considered stale.
STALE_AFTER_SLOTS_ELAPSED = 1


@functools.total_ordering
@dataclass(eq=False)
class LastUpdate:
    """Slot of the last refresh and whether the state has been marked stale.

    Equality and ordering compare the slot only.
    """

    slot: int = 0
    stale: bool = False

    def slots_elapsed(self, slot: int) -> int:
        """Return how many slots have passed since the last update."""
        if slot < self.slot:
            raise LendingError(ErrorCode.MATH_OVERFLOW)
        return slot - self.slot

    def update_slot(self, slot: int) -> None:
        self.slot = slot
        self.stale = False

    def mark_stale(self) -> None:
        self.stale = True

    def is_stale(self, slot: int) -> bool:
        """True when marked stale or the last update is too long ago."""
        return self.stale or self.slots_elapsed(slot) >= STALE_AFTER_SLOTS_ELAPSED

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LastUpdate):
            return NotImplemented
        return self.slot == other.slot

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, LastUpdate):
            return NotImplemented
        return self.slot < other.slot

    __hash__ = None  # type: ignore[assignment]