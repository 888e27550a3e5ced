"""
Block-height source for Sire.

The ledger has no clock of its own; the hosting platform supplies a
monotonically increasing block height.  ``BlockClock`` is that
collaborator for a standalone node and for tests: heights only move
forward, and several calls may share one height.
"""

from __future__ import annotations


class BlockClock:
    """Monotonic block-height counter."""

    def __init__(self, height: int = 0):
        if height < 0:
            raise ValueError("Block height cannot be negative")
        self._height = height

    @property
    def height(self) -> int:
        return self._height

    def current_height(self) -> int:
        return self._height

    def advance(self, blocks: int = 1) -> int:
        """Move forward *blocks* blocks and return the new height."""
        if blocks < 0:
            raise ValueError("Cannot advance by a negative block count")
        self._height += blocks
        return self._height

    def set_height(self, height: int) -> None:
        if height < self._height:
            raise ValueError(
                f"Block height cannot go backwards: {self._height} -> {height}"
            )
        self._height = height

    def __repr__(self) -> str:
        return f"BlockClock(height={self._height})"
