"""
Post-transaction invariant checks for Sire.

  - Sire supply equals the sum of sire balances
  - Relic supply equals the sum of relic balances
  - Collected ether never exceeds the exchange cap
  - No balance or counter goes negative
  - An account's last mint height never moves backwards
  - Rates stay positive and the next adjustment height never decreases

These checks run after every transaction against the working copy.  If
any invariant fails, the working copy is discarded and the transaction
is rejected.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from sire_core.state import LedgerState


@dataclass
class LedgerSnapshot:
    """Snapshot of key ledger fields before a transaction."""
    next_adjustment_height: int = 0
    last_mint_heights: dict[str, Optional[int]] = field(default_factory=dict)


class InvariantChecker:
    """
    Captures a pre-transaction snapshot of the ledger state and validates
    invariants after the transaction is applied.
    """

    def __init__(self):
        self._snapshot: LedgerSnapshot | None = None

    def capture(self, state: LedgerState) -> None:
        """Take a snapshot of the ledger state before a transaction."""
        snap = LedgerSnapshot(next_adjustment_height=state.next_adjustment_height)
        for addr, acc in state.accounts.items():
            snap.last_mint_heights[addr] = acc.last_mint_height
        self._snapshot = snap

    def verify(self, state: LedgerState) -> tuple[bool, str]:
        """
        Verify all invariants against *state*.
        Returns (passed, error_message).
        """
        errors: list[str] = []
        checks = [
            self._check_sire_supply,
            self._check_relic_supply,
            self._check_ether_cap,
            self._check_non_negative,
            self._check_rates_positive,
        ]
        if self._snapshot is not None:
            checks.append(self._check_mint_heights)
            checks.append(self._check_adjustment_height)

        for check in checks:
            ok, msg = check(state)
            if not ok:
                errors.append(msg)

        self._snapshot = None
        if errors:
            return False, "; ".join(errors)
        return True, ""

    def _check_sire_supply(self, state: LedgerState) -> tuple[bool, str]:
        total = sum(acc.sire_balance for acc in state.accounts.values())
        if total != state.sire_supply:
            return False, f"Sire supply mismatch: balances sum to {total}, supply is {state.sire_supply}"
        return True, ""

    def _check_relic_supply(self, state: LedgerState) -> tuple[bool, str]:
        total = sum(acc.relic_balance for acc in state.accounts.values())
        if total != state.relic_supply:
            return False, f"Relic supply mismatch: balances sum to {total}, supply is {state.relic_supply}"
        return True, ""

    def _check_ether_cap(self, state: LedgerState) -> tuple[bool, str]:
        if state.ether_collected > state.max_ether_cap:
            return (False,
                    f"Ether cap exceeded: {state.ether_collected} > {state.max_ether_cap}")
        return True, ""

    def _check_non_negative(self, state: LedgerState) -> tuple[bool, str]:
        for addr, acc in state.accounts.items():
            if acc.sire_balance < 0 or acc.relic_balance < 0:
                return (False,
                        f"Negative balance on {addr}: "
                        f"sire={acc.sire_balance} relic={acc.relic_balance}")
        for name in ("sire_supply", "relic_supply", "ether_collected", "max_ether_cap"):
            if getattr(state, name) < 0:
                return False, f"{name} is negative: {getattr(state, name)}"
        return True, ""

    def _check_rates_positive(self, state: LedgerState) -> tuple[bool, str]:
        if state.exchange_rate <= 0:
            return False, f"exchange_rate not positive: {state.exchange_rate}"
        if state.yield_rate_per_block <= 0:
            return False, f"yield_rate_per_block not positive: {state.yield_rate_per_block}"
        return True, ""

    def _check_mint_heights(self, state: LedgerState) -> tuple[bool, str]:
        """Accounts persist; a set cursor may only move forward and may never be unset."""
        for addr, old in self._snapshot.last_mint_heights.items():
            acc = state.accounts.get(addr)
            if acc is None:
                return False, f"Account {addr} was deleted"
            if old is None:
                continue
            new = acc.last_mint_height
            if new is None or new < old:
                return False, f"Last mint height moved backwards on {addr}: {old} -> {new}"
        return True, ""

    def _check_adjustment_height(self, state: LedgerState) -> tuple[bool, str]:
        old = self._snapshot.next_adjustment_height
        if state.next_adjustment_height < old:
            return (False,
                    f"next_adjustment_height decreased: {old} -> {state.next_adjustment_height}")
        return True, ""
