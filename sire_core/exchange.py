"""
Bonding exchange: ether in, sire out.

    sire_minted = ether_value × exchange_rate

The exchange is all-or-nothing.  A deposit that would push
``ether_collected`` past ``max_ether_cap`` is rejected outright; it is
never clipped to the remaining room.  Once the cap is hit exactly the
exchange closes itself.
"""

from __future__ import annotations

from sire_core.errors import ExchangeCapExceeded, ExchangeUnavailable
from sire_core.state import LedgerState, check_amount


def quote_deposit(state: LedgerState, value: int) -> int:
    """Sire that *value* wei of ether would buy at the current rate."""
    return check_amount(value, "value") * state.exchange_rate


def apply_deposit(state: LedgerState, sender: str, value: int) -> int:
    """
    Credit *sender* with sire for *value* wei of ether.

    Mutates *state* only after every check has passed.  Returns the
    sire minted.
    """
    check_amount(value, "value")
    if not state.exchange_available:
        raise ExchangeUnavailable("Exchange is closed")
    room = state.max_ether_cap - state.ether_collected
    if value > room:
        raise ExchangeCapExceeded(
            f"Deposit of {value} exceeds remaining cap: {room} left"
        )
    minted = value * state.exchange_rate

    acc = state.account(sender)
    acc.sire_balance += minted
    state.sire_supply += minted
    state.ether_collected += value
    if state.ether_collected == state.max_ether_cap:
        state.exchange_available = False
    return minted
