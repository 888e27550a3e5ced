"""
Balance transfers for both assets.

One code path serves sire and relic; the ``Asset`` tag picks the
balance field.  Transfers never touch supply.
"""

from __future__ import annotations

from sire_core.errors import InsufficientBalance
from sire_core.state import Asset, LedgerState, check_amount


def apply_transfer(
    state: LedgerState,
    asset: Asset,
    sender: str,
    destination: str,
    amount: int,
) -> bool:
    """
    Move *amount* of *asset* from *sender* to *destination*.

    Self-transfers and zero amounts are legal and leave balances as
    they were.  Raises ``InsufficientBalance`` before any mutation.
    """
    asset = Asset.parse(asset)
    check_amount(amount)
    have = state.balance_of(asset, sender)
    if have < amount:
        raise InsufficientBalance(
            f"Insufficient {asset.name.lower()} balance: have {have}, need {amount}"
        )

    src = state.account(sender)
    src.set_balance(asset, src.balance(asset) - amount)
    dst = state.account(destination)
    dst.set_balance(asset, dst.balance(asset) + amount)
    return True
