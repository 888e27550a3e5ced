"""
Relic accrual ("minting").

Holding sire earns relic linearly in blocks held:

    elapsed      = current_height − (last_mint_height or genesis_height)
    relic_minted = sire_balance × elapsed × yield_rate_per_block / 10¹⁸

``yield_rate_per_block`` is an 18-decimal fixed-point number, so the
product is scaled back down once and truncated toward zero.

The accrual cursor always moves to the current height, even when
nothing is minted; a zero-balance account therefore cannot later claim
relic for blocks in which it held no sire.  Anyone may trigger accrual
for any account: the reward follows the balance, not the caller.
"""

from __future__ import annotations

from sire_core.errors import InvalidBlockHeight
from sire_core.precision import WEI_PER_UNIT
from sire_core.state import LedgerState


def pending_relic(state: LedgerState, target: str, height: int) -> int:
    """Relic *target* would receive if it minted at *height*."""
    acc = state.peek(target)
    if acc is None:
        return 0
    baseline = acc.last_mint_height
    if baseline is None:
        baseline = state.genesis_height
    elapsed = max(0, height - baseline)
    return acc.sire_balance * elapsed * state.yield_rate_per_block // WEI_PER_UNIT


def apply_mint(state: LedgerState, target: str, height: int) -> int:
    """Accrue relic for *target* up to *height*.  Returns the relic minted."""
    acc = state.account(target)
    baseline = acc.last_mint_height
    if baseline is None:
        baseline = state.genesis_height
    if height < baseline:
        raise InvalidBlockHeight(
            f"Mint height {height} is below accrual cursor {baseline}"
        )

    minted = pending_relic(state, target, height)
    acc.relic_balance += minted
    state.relic_supply += minted
    acc.last_mint_height = height
    return minted
