"""
Checkpoint-based rate adjustment for Sire.

Every ``adjustment_period`` blocks the exchange rate (sire per ether)
and the relic yield rate (relic wei per sire per block, 18-decimal
fixed point) are recomputed by a pluggable policy.

Scheduler contract
──────────────────
  * fires at most once per checkpoint
  * ``next_adjustment_height`` strictly increases each time it fires
        next = current_height + adjustment_period
  * rates never drop to zero or below (clamped to MIN_RATE)

Shipped policies
────────────────
``fixed``     rates never change.

``scarcity``  both rates track how much of their backing is left:

    exchange_rate = base_exchange × (cap − collected) / cap
    yield_rate    = base_yield × sire_supply / (sire_supply + relic_supply)

  As ether flows in, sire gets dearer; as relic piles up relative to
  sire, each block mints less of it.
"""

from __future__ import annotations

import logging
from typing import Callable, Protocol

from sire_core.state import LedgerState

logger = logging.getLogger("sire_scheduler")

MIN_RATE: int = 1


class RatePolicy(Protocol):
    """Strategy that proposes ``(exchange_rate, yield_rate_per_block)``."""

    name: str

    def adjust(self, state: LedgerState) -> tuple[int, int]:
        ...


class FixedRatePolicy:
    """Keep whatever rates the ledger currently has."""

    name = "fixed"

    def adjust(self, state: LedgerState) -> tuple[int, int]:
        return state.exchange_rate, state.yield_rate_per_block


class ScarcityPolicy:
    """Scale the genesis rates down as the cap fills and relic accumulates."""

    name = "scarcity"

    def __init__(self, base_exchange_rate: int, base_yield_rate: int):
        if base_exchange_rate <= 0 or base_yield_rate <= 0:
            raise ValueError("base rates must be positive")
        self.base_exchange_rate = base_exchange_rate
        self.base_yield_rate = base_yield_rate

    def adjust(self, state: LedgerState) -> tuple[int, int]:
        if state.max_ether_cap > 0:
            remaining = max(0, state.max_ether_cap - state.ether_collected)
            exchange = self.base_exchange_rate * remaining // state.max_ether_cap
        else:
            exchange = self.base_exchange_rate

        circulating = state.sire_supply + state.relic_supply
        if circulating > 0:
            yield_rate = self.base_yield_rate * state.sire_supply // circulating
        else:
            yield_rate = self.base_yield_rate
        return exchange, yield_rate


POLICIES: dict[str, Callable[[int, int], RatePolicy]] = {
    "fixed": lambda exchange, yield_rate: FixedRatePolicy(),
    "scarcity": ScarcityPolicy,
}


def make_policy(name: str, base_exchange_rate: int, base_yield_rate: int) -> RatePolicy:
    """Build the named policy around the genesis (configured) rates."""
    try:
        factory = POLICIES[name]
    except KeyError:
        raise ValueError(
            f"Unknown rate policy {name!r} (expected one of {sorted(POLICIES)})"
        )
    return factory(base_exchange_rate, base_yield_rate)


def maybe_fire(state: LedgerState, height: int, policy: RatePolicy) -> bool:
    """
    Run the adjustment if *height* has reached the checkpoint.

    Mutates *state* in place.  Returns True when rates were recomputed.
    """
    if height < state.next_adjustment_height:
        return False

    exchange, yield_rate = policy.adjust(state)
    exchange = max(MIN_RATE, int(exchange))
    yield_rate = max(MIN_RATE, int(yield_rate))

    previous = (state.exchange_rate, state.yield_rate_per_block)
    state.exchange_rate = exchange
    state.yield_rate_per_block = yield_rate
    state.next_adjustment_height = height + state.adjustment_period

    logger.info(
        f"Rate adjustment at height {height} ({policy.name}): "
        f"exchange {previous[0]} -> {exchange}, "
        f"yield {previous[1]} -> {yield_rate}, "
        f"next at {state.next_adjustment_height}"
    )
    return True
