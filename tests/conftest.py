"""
Shared pytest fixtures for the Sire test suite.
"""

import pytest

from sire_core.blocks import BlockClock
from sire_core.contract import SireLedger
from sire_core.precision import (
    DEFAULT_ADJUSTMENT_PERIOD,
    DEFAULT_EXCHANGE_RATE,
    DEFAULT_GENESIS_ALLOCATION,
    DEFAULT_MAX_ETHER_CAP,
    DEFAULT_YIELD_RATE,
    units_to_wei,
)
from sire_core.state import LedgerState
from sire_core.wallet import Wallet

GENESIS_HEIGHT = 100

ALICE = "0x" + "a1" * 20
BOB = "0x" + "b0" * 20
CAROL = "0x" + "c4" * 20


def units(value) -> int:
    """Whole units (int or decimal string) to wei."""
    return units_to_wei(value)


@pytest.fixture
def clock():
    """Block clock parked at the genesis height."""
    return BlockClock(GENESIS_HEIGHT)


@pytest.fixture
def state():
    """Bare genesis state: Alice holds the 33 333 sire allocation."""
    return LedgerState.genesis(
        ALICE,
        DEFAULT_GENESIS_ALLOCATION,
        height=GENESIS_HEIGHT,
        max_ether_cap=DEFAULT_MAX_ETHER_CAP,
        exchange_rate=DEFAULT_EXCHANGE_RATE,
        yield_rate_per_block=DEFAULT_YIELD_RATE,
        adjustment_period=DEFAULT_ADJUSTMENT_PERIOD,
    )


@pytest.fixture
def ledger(clock):
    """Ledger with default genesis parameters, created by Alice."""
    return SireLedger.create(ALICE, clock)


@pytest.fixture
def funded_ledger(ledger):
    """Alice deposited 1 ether and sent Bob 100 sire, all at genesis height."""
    ledger.deposit(ALICE, units(1))
    ledger.transfer("sire", ALICE, BOB, units(100))
    return ledger


@pytest.fixture
def wallet():
    """Fresh wallet."""
    return Wallet.create()
