"""
Tests for relic accrual.

    relic_minted = sire_balance × elapsed_blocks × yield_rate_per_block / 10¹⁸
"""

import pytest

from sire_core.accrual import apply_mint, pending_relic
from sire_core.errors import InvalidBlockHeight
from sire_core.state import Asset

from conftest import ALICE, BOB, GENESIS_HEIGHT, units


@pytest.fixture
def bob_holds_100(state):
    state.account(ALICE).sire_balance -= units(100)
    state.account(BOB).sire_balance = units(100)
    return state


class TestFirstMint:
    def test_one_block_after_genesis(self, bob_holds_100):
        minted = apply_mint(bob_holds_100, BOB, GENESIS_HEIGHT + 1)
        assert minted == units("1.667")
        assert bob_holds_100.balance_of(Asset.RELIC, BOB) == units("1.667")
        assert bob_holds_100.total_supply(Asset.RELIC) == units("1.667")

    def test_cursor_set(self, bob_holds_100):
        apply_mint(bob_holds_100, BOB, GENESIS_HEIGHT + 1)
        assert bob_holds_100.last_mint_height(BOB) == GENESIS_HEIGHT + 1

    def test_at_genesis_height_mints_nothing(self, bob_holds_100):
        assert apply_mint(bob_holds_100, BOB, GENESIS_HEIGHT) == 0
        assert bob_holds_100.last_mint_height(BOB) == GENESIS_HEIGHT


class TestRepeatMint:
    def test_elapsed_since_own_cursor(self, bob_holds_100):
        apply_mint(bob_holds_100, BOB, GENESIS_HEIGHT + 1)
        minted = apply_mint(bob_holds_100, BOB, GENESIS_HEIGHT + 3)
        assert minted == units("3.334")

    def test_same_height_twice_mints_once(self, bob_holds_100):
        apply_mint(bob_holds_100, BOB, GENESIS_HEIGHT + 5)
        assert apply_mint(bob_holds_100, BOB, GENESIS_HEIGHT + 5) == 0

    def test_height_below_cursor_rejected(self, bob_holds_100):
        apply_mint(bob_holds_100, BOB, GENESIS_HEIGHT + 5)
        with pytest.raises(InvalidBlockHeight):
            apply_mint(bob_holds_100, BOB, GENESIS_HEIGHT + 4)

    def test_height_below_genesis_rejected(self, bob_holds_100):
        with pytest.raises(InvalidBlockHeight):
            apply_mint(bob_holds_100, BOB, GENESIS_HEIGHT - 1)


class TestZeroBalance:
    def test_mints_zero_but_moves_cursor(self, state):
        assert apply_mint(state, BOB, GENESIS_HEIGHT + 50) == 0
        assert state.last_mint_height(BOB) == GENESIS_HEIGHT + 50

    def test_no_retroactive_claim(self, state):
        """Blocks spent at zero balance earn nothing after funding."""
        apply_mint(state, BOB, GENESIS_HEIGHT + 50)
        state.account(ALICE).sire_balance -= units(100)
        state.account(BOB).sire_balance = units(100)
        assert apply_mint(state, BOB, GENESIS_HEIGHT + 51) == units("1.667")


class TestTruncation:
    def test_rounds_toward_zero(self, state):
        state.account(ALICE).sire_balance -= 1
        state.account(BOB).sire_balance = 1   # 1 wei of sire
        # 1 × 1 × 0.01667e18 / 1e18 < 1
        assert apply_mint(state, BOB, GENESIS_HEIGHT + 1) == 0

    def test_large_balance_exact(self, state):
        minted = apply_mint(state, ALICE, GENESIS_HEIGHT + 1)
        assert minted == units("555.66111")


class TestPending:
    def test_matches_mint(self, bob_holds_100):
        pending = pending_relic(bob_holds_100, BOB, GENESIS_HEIGHT + 7)
        assert pending == apply_mint(bob_holds_100, BOB, GENESIS_HEIGHT + 7)

    def test_unknown_account(self, state):
        assert pending_relic(state, BOB, GENESIS_HEIGHT + 7) == 0

    def test_does_not_mutate(self, bob_holds_100):
        pending_relic(bob_holds_100, BOB, GENESIS_HEIGHT + 7)
        assert bob_holds_100.last_mint_height(BOB) is None
        assert bob_holds_100.relic_supply == 0
