"""Tests for sire and relic transfers."""

import pytest

from sire_core.errors import InsufficientBalance, InvalidAmount
from sire_core.state import Asset
from sire_core.transfer import apply_transfer

from conftest import ALICE, BOB, CAROL, units


class TestSireTransfer:
    def test_moves_balance(self, state):
        assert apply_transfer(state, Asset.SIRE, ALICE, BOB, units(100)) is True
        assert state.balance_of(Asset.SIRE, ALICE) == units(33_233)
        assert state.balance_of(Asset.SIRE, BOB) == units(100)

    def test_supply_unchanged(self, state):
        apply_transfer(state, Asset.SIRE, ALICE, BOB, units(100))
        assert state.total_supply(Asset.SIRE) == units(33_333)

    def test_accepts_asset_name(self, state):
        apply_transfer(state, "sire", ALICE, BOB, 1)
        assert state.balance_of(Asset.SIRE, BOB) == 1

    def test_whole_balance(self, state):
        apply_transfer(state, Asset.SIRE, ALICE, BOB, units(33_333))
        assert state.balance_of(Asset.SIRE, ALICE) == 0

    def test_insufficient_balance(self, state):
        with pytest.raises(InsufficientBalance, match="sire"):
            apply_transfer(state, Asset.SIRE, ALICE, BOB, units(33_333) + 1)
        assert state.balance_of(Asset.SIRE, ALICE) == units(33_333)
        assert state.peek(BOB) is None

    def test_unknown_sender(self, state):
        with pytest.raises(InsufficientBalance):
            apply_transfer(state, Asset.SIRE, CAROL, BOB, 1)

    def test_negative_amount(self, state):
        with pytest.raises(InvalidAmount):
            apply_transfer(state, Asset.SIRE, ALICE, BOB, -5)


class TestRelicTransfer:
    def test_moves_relic_only(self, state):
        state.account(ALICE).relic_balance = units(2)
        state.relic_supply = units(2)
        apply_transfer(state, Asset.RELIC, ALICE, BOB, units(1))
        assert state.balance_of(Asset.RELIC, ALICE) == units(1)
        assert state.balance_of(Asset.RELIC, BOB) == units(1)
        assert state.balance_of(Asset.SIRE, ALICE) == units(33_333)

    def test_no_relic_yet(self, state):
        with pytest.raises(InsufficientBalance, match="relic"):
            apply_transfer(state, Asset.RELIC, ALICE, BOB, 1)


class TestEdgeCases:
    def test_self_transfer_keeps_balance(self, state):
        apply_transfer(state, Asset.SIRE, ALICE, ALICE, units(10))
        assert state.balance_of(Asset.SIRE, ALICE) == units(33_333)

    def test_self_transfer_still_checks_balance(self, state):
        with pytest.raises(InsufficientBalance):
            apply_transfer(state, Asset.SIRE, ALICE, ALICE, units(40_000))

    def test_zero_transfer(self, state):
        apply_transfer(state, Asset.SIRE, ALICE, BOB, 0)
        assert state.balance_of(Asset.SIRE, BOB) == 0


# ═══════════════════════════════════════════════════════════════════
#  Conservation over mixed sequences
# ═══════════════════════════════════════════════════════════════════

def _sums(state):
    sire = sum(acc.sire_balance for acc in state.accounts.values())
    relic = sum(acc.relic_balance for acc in state.accounts.values())
    return sire, relic


class TestConservation:
    STEPS = [
        (Asset.SIRE, ALICE, BOB, units(100)),
        (Asset.RELIC, ALICE, CAROL, units(3)),
        (Asset.SIRE, BOB, BOB, units(50)),
        (Asset.RELIC, CAROL, CAROL, 0),
        (Asset.SIRE, CAROL, ALICE, 0),
        (Asset.SIRE, BOB, CAROL, units(100)),
        (Asset.RELIC, CAROL, BOB, units(3) + 1),
        (Asset.RELIC, CAROL, BOB, units(2)),
        (Asset.SIRE, CAROL, ALICE, units(60)),
        (Asset.SIRE, BOB, ALICE, 1),
        (Asset.RELIC, BOB, ALICE, units(2)),
    ]

    def test_supply_matches_balances_after_every_step(self, state):
        state.account(ALICE).relic_balance = units(5)
        state.relic_supply = units(5)
        supplies = (state.sire_supply, state.relic_supply)

        failures = 0
        for asset, sender, to, amount in self.STEPS:
            try:
                apply_transfer(state, asset, sender, to, amount)
            except InsufficientBalance:
                failures += 1
            assert _sums(state) == supplies
            assert (state.sire_supply, state.relic_supply) == supplies
            assert all(acc.sire_balance >= 0 and acc.relic_balance >= 0
                       for acc in state.accounts.values())

        assert failures == 2
        assert state.balance_of(Asset.SIRE, ALICE) == units(33_293)
        assert state.balance_of(Asset.SIRE, CAROL) == units(40)
        assert state.balance_of(Asset.RELIC, ALICE) == units(4)
        assert state.balance_of(Asset.RELIC, CAROL) == units(1)
