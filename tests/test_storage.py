"""
Tests for SQLite persistence layer (storage.py).

Covers:
  - Schema creation and version guard
  - snapshot_state / restore_state roundtrip (values beyond 64 bits)
  - Receipt persistence
  - attach(): persistence driven by ledger commits
  - Context manager lifecycle
"""

from __future__ import annotations

import sqlite3

import pytest

from sire_core.blocks import BlockClock
from sire_core.contract import SireLedger
from sire_core.scheduler import FixedRatePolicy
from sire_core.state import Asset
from sire_core.storage import LedgerStore

from conftest import ALICE, BOB, GENESIS_HEIGHT, units


@pytest.fixture
def store(tmp_path):
    """Fresh LedgerStore in a temp directory."""
    s = LedgerStore(str(tmp_path / "test.db"))
    yield s
    s.close()


# ═══════════════════════════════════════════════════════════════════
#  Schema
# ═══════════════════════════════════════════════════════════════════

class TestSchema:
    def test_tables_created(self, store):
        rows = store._conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table'"
        ).fetchall()
        names = {r["name"] for r in rows}
        assert {"accounts", "ledger_globals", "receipts", "schema_version"} <= names

    def test_schema_version_recorded(self, store):
        row = store._conn.execute("SELECT version FROM schema_version").fetchone()
        assert row["version"] == LedgerStore.CURRENT_SCHEMA_VERSION

    def test_newer_schema_refused(self, tmp_path):
        path = str(tmp_path / "future.db")
        LedgerStore(path).close()
        conn = sqlite3.connect(path)
        conn.execute("UPDATE schema_version SET version = 99")
        conn.commit()
        conn.close()
        with pytest.raises(RuntimeError, match="newer"):
            LedgerStore(path)

    def test_creates_parent_directory(self, tmp_path):
        path = tmp_path / "nested" / "dir" / "sire.db"
        LedgerStore(str(path)).close()
        assert path.exists()


# ═══════════════════════════════════════════════════════════════════
#  State roundtrip
# ═══════════════════════════════════════════════════════════════════

class TestStateRoundtrip:
    def test_empty_db(self, store):
        assert store.restore_state() is None

    def test_roundtrip(self, store, state):
        state.account(BOB).relic_balance = units("1.667")
        state.relic_supply = units("1.667")
        state.account(BOB).last_mint_height = GENESIS_HEIGHT + 1
        state.ether_collected = units(3)
        state.exchange_available = False
        store.snapshot_state(state)

        restored = store.restore_state()
        assert restored.summary() == state.summary()
        assert restored.balance_of(Asset.SIRE, ALICE) == units(33_333)
        assert restored.balance_of(Asset.RELIC, BOB) == units("1.667")
        assert restored.last_mint_height(BOB) == GENESIS_HEIGHT + 1
        assert restored.last_mint_height(ALICE) is None
        assert restored.exchange_available is False

    def test_values_beyond_sqlite_integer(self, store, state):
        assert state.sire_supply > 2**63
        store.snapshot_state(state)
        assert store.restore_state().sire_supply == units(33_333)

    def test_snapshot_overwrites(self, store, state):
        store.snapshot_state(state)
        state.account(ALICE).sire_balance -= 5
        state.account(BOB).sire_balance = 5
        store.snapshot_state(state)
        restored = store.restore_state()
        assert restored.balance_of(Asset.SIRE, BOB) == 5
        assert len(store.load_accounts()) == 2


# ═══════════════════════════════════════════════════════════════════
#  Ledger integration
# ═══════════════════════════════════════════════════════════════════

class TestAttach:
    def test_commits_are_persisted(self, store, ledger):
        store.attach(ledger)
        ledger.deposit(BOB, units(1))
        ledger.clock.advance()
        ledger.mint(BOB, BOB)

        restored = store.restore_state()
        assert restored.balance_of(Asset.SIRE, BOB) == units(1000)
        assert restored.relic_supply == units("16.67")
        assert restored.last_height == GENESIS_HEIGHT + 1

        receipts = store.load_receipts()
        assert [r["kind"] for r in receipts] == ["Deposit", "Mint"]
        assert store.get_receipt(ledger.history[0].tx_id)["result"] == str(units(1000))

    def test_genesis_persisted_on_attach(self, store, ledger):
        store.attach(ledger)
        assert store.restore_state().sire_supply == units(33_333)

    def test_rejected_call_not_persisted(self, store, ledger):
        store.attach(ledger)
        with pytest.raises(Exception):
            ledger.transfer("sire", BOB, ALICE, 1)
        assert store.load_receipts() == []

    def test_restored_ledger_continues(self, store, ledger):
        store.attach(ledger)
        ledger.transfer("sire", ALICE, BOB, units(100))

        state = store.restore_state()
        resumed = SireLedger(state, BlockClock(state.last_height + 1), FixedRatePolicy())
        assert resumed.mint(BOB, BOB) == units("1.667")

    def test_receipts_by_block(self, store, ledger):
        store.attach(ledger)
        ledger.deposit(BOB, 1)
        ledger.clock.advance()
        ledger.deposit(BOB, 2)
        assert len(store.load_receipts(GENESIS_HEIGHT)) == 1
        assert len(store.load_receipts(GENESIS_HEIGHT + 1)) == 1
        assert store.get_receipt("ff" * 32) is None

    def test_next_tx_index(self, store, ledger):
        assert store.next_tx_index(GENESIS_HEIGHT) == 0
        store.attach(ledger)
        ledger.deposit(BOB, 1)
        ledger.deposit(BOB, 1)
        assert store.next_tx_index(GENESIS_HEIGHT) == 2
        assert store.next_tx_index(GENESIS_HEIGHT + 1) == 0

    def test_duplicate_receipt_refused(self, store, ledger):
        store.attach(ledger)
        ledger.deposit(BOB, 1)
        receipt = ledger.history[-1]
        with pytest.raises(sqlite3.IntegrityError):
            store.save_receipt(receipt)
        assert len(store.load_receipts()) == 1

        ledger.deposit(BOB, 1)
        assert len(store.load_receipts()) == 2
        assert store.restore_state().ether_collected == 2

    def test_resume_in_same_block_keeps_every_receipt(self, store, ledger):
        store.attach(ledger)
        ledger.transfer("sire", ALICE, BOB, units(1))
        ledger.transfer("sire", ALICE, BOB, units(1))

        state = store.restore_state()
        resumed = SireLedger(
            state,
            BlockClock(state.last_height),
            FixedRatePolicy(),
            next_tx_index=store.next_tx_index(state.last_height),
        )
        store.attach(resumed)
        resumed.transfer("sire", ALICE, BOB, units(1))

        receipts = store.load_receipts(GENESIS_HEIGHT)
        assert [r["tx_index"] for r in receipts] == [0, 1, 2]
        assert len({r["tx_id"] for r in receipts}) == 3
        assert resumed.balance_of("sire", BOB) == units(3)


class TestLifecycle:
    def test_context_manager(self, tmp_path, state):
        path = str(tmp_path / "ctx.db")
        with LedgerStore(path) as s:
            s.snapshot_state(state)
        with LedgerStore(path) as s:
            assert s.restore_state().sire_supply == state.sire_supply
