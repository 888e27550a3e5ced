"""
SQLite-based persistence layer for Sire ledger state.

Stores account balances, the global ledger counters, and committed
transaction receipts so that a node can recover state after restart.

Balances are 18-decimal wei integers and routinely exceed SQLite's
64-bit INTEGER range, so every amount column is TEXT holding a base-10
integer.

Usage:
    store = LedgerStore("data/sire.db")
    store.attach(ledger)            # persist after every commit
    ...
    state = store.restore_state()   # None on an empty database
"""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from typing import TYPE_CHECKING, Any

from sire_core.state import AccountState, LedgerState
from sire_core.tx_metadata import TransactionReceipt

if TYPE_CHECKING:
    from sire_core.contract import SireLedger

logger = logging.getLogger("sire_storage")

_GLOBAL_INT_FIELDS = (
    "genesis_height",
    "max_ether_cap",
    "exchange_rate",
    "yield_rate_per_block",
    "next_adjustment_height",
    "adjustment_period",
    "sire_supply",
    "relic_supply",
    "ether_collected",
    "last_height",
)


class LedgerStore:
    """Thin SQLite wrapper for persisting ledger state."""

    CURRENT_SCHEMA_VERSION = 1

    def __init__(self, db_path: str = "data/sire.db"):
        self.db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(db_path)
        self._conn.row_factory = sqlite3.Row
        # busy_timeout prevents "database is locked" under contention
        self._conn.execute("PRAGMA busy_timeout = 5000")
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA synchronous=NORMAL")
        self._create_tables()
        self._ensure_schema_version()
        logger.info(f"Storage opened: {db_path}")

    # ── schema ───────────────────────────────────────────────────

    def _create_tables(self) -> None:
        c = self._conn
        c.execute("""
            CREATE TABLE IF NOT EXISTS accounts (
                address          TEXT PRIMARY KEY,
                sire_balance     TEXT NOT NULL DEFAULT '0',
                relic_balance    TEXT NOT NULL DEFAULT '0',
                last_mint_height INTEGER
            )
        """)
        c.execute("""
            CREATE TABLE IF NOT EXISTS ledger_globals (
                name  TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
        """)
        c.execute("""
            CREATE TABLE IF NOT EXISTS receipts (
                tx_id        TEXT PRIMARY KEY,
                block_height INTEGER NOT NULL,
                tx_index     INTEGER NOT NULL,
                kind         TEXT NOT NULL,
                caller       TEXT NOT NULL,
                receipt_json TEXT NOT NULL
            )
        """)
        c.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                id      INTEGER PRIMARY KEY CHECK (id = 1),
                version INTEGER NOT NULL
            )
        """)
        c.commit()

    def _ensure_schema_version(self) -> None:
        row = self._conn.execute(
            "SELECT version FROM schema_version WHERE id = 1"
        ).fetchone()
        if row is None:
            self._conn.execute(
                "INSERT INTO schema_version (id, version) VALUES (1, ?)",
                (self.CURRENT_SCHEMA_VERSION,),
            )
            self._conn.commit()
        elif row["version"] > self.CURRENT_SCHEMA_VERSION:
            raise RuntimeError(
                f"Database schema v{row['version']} is newer than this software "
                f"(v{self.CURRENT_SCHEMA_VERSION}).  Upgrade Sire."
            )

    # ── state ────────────────────────────────────────────────────

    def snapshot_state(self, state: LedgerState) -> None:
        """Persist the full ledger state atomically.

        All writes are wrapped in a single transaction so a crash mid-write
        never leaves a half-updated snapshot.
        """
        c = self._conn
        try:
            c.execute("BEGIN IMMEDIATE")
            for addr, acc in state.accounts.items():
                c.execute(
                    """INSERT OR REPLACE INTO accounts
                       (address, sire_balance, relic_balance, last_mint_height)
                       VALUES (?, ?, ?, ?)""",
                    (addr, str(acc.sire_balance), str(acc.relic_balance),
                     acc.last_mint_height),
                )
            rows = [(name, str(getattr(state, name))) for name in _GLOBAL_INT_FIELDS]
            rows.append(("exchange_available", "1" if state.exchange_available else "0"))
            c.executemany(
                "INSERT OR REPLACE INTO ledger_globals (name, value) VALUES (?, ?)",
                rows,
            )
            c.execute("COMMIT")
        except Exception:
            c.execute("ROLLBACK")
            raise

    def restore_state(self) -> LedgerState | None:
        """Rebuild the ledger state, or return None if nothing was saved yet."""
        rows = self._conn.execute("SELECT name, value FROM ledger_globals").fetchall()
        if not rows:
            return None
        raw = {r["name"]: r["value"] for r in rows}
        values: dict[str, Any] = {name: int(raw[name]) for name in _GLOBAL_INT_FIELDS}
        values["exchange_available"] = raw.get("exchange_available") == "1"
        state = LedgerState(**values)
        for row in self.load_accounts():
            state.accounts[row["address"]] = AccountState(
                address=row["address"],
                sire_balance=int(row["sire_balance"]),
                relic_balance=int(row["relic_balance"]),
                last_mint_height=row["last_mint_height"],
            )
        logger.info(
            f"Restored ledger at height {state.last_height} "
            f"with {len(state.accounts)} accounts"
        )
        return state

    def load_accounts(self) -> list[dict[str, Any]]:
        rows = self._conn.execute("SELECT * FROM accounts ORDER BY address").fetchall()
        return [dict(r) for r in rows]

    # ── receipts ─────────────────────────────────────────────────

    def save_receipt(self, receipt: TransactionReceipt) -> None:
        """Store a receipt; ``sqlite3.IntegrityError`` if its tx_id is already stored."""
        with self._conn:
            self._conn.execute(
                """INSERT INTO receipts
                   (tx_id, block_height, tx_index, kind, caller, receipt_json)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (receipt.tx_id, receipt.block_height, receipt.tx_index,
                 receipt.kind.value, receipt.caller, json.dumps(receipt.to_dict())),
            )

    def load_receipts(self, block_height: int | None = None) -> list[dict[str, Any]]:
        """Receipt dicts in commit order, optionally for one block."""
        if block_height is not None:
            rows = self._conn.execute(
                "SELECT receipt_json FROM receipts WHERE block_height = ? ORDER BY tx_index",
                (block_height,),
            ).fetchall()
        else:
            rows = self._conn.execute(
                "SELECT receipt_json FROM receipts ORDER BY block_height, tx_index"
            ).fetchall()
        return [json.loads(r["receipt_json"]) for r in rows]

    def next_tx_index(self, block_height: int) -> int:
        """Intra-block index following the last stored receipt at *block_height*."""
        row = self._conn.execute(
            "SELECT MAX(tx_index) AS top FROM receipts WHERE block_height = ?",
            (block_height,),
        ).fetchone()
        return 0 if row["top"] is None else row["top"] + 1

    def get_receipt(self, tx_id: str) -> dict[str, Any] | None:
        row = self._conn.execute(
            "SELECT receipt_json FROM receipts WHERE tx_id = ?", (tx_id,)
        ).fetchone()
        return json.loads(row["receipt_json"]) if row else None

    # ── ledger hook ──────────────────────────────────────────────

    def attach(self, ledger: SireLedger) -> None:
        """Persist the genesis state now and every commit from here on."""
        self.snapshot_state(ledger.state)
        ledger.subscribe(self._on_commit)

    def _on_commit(self, ledger: SireLedger, receipt: TransactionReceipt) -> None:
        self.snapshot_state(ledger.state)
        self.save_receipt(receipt)

    # ── lifecycle ────────────────────────────────────────────────

    def close(self) -> None:
        self._conn.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
