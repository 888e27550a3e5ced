#!/usr/bin/env python3
"""
Sire Node Runner — hosts a single Sire ledger with:
  - a block clock that advances on a timer
  - optional SQLite persistence (restore on start, snapshot per commit)
  - the REST API for reads and signed writes

Usage:
    python run_ledger.py --config sire.toml
    python run_ledger.py --genesis-creator 0xabc... --api-port 8545 --db data/sire.db

Environment variables (alternative to flags):
    SIRE_GENESIS_CREATOR, SIRE_API_HOST, SIRE_API_PORT, SIRE_DB_PATH,
    SIRE_BLOCK_INTERVAL, SIRE_RATE_POLICY, SIRE_LOG_LEVEL, SIRE_LOG_FMT,
    SIRE_WALLET_PASSPHRASE
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import os
import sys
from pathlib import Path

# ---------------------------------------------------------------------------
# Ensure the project root is in sys.path so imports work before pip install
# ---------------------------------------------------------------------------
PROJECT_ROOT = os.path.dirname(os.path.abspath(__file__))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from sire_core.api import APIServer  # noqa: E402
from sire_core.blocks import BlockClock  # noqa: E402
from sire_core.config import SireConfig, load_config  # noqa: E402
from sire_core.contract import SireLedger, policy_from_config  # noqa: E402
from sire_core.logging_config import setup_logging  # noqa: E402
from sire_core.storage import LedgerStore  # noqa: E402
from sire_core.wallet import Wallet  # noqa: E402

logger = logging.getLogger("sire_node")


# ===================================================================
#  Sire Node
# ===================================================================

class SireNode:
    """Ledger, block clock, persistence and API wired together."""

    def __init__(self, config: SireConfig):
        self.config = config
        self.wallet = load_node_wallet(config)
        self.store: LedgerStore | None = None
        self.ledger: SireLedger | None = None
        self._api: APIServer | None = None
        self._bg_tasks: list[asyncio.Task] = []

    # ---- lifecycle ----

    def open_ledger(self) -> SireLedger:
        """Restore the ledger from storage, or run genesis."""
        cfg = self.config
        if cfg.storage.enabled:
            self.store = LedgerStore(cfg.storage.path)
            state = self.store.restore_state()
            if state is not None:
                ledger = SireLedger(
                    state,
                    BlockClock(state.last_height),
                    policy_from_config(cfg),
                    next_tx_index=self.store.next_tx_index(state.last_height),
                )
                self.store.attach(ledger)
                self.ledger = ledger
                return ledger

        ledger = SireLedger.from_config(
            cfg, BlockClock(cfg.genesis.height), creator=self.wallet.address,
        )
        if self.store is not None:
            self.store.attach(ledger)
        self.ledger = ledger
        return ledger

    async def start(self) -> None:
        ledger = self.open_ledger()
        self._bg_tasks.append(asyncio.create_task(self._block_loop()))

        if self.config.api.enabled:
            self._api = APIServer(
                ledger,
                host=self.config.api.host,
                port=self.config.api.port,
                api_config=self.config.api,
            )
            await self._api.start()

        logger.info(
            f"Node started | wallet={self.wallet.address} | "
            f"height={ledger.current_height()} | policy={ledger.policy.name}"
        )

    async def stop(self) -> None:
        for task in self._bg_tasks:
            task.cancel()
        for task in self._bg_tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if self._api is not None:
            await self._api.stop()
        if self.store is not None:
            if self.ledger is not None:
                self.store.snapshot_state(self.ledger.state)
            self.store.close()

    async def _block_loop(self) -> None:
        interval = self.config.chain.block_interval_seconds
        while True:
            await asyncio.sleep(interval)
            height = self.ledger.clock.advance()
            logger.debug(f"Block {height}")


def load_node_wallet(config: SireConfig) -> Wallet:
    """Load the node wallet, creating and saving one on first run."""
    path = config.wallet.wallet_file
    passphrase = os.environ.get("SIRE_WALLET_PASSPHRASE", "")
    if Path(path).exists():
        if not passphrase:
            raise SystemExit(f"Wallet {path} exists; set SIRE_WALLET_PASSPHRASE to unlock it")
        return Wallet.load(path, passphrase)
    if not config.wallet.auto_create:
        raise SystemExit(f"Wallet {path} not found and auto_create is disabled")

    wallet = Wallet.create()
    if passphrase:
        wallet.save(path, passphrase)
        logger.info(f"Created wallet {wallet.address} -> {path}")
    else:
        logger.warning(
            f"Created ephemeral wallet {wallet.address}; "
            "set SIRE_WALLET_PASSPHRASE to persist it"
        )
    return wallet


# ===================================================================
#  Main entry point
# ===================================================================

def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Sire ledger node")
    p.add_argument("--config", default=None, help="Path to sire.toml config file")
    p.add_argument("--genesis-creator", default=None,
                   help="Address receiving the genesis allocation (default: node wallet)")
    p.add_argument("--api-host", default=None, help="API listen host")
    p.add_argument("--api-port", type=int, default=None, help="API listen port")
    p.add_argument("--no-api", action="store_true", help="Run without the REST API")
    p.add_argument("--db", default=None, help="SQLite path (enables persistence)")
    p.add_argument("--block-interval", type=float, default=None,
                   help="Seconds between blocks")
    p.add_argument("--policy", default=None, choices=["fixed", "scarcity"],
                   help="Rate adjustment policy")
    p.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING, ...")
    return p.parse_args(argv)


def build_config(args: argparse.Namespace) -> SireConfig:
    """Config file and env vars, then CLI flags on top."""
    cfg = load_config(args.config)
    if args.genesis_creator:
        cfg.genesis.creator = args.genesis_creator
    if args.api_host:
        cfg.api.host = args.api_host
    if args.api_port is not None:
        cfg.api.port = args.api_port
    if args.no_api:
        cfg.api.enabled = False
    if args.db:
        cfg.storage.path = args.db
        cfg.storage.enabled = True
    if args.block_interval is not None:
        cfg.chain.block_interval_seconds = args.block_interval
    if args.policy:
        cfg.schedule.policy = args.policy
    if args.log_level:
        cfg.logging.level = args.log_level.upper()
    return cfg


async def main(argv: list[str] | None = None) -> None:
    cfg = build_config(parse_args(argv))
    setup_logging(cfg.logging.level, cfg.logging.format, cfg.logging.file)

    node = SireNode(cfg)
    await node.start()
    try:
        while True:
            await asyncio.sleep(3600)
    except asyncio.CancelledError:
        pass
    finally:
        await node.stop()


def main_sync() -> None:
    """Synchronous entry point for console_scripts."""
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(main())


if __name__ == "__main__":
    main_sync()
