"""
TOML-based configuration for Sire nodes.

Loads settings from a TOML file and/or environment variables.
Environment variables take precedence over file values.

Amounts are written in whole units as strings ("33333", "0.01667") and
converted to wei with ``sire_core.precision.units_to_wei`` when the
ledger is built, so no float rounding reaches the ledger.

Usage:
    from sire_core.config import load_config
    cfg = load_config("sire.toml")
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from sire_core.precision import (
    DEFAULT_ADJUSTMENT_PERIOD,
    DEFAULT_EXCHANGE_RATE,
    DEFAULT_GENESIS_ALLOCATION_UNITS,
    DEFAULT_MAX_ETHER_UNITS,
    DEFAULT_YIELD_RATE_UNITS,
)

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib  # type: ignore[import,no-redef]


@dataclass
class GenesisConfig:
    """
    Deterministic genesis state.

    ``creator`` receives ``allocation`` sire at block ``height``.  When
    ``creator`` is empty the node wallet's address is used.
    """
    creator: str = ""
    allocation: str = str(DEFAULT_GENESIS_ALLOCATION_UNITS)
    height: int = 0


@dataclass
class ExchangeConfig:
    """Bonding exchange settings."""
    rate: int = DEFAULT_EXCHANGE_RATE            # sire per ether
    max_ether: str = str(DEFAULT_MAX_ETHER_UNITS)
    enabled: bool = True


@dataclass
class AccrualConfig:
    """Relic yield settings."""
    rate_per_block: str = DEFAULT_YIELD_RATE_UNITS   # relic per sire per block


@dataclass
class ScheduleConfig:
    """Rate adjustment checkpoints."""
    adjustment_period: int = DEFAULT_ADJUSTMENT_PERIOD   # blocks
    policy: str = "scarcity"                             # "fixed" or "scarcity"


@dataclass
class ChainConfig:
    """Block production for a standalone node."""
    block_interval_seconds: float = 15.0


@dataclass
class WalletConfig:
    """Node wallet auto-generation and persistence.

    On first run the node generates a wallet and saves it, encrypted with
    the passphrase from ``SIRE_WALLET_PASSPHRASE``, to ``wallet_file``.
    """
    wallet_file: str = "data/wallet.json"
    auto_create: bool = True


@dataclass
class APIConfig:
    """REST API settings."""
    enabled: bool = True
    host: str = "127.0.0.1"
    port: int = 8545
    api_key: str = ""                 # require this key on POST endpoints (empty = no auth)
    rate_limit_rpm: int = 120          # max requests per minute per IP (0 = unlimited)
    cors_origins: list[str] = field(default_factory=list)  # allowed CORS origins (empty = no CORS)
    max_body_bytes: int = 65_536


@dataclass
class StorageConfig:
    """Persistence settings."""
    enabled: bool = False
    path: str = "data/sire.db"


@dataclass
class LoggingConfig:
    """Logging settings."""
    level: str = "INFO"
    format: str = "human"   # "human" or "json"
    file: str | None = None


@dataclass
class SireConfig:
    """Top-level configuration container."""
    genesis: GenesisConfig = field(default_factory=GenesisConfig)
    exchange: ExchangeConfig = field(default_factory=ExchangeConfig)
    accrual: AccrualConfig = field(default_factory=AccrualConfig)
    schedule: ScheduleConfig = field(default_factory=ScheduleConfig)
    chain: ChainConfig = field(default_factory=ChainConfig)
    wallet: WalletConfig = field(default_factory=WalletConfig)
    api: APIConfig = field(default_factory=APIConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _merge(dc: Any, raw: dict[str, Any]) -> None:
    """Merge a raw dict into a dataclass instance (in-place)."""
    for key, value in raw.items():
        key_under = key.replace("-", "_")
        if hasattr(dc, key_under):
            setattr(dc, key_under, value)


def load_config(path: str | None = None) -> SireConfig:
    """
    Load configuration from a TOML file, then overlay environment variables.

    Env-var mapping:
        SIRE_GENESIS_CREATOR -> genesis.creator
        SIRE_API_HOST        -> api.host
        SIRE_API_PORT        -> api.port
        SIRE_API_KEY         -> api.api_key
        SIRE_CORS_ORIGINS    -> api.cors_origins (comma-separated)
        SIRE_DB_PATH         -> storage.path     (also enables storage)
        SIRE_BLOCK_INTERVAL  -> chain.block_interval_seconds
        SIRE_RATE_POLICY     -> schedule.policy
        SIRE_LOG_LEVEL       -> logging.level
        SIRE_LOG_FMT         -> logging.format
    """
    cfg = SireConfig()

    # ── TOML file ────────────────────────────────────────────────
    if path is not None:
        p = Path(path)
        if p.exists():
            with open(p, "rb") as f:
                data = tomllib.load(f)
            for section_name, section_dc in [
                ("genesis", cfg.genesis),
                ("exchange", cfg.exchange),
                ("accrual", cfg.accrual),
                ("schedule", cfg.schedule),
                ("chain", cfg.chain),
                ("wallet", cfg.wallet),
                ("api", cfg.api),
                ("storage", cfg.storage),
                ("logging", cfg.logging),
            ]:
                if section_name in data:
                    _merge(section_dc, data[section_name])

    # ── Environment variable overrides ───────────────────────────
    if v := os.environ.get("SIRE_GENESIS_CREATOR"):
        cfg.genesis.creator = v
    if v := os.environ.get("SIRE_API_HOST"):
        cfg.api.host = v
    if v := os.environ.get("SIRE_API_PORT"):
        cfg.api.port = int(v)
    if v := os.environ.get("SIRE_API_KEY"):
        cfg.api.api_key = v
    if v := os.environ.get("SIRE_CORS_ORIGINS"):
        cfg.api.cors_origins = [o.strip() for o in v.split(",") if o.strip()]
    if v := os.environ.get("SIRE_DB_PATH"):
        cfg.storage.path = v
        cfg.storage.enabled = True
    if v := os.environ.get("SIRE_BLOCK_INTERVAL"):
        cfg.chain.block_interval_seconds = float(v)
    if v := os.environ.get("SIRE_RATE_POLICY"):
        cfg.schedule.policy = v
    if v := os.environ.get("SIRE_LOG_LEVEL"):
        cfg.logging.level = v.upper()
    if v := os.environ.get("SIRE_LOG_FMT"):
        cfg.logging.format = v

    return cfg
