"""
Sire - a two-asset ledger with an ether bonding exchange and block-based yield.

Key features:
- Sire bought with ether at a fixed rate, up to a hard cap
- Relic accrued per block in proportion to sire held
- Checkpoint rate adjustment with pluggable policies
- Atomic, invariant-checked transactions with receipts
- SQLite persistence and a signed-call REST API
"""

__version__ = "0.1.0"
__all__ = [
    "precision",
    "errors",
    "state",
    "exchange",
    "transfer",
    "accrual",
    "scheduler",
    "invariants",
    "tx_metadata",
    "blocks",
    "contract",
    "config",
    "wallet",
    "storage",
    "api",
    "logging_config",
]
