"""
Transaction receipts for Sire.

A receipt is produced for every committed call:
  - tx_id: deterministic hash of what was called, by whom, and where
  - result: the call's return value (sire minted, relic minted, ...)
  - balance_changes: per-account, per-asset balance deltas
  - rates_adjusted: whether the rate scheduler fired in this call

Receipts are built by diffing the committed state against the working
copy after the transaction succeeds, so they describe exactly what was
committed.
"""

from __future__ import annotations

import hashlib
import json
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from sire_core.state import Asset, LedgerState


class CallKind(Enum):
    DEPOSIT = "Deposit"
    TRANSFER = "Transfer"
    MINT = "Mint"


@dataclass
class BalanceChange:
    """Balance change for a single account and asset."""
    account: str
    asset: Asset
    previous_balance: int
    final_balance: int

    @property
    def delta(self) -> int:
        return self.final_balance - self.previous_balance

    def to_dict(self) -> dict:
        return {
            "account": self.account,
            "asset": self.asset.name.lower(),
            "previous_balance": str(self.previous_balance),
            "final_balance": str(self.final_balance),
            "delta": str(self.delta),
        }


@dataclass
class TransactionReceipt:
    """Full record of a single committed call."""
    tx_id: str
    kind: CallKind
    caller: str
    params: dict[str, Any]
    block_height: int
    tx_index: int
    result: Any = None
    balance_changes: list[BalanceChange] = field(default_factory=list)
    rates_adjusted: bool = False
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        result = self.result
        if isinstance(result, int) and not isinstance(result, bool):
            result = str(result)
        return {
            "tx_id": self.tx_id,
            "kind": self.kind.value,
            "caller": self.caller,
            "params": {k: _jsonable(v) for k, v in self.params.items()},
            "block_height": self.block_height,
            "tx_index": self.tx_index,
            "result": result,
            "balance_changes": [b.to_dict() for b in self.balance_changes],
            "rates_adjusted": self.rates_adjusted,
            "timestamp": self.timestamp,
        }


def _jsonable(value: Any) -> Any:
    if isinstance(value, Asset):
        return value.name.lower()
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


def compute_tx_id(kind: CallKind, caller: str, params: dict[str, Any],
                  height: int, tx_index: int) -> str:
    """sha256 over a canonical JSON encoding of the call."""
    payload = {
        "kind": kind.value,
        "caller": caller,
        "params": {k: _jsonable(v) for k, v in params.items()},
        "height": height,
        "index": tx_index,
    }
    blob = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(blob.encode()).hexdigest()


class ReceiptBuilder:
    """
    Collects the pre-transaction state and produces a TransactionReceipt
    once the working copy has been validated.
    """

    def __init__(self, kind: CallKind, caller: str, params: dict[str, Any],
                 height: int, tx_index: int):
        self._kind = kind
        self._caller = caller
        self._params = params
        self._height = height
        self._tx_index = tx_index
        self._before: LedgerState | None = None
        self._rates_adjusted = False

    def snapshot(self, state: LedgerState) -> None:
        """Record the committed state the call starts from."""
        self._before = state

    def set_rates_adjusted(self, fired: bool) -> None:
        self._rates_adjusted = fired

    def _balance_changes(self, after: LedgerState) -> list[BalanceChange]:
        changes: list[BalanceChange] = []
        for addr, acc in after.accounts.items():
            prev = self._before.peek(addr) if self._before is not None else None
            for asset in Asset:
                old = prev.balance(asset) if prev is not None else 0
                new = acc.balance(asset)
                if old != new:
                    changes.append(BalanceChange(addr, asset, old, new))
        return changes

    def build(self, after: LedgerState, result: Any) -> TransactionReceipt:
        return TransactionReceipt(
            tx_id=compute_tx_id(self._kind, self._caller, self._params,
                                self._height, self._tx_index),
            kind=self._kind,
            caller=self._caller,
            params=dict(self._params),
            block_height=self._height,
            tx_index=self._tx_index,
            result=result,
            balance_changes=self._balance_changes(after),
            rates_adjusted=self._rates_adjusted,
        )
