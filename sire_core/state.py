"""
Ledger state for Sire.

``LedgerState`` is the single authoritative record of every account
balance and every global counter.  It is an explicit value: operations
receive it as an argument and mutate it, and the ``SireLedger`` facade
hands them a ``copy()`` so a rejected transaction leaves the committed
state untouched.

Both assets are addressed through the closed ``Asset`` enumeration so
that transfer logic is written once and parameterised by the balance
field it touches.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from enum import IntEnum
from typing import Optional

from sire_core.errors import InvalidAmount


# ── Assets ──────────────────────────────────────────────────────────────

class Asset(IntEnum):
    SIRE = 0    # primary asset, bought with ether
    RELIC = 1   # secondary asset, accrued by holding sire

    @property
    def balance_field(self) -> str:
        return _BALANCE_FIELDS[self]

    @property
    def supply_field(self) -> str:
        return _SUPPLY_FIELDS[self]

    @classmethod
    def parse(cls, value: str | int | Asset) -> Asset:
        """Accept ``Asset``, its integer value, or a case-insensitive name."""
        if isinstance(value, Asset):
            return value
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError:
                raise ValueError(f"Unknown asset: {value!r}")
        return cls(value)


_BALANCE_FIELDS: dict[Asset, str] = {
    Asset.SIRE: "sire_balance",
    Asset.RELIC: "relic_balance",
}

_SUPPLY_FIELDS: dict[Asset, str] = {
    Asset.SIRE: "sire_supply",
    Asset.RELIC: "relic_supply",
}


def check_amount(amount: object, name: str = "amount") -> int:
    """Return *amount* if it is a non-negative int, else raise ``InvalidAmount``."""
    if isinstance(amount, bool) or not isinstance(amount, int):
        if isinstance(amount, float) and not math.isfinite(amount):
            raise InvalidAmount(f"{name} must be finite, got {amount}")
        raise InvalidAmount(f"{name} must be an integer wei amount, got {amount!r}")
    if amount < 0:
        raise InvalidAmount(f"{name} must be non-negative, got {amount}")
    return amount


# ── Accounts ────────────────────────────────────────────────────────────

@dataclass
class AccountState:
    """Per-address balances and the relic accrual cursor."""
    address: str
    sire_balance: int = 0
    relic_balance: int = 0
    last_mint_height: Optional[int] = None   # None = never minted

    def balance(self, asset: Asset) -> int:
        return getattr(self, asset.balance_field)

    def set_balance(self, asset: Asset, value: int) -> None:
        setattr(self, asset.balance_field, value)

    def to_dict(self) -> dict:
        return {
            "address": self.address,
            "sire_balance": self.sire_balance,
            "relic_balance": self.relic_balance,
            "last_mint_height": self.last_mint_height,
        }


# ── Ledger ──────────────────────────────────────────────────────────────

@dataclass
class LedgerState:
    """Global ledger record.  Mutated only by the transaction modules."""
    genesis_height: int
    max_ether_cap: int
    exchange_rate: int
    yield_rate_per_block: int
    next_adjustment_height: int
    adjustment_period: int
    exchange_available: bool = True
    sire_supply: int = 0
    relic_supply: int = 0
    ether_collected: int = 0
    last_height: int = 0
    accounts: dict[str, AccountState] = field(default_factory=dict)

    @classmethod
    def genesis(
        cls,
        creator: str,
        allocation: int,
        *,
        height: int,
        max_ether_cap: int,
        exchange_rate: int,
        yield_rate_per_block: int,
        adjustment_period: int,
        exchange_available: bool = True,
    ) -> LedgerState:
        """Create the one-and-only genesis state with *allocation* sire for *creator*."""
        check_amount(allocation, "allocation")
        if adjustment_period <= 0:
            raise ValueError("adjustment_period must be positive")
        if exchange_rate <= 0 or yield_rate_per_block <= 0:
            raise ValueError("rates must be positive")
        state = cls(
            genesis_height=height,
            max_ether_cap=max_ether_cap,
            exchange_rate=exchange_rate,
            yield_rate_per_block=yield_rate_per_block,
            next_adjustment_height=height + adjustment_period,
            adjustment_period=adjustment_period,
            exchange_available=exchange_available,
            last_height=height,
        )
        state.account(creator).sire_balance = allocation
        state.sire_supply = allocation
        return state

    # ── accounts ────────────────────────────────────────────────────

    def account(self, address: str) -> AccountState:
        """Return the account for *address*, creating an empty one lazily."""
        acc = self.accounts.get(address)
        if acc is None:
            acc = AccountState(address=address)
            self.accounts[address] = acc
        return acc

    def peek(self, address: str) -> Optional[AccountState]:
        """Return the account without creating it."""
        return self.accounts.get(address)

    # ── reads ───────────────────────────────────────────────────────

    def balance_of(self, asset: Asset, address: str) -> int:
        acc = self.accounts.get(address)
        return acc.balance(asset) if acc is not None else 0

    def total_supply(self, asset: Asset) -> int:
        return getattr(self, asset.supply_field)

    def last_mint_height(self, address: str) -> Optional[int]:
        acc = self.accounts.get(address)
        return acc.last_mint_height if acc is not None else None

    # ── copying ─────────────────────────────────────────────────────

    def copy(self) -> LedgerState:
        """Independent working copy for one transaction."""
        return replace(
            self,
            accounts={addr: replace(acc) for addr, acc in self.accounts.items()},
        )

    def summary(self) -> dict:
        return {
            "genesis_height": self.genesis_height,
            "last_height": self.last_height,
            "accounts": len(self.accounts),
            "sire_supply": self.sire_supply,
            "relic_supply": self.relic_supply,
            "ether_collected": self.ether_collected,
            "max_ether_cap": self.max_ether_cap,
            "exchange_available": self.exchange_available,
            "exchange_rate": self.exchange_rate,
            "yield_rate_per_block": self.yield_rate_per_block,
            "next_adjustment_height": self.next_adjustment_height,
            "adjustment_period": self.adjustment_period,
        }
