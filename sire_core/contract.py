"""
The Sire ledger contract.

``SireLedger`` is the one entry point for every read and write the
outside world performs.  Each write is a single atomic transaction:

  1. take the block height from the platform clock
  2. copy the committed ``LedgerState``
  3. run the rate scheduler (deposit / mint only) and the operation
     against the copy, which validates everything before mutating
  4. verify ledger invariants on the copy
  5. commit the copy, record a receipt
  6. only then notify listeners (persistence, API observers)

Any ``LedgerError`` raised in steps 3–4 discards the copy, so a
rejected call leaves no trace.  Listeners run after the commit, so a
listener that calls back into the ledger always sees settled balances.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, Optional

from sire_core.accrual import apply_mint, pending_relic
from sire_core.blocks import BlockClock
from sire_core.errors import InvalidBlockHeight, InvariantViolation, LedgerError
from sire_core.exchange import apply_deposit, quote_deposit
from sire_core.invariants import InvariantChecker
from sire_core.precision import (
    DEFAULT_ADJUSTMENT_PERIOD,
    DEFAULT_EXCHANGE_RATE,
    DEFAULT_GENESIS_ALLOCATION,
    DEFAULT_MAX_ETHER_CAP,
    DEFAULT_YIELD_RATE,
    units_to_wei,
)
from sire_core.scheduler import RatePolicy, make_policy, maybe_fire
from sire_core.state import Asset, LedgerState
from sire_core.transfer import apply_transfer
from sire_core.tx_metadata import CallKind, ReceiptBuilder, TransactionReceipt

if TYPE_CHECKING:
    from sire_core.config import SireConfig

logger = logging.getLogger("sire_ledger")

Listener = Callable[["SireLedger", TransactionReceipt], None]


class SireLedger:
    """Atomic, block-ordered front end over a ``LedgerState``."""

    def __init__(
        self,
        state: LedgerState,
        clock: BlockClock,
        policy: RatePolicy,
        *,
        next_tx_index: int = 0,
    ):
        self.state = state
        self.clock = clock
        self.policy = policy
        self.history: list[TransactionReceipt] = []
        self._receipts: dict[str, TransactionReceipt] = {}
        self._listeners: list[Listener] = []
        self._checker = InvariantChecker()
        self._index_height = state.last_height
        self._next_index = next_tx_index

    @classmethod
    def create(
        cls,
        creator: str,
        clock: BlockClock,
        *,
        allocation: int = DEFAULT_GENESIS_ALLOCATION,
        max_ether_cap: int = DEFAULT_MAX_ETHER_CAP,
        exchange_rate: int = DEFAULT_EXCHANGE_RATE,
        yield_rate_per_block: int = DEFAULT_YIELD_RATE,
        adjustment_period: int = DEFAULT_ADJUSTMENT_PERIOD,
        exchange_available: bool = True,
        policy: str = "scarcity",
    ) -> SireLedger:
        """Genesis at the clock's current height."""
        state = LedgerState.genesis(
            creator,
            allocation,
            height=clock.current_height(),
            max_ether_cap=max_ether_cap,
            exchange_rate=exchange_rate,
            yield_rate_per_block=yield_rate_per_block,
            adjustment_period=adjustment_period,
            exchange_available=exchange_available,
        )
        logger.info(
            f"Genesis at height {state.genesis_height}: "
            f"{allocation} sire to {creator}, policy={policy}"
        )
        return cls(state, clock, make_policy(policy, exchange_rate, yield_rate_per_block))

    @classmethod
    def from_config(cls, cfg: SireConfig, clock: BlockClock, creator: str = "") -> SireLedger:
        """Genesis from the [genesis], [exchange], [accrual] and [schedule] sections."""
        creator = cfg.genesis.creator or creator
        if not creator:
            raise ValueError("No genesis creator configured")
        if clock.current_height() < cfg.genesis.height:
            clock.set_height(cfg.genesis.height)
        return cls.create(
            creator,
            clock,
            allocation=_units(cfg.genesis.allocation),
            max_ether_cap=_units(cfg.exchange.max_ether),
            exchange_rate=int(cfg.exchange.rate),
            yield_rate_per_block=_units(cfg.accrual.rate_per_block),
            adjustment_period=int(cfg.schedule.adjustment_period),
            exchange_available=bool(cfg.exchange.enabled),
            policy=cfg.schedule.policy,
        )

    # ── listeners ───────────────────────────────────────────────────

    def subscribe(self, listener: Listener) -> None:
        """Call *listener(ledger, receipt)* after every committed transaction."""
        self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        self._listeners.remove(listener)

    # ── reads ───────────────────────────────────────────────────────

    def balance_of(self, asset: Asset | str, account: str) -> int:
        return self.state.balance_of(Asset.parse(asset), account)

    def total_supply(self, asset: Asset | str) -> int:
        return self.state.total_supply(Asset.parse(asset))

    def ether_collected(self) -> int:
        return self.state.ether_collected

    def max_ether_cap(self) -> int:
        return self.state.max_ether_cap

    def exchange_available(self) -> bool:
        return self.state.exchange_available

    def exchange_rate(self) -> int:
        return self.state.exchange_rate

    def yield_rate_per_block(self) -> int:
        return self.state.yield_rate_per_block

    def next_adjustment_height(self) -> int:
        return self.state.next_adjustment_height

    def last_mint_height(self, account: str) -> Optional[int]:
        return self.state.last_mint_height(account)

    def current_height(self) -> int:
        return self.clock.current_height()

    def pending_relic(self, account: str) -> int:
        """Relic *account* would receive by minting now (at current rates)."""
        return pending_relic(self.state, account, self.clock.current_height())

    def quote_deposit(self, value: int) -> int:
        return quote_deposit(self.state, value)

    def get_receipt(self, tx_id: str) -> Optional[TransactionReceipt]:
        return self._receipts.get(tx_id)

    # ── writes ──────────────────────────────────────────────────────

    def deposit(self, sender: str, value: int) -> int:
        """Exchange *value* wei of ether for sire.  Returns sire minted."""
        receipt = self._execute(
            CallKind.DEPOSIT, sender, {"value": value},
            lambda st, h: apply_deposit(st, sender, value),
            adjust_rates=True,
        )
        return receipt.result

    def transfer(self, asset: Asset | str, sender: str, destination: str, amount: int) -> bool:
        """Move *amount* of *asset* from *sender* to *destination*."""
        asset = Asset.parse(asset)
        receipt = self._execute(
            CallKind.TRANSFER, sender,
            {"asset": asset, "destination": destination, "amount": amount},
            lambda st, h: apply_transfer(st, asset, sender, destination, amount),
        )
        return receipt.result

    def mint(self, caller: str, target: str) -> int:
        """Accrue relic for *target* (any caller may do this).  Returns relic minted."""
        receipt = self._execute(
            CallKind.MINT, caller, {"target": target},
            lambda st, h: apply_mint(st, target, h),
            adjust_rates=True,
        )
        return receipt.result

    # ── transaction engine ──────────────────────────────────────────

    def _tx_index_for(self, height: int) -> int:
        if height != self._index_height:
            return 0
        return self._next_index

    def _execute(
        self,
        kind: CallKind,
        caller: str,
        params: dict[str, Any],
        operation: Callable[[LedgerState, int], Any],
        *,
        adjust_rates: bool = False,
    ) -> TransactionReceipt:
        height = self.clock.current_height()
        committed = self.state
        try:
            if height < committed.last_height:
                raise InvalidBlockHeight(
                    f"Height {height} is below last sequenced height {committed.last_height}"
                )
            tx_index = self._tx_index_for(height)
            builder = ReceiptBuilder(kind, caller, params, height, tx_index)
            builder.snapshot(committed)

            working = committed.copy()
            self._checker.capture(committed)
            if adjust_rates:
                builder.set_rates_adjusted(maybe_fire(working, height, self.policy))
            result = operation(working, height)
            working.last_height = height

            ok, msg = self._checker.verify(working)
            if not ok:
                raise InvariantViolation(msg)
        except LedgerError as exc:
            logger.warning(
                f"{kind.value} by {caller} rejected at height {height}: "
                f"{exc.code}: {exc}"
            )
            raise

        # Commit
        self.state = working
        self._index_height = height
        self._next_index = tx_index + 1
        receipt = builder.build(working, result)
        self.history.append(receipt)
        self._receipts[receipt.tx_id] = receipt
        logger.info(
            f"{kind.value} by {caller} committed at height {height}#{tx_index}: "
            f"result={result}"
        )

        for listener in list(self._listeners):
            try:
                listener(self, receipt)
            except Exception:
                logger.exception(f"Listener failed for tx {receipt.tx_id}")
        return receipt


def _units(value: Any) -> int:
    """Whole units from config (TOML may hand us a float) to wei."""
    if isinstance(value, float):
        value = repr(value)
    return units_to_wei(value)


def policy_from_config(cfg: SireConfig) -> RatePolicy:
    """Rate policy seeded with the configured genesis rates."""
    return make_policy(
        cfg.schedule.policy,
        int(cfg.exchange.rate),
        _units(cfg.accrual.rate_per_block),
    )
