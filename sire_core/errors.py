"""
Transaction failure kinds for the Sire ledger.

Every error aborts the whole transaction: the working copy of the
ledger state is discarded and nothing is committed.  ``code`` is the
stable identifier surfaced by the HTTP API.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for all transaction aborts."""

    code: str = "ledgerError"


class InsufficientBalance(LedgerError):
    code = "insufficientBalance"


class ExchangeCapExceeded(LedgerError):
    code = "exchangeCapExceeded"


class ExchangeUnavailable(LedgerError):
    code = "exchangeUnavailable"


class InvalidAmount(LedgerError):
    """Negative, non-integer or non-finite amount."""

    code = "invalidAmount"


class InvalidBlockHeight(LedgerError):
    """The platform supplied a height below one already sequenced."""

    code = "invalidBlockHeight"


class InvariantViolation(LedgerError):
    code = "invariantViolation"
