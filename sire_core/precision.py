"""
Precision constants and helpers for Sire.

Sire and relic both use 18 decimal places, matching ether's wei model:

    1 SIRE = 1,000,000,000,000,000,000 wei (smallest indivisible unit)

All ledger arithmetic is integer arithmetic on wei.  Conversion from
whole units happens only at the edges (configuration, tests).
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation

# Number of decimal places for sire, relic and ether amounts.
SIRE_DECIMALS: int = 18

# Smallest representable unit: 1 wei = 0.000000000000000001 SIRE.
WEI_PER_UNIT: int = 10 ** SIRE_DECIMALS

# Genesis defaults.
DEFAULT_GENESIS_ALLOCATION_UNITS: int = 33_333
DEFAULT_EXCHANGE_RATE: int = 1000             # sire per ether
DEFAULT_YIELD_RATE_UNITS: str = "0.01667"     # relic per sire per block
DEFAULT_MAX_ETHER_UNITS: int = 10_000
DEFAULT_ADJUSTMENT_PERIOD: int = 5760         # ~1 day of 15s blocks


def units_to_wei(value: int | str | Decimal) -> int:
    """Convert a whole-unit amount to an exact integer wei count.

    Floats are refused; pass a decimal string instead so no binary
    rounding leaks into the ledger.

    >>> units_to_wei(1)
    1000000000000000000
    >>> units_to_wei("1.667")
    1667000000000000000
    """
    if isinstance(value, (bool, float)):
        raise ValueError(f"Amount must be an int, str or Decimal, got {type(value).__name__}")
    try:
        d = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValueError(f"Not a decimal amount: {value!r}")
    if not d.is_finite():
        raise ValueError(f"Amount must be finite: {value!r}")
    wei = d * WEI_PER_UNIT
    if wei != wei.to_integral_value():
        raise ValueError(f"{value!r} has more than {SIRE_DECIMALS} decimal places")
    return int(wei)


DEFAULT_GENESIS_ALLOCATION: int = DEFAULT_GENESIS_ALLOCATION_UNITS * WEI_PER_UNIT
DEFAULT_YIELD_RATE: int = units_to_wei(DEFAULT_YIELD_RATE_UNITS)
DEFAULT_MAX_ETHER_CAP: int = DEFAULT_MAX_ETHER_UNITS * WEI_PER_UNIT
