# src/stakeledger/ledger/constants.py
from __future__ import annotations

"""Ledger-wide numeric constants.

- Amounts are unsigned 128-bit integers.
- Reward multipliers are fixed-point decimals with 18 fractional digits.
- shares_per_point is scaled by 2**SHARES_SHIFT so per-point rates below one
  unit survive integer division.
"""

U128_MAX: int = (1 << 128) - 1
I128_MIN: int = -(1 << 127)
I128_MAX: int = (1 << 127) - 1

DECIMAL_PLACES: int = 18
DECIMAL_FRACTIONAL: int = 10**DECIMAL_PLACES

SHARES_SHIFT: int = 32

SECONDS_PER_YEAR: int = 365 * 24 * 60 * 60

# min_bond is at least 1, so a zero stake never counts as powered
MIN_BOND_FLOOR: int = 1
