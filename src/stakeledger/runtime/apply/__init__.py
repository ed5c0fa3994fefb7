# src/stakeledger/runtime/apply/__init__.py
"""Domain-specific apply modules.

Each module claims a subset of instruction variants and mutates ledger state
through LedgerState. Appliers return a receipt dict, or None when the
instruction belongs to another domain.
"""

from __future__ import annotations

__all__ = [
    "staking",
    "rewards",
]
