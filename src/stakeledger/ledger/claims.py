# src/stakeledger/ledger/claims.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Tuple

from stakeledger.ledger.uint import as_u128, checked_add

Json = Dict[str, Any]


@dataclass(frozen=True)
class Claim:
    """Pending unbonding withdrawal. Matured once release_at <= now."""

    amount: int
    release_at: int

    def to_json(self) -> Json:
        return {"amount": str(self.amount), "release_at": int(self.release_at)}

    @classmethod
    def from_json(cls, obj: Json) -> "Claim":
        return cls(as_u128(obj.get("amount", 0)), int(obj.get("release_at", 0)))


def create_claim(claims: List[Claim], amount: int, release_at: int) -> List[Claim]:
    return claims + [Claim(amount, release_at)]


def claim_matured(claims: List[Claim], now: int) -> Tuple[int, List[Claim]]:
    """Split off every matured claim.

    Returns (released, still_pending). Pending claims keep their insertion order.
    """
    released = 0
    pending: List[Claim] = []
    for c in claims:
        if c.release_at <= now:
            released = checked_add(released, c.amount)
        else:
            pending.append(c)
    return released, pending
