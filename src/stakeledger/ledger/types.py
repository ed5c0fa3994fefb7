"""stakeledger.ledger.types

Singleton records of a ledger instance:
  - Config: fixed at instantiation
  - TokenInfo: aggregate staked / unbonding amounts, reporting only
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from stakeledger.ledger.constants import MIN_BOND_FLOOR
from stakeledger.ledger.uint import as_u128

Json = Dict[str, Any]


def _coerce_int(v: Any, *, field: str) -> int:
    # bool is an int subclass; disallow it explicitly
    if isinstance(v, bool):
        raise ValueError(f"Config schema error: field '{field}' must be int (got bool)")
    try:
        return int(v)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Config schema error: field '{field}' must be int-coercible (got {type(v).__name__})") from e


@dataclass(frozen=True)
class Config:
    instantiator: str
    staked_token: str
    collection: str
    tokens_per_power: int
    min_bond: int
    unbonding_periods: List[int] = field(default_factory=list)
    max_distributions: int = 6

    @classmethod
    def build(
        cls,
        *,
        instantiator: str,
        staked_token: str,
        collection: str,
        tokens_per_power: int,
        min_bond: int,
        unbonding_periods: List[int],
        max_distributions: int,
    ) -> "Config":
        """Normalize instantiation parameters.

        Periods are sorted and de-duplicated since every lookup is a binary
        search. min_bond is floored at 1 so zero stake never counts as powered.
        """
        if tokens_per_power <= 0:
            raise ValueError("tokens_per_power must be > 0")
        if max_distributions < 0:
            raise ValueError("max_distributions must be >= 0")
        periods = sorted(set(int(p) for p in unbonding_periods))
        if not periods:
            raise ValueError("unbonding_periods must not be empty")
        if periods[0] < 0:
            raise ValueError("unbonding_periods must be >= 0")
        return cls(
            instantiator=instantiator,
            staked_token=staked_token,
            collection=collection,
            tokens_per_power=int(tokens_per_power),
            min_bond=max(int(min_bond), MIN_BOND_FLOOR),
            unbonding_periods=periods,
            max_distributions=int(max_distributions),
        )

    def to_json(self) -> Json:
        return {
            "instantiator": self.instantiator,
            "staked_token": self.staked_token,
            "collection": self.collection,
            "tokens_per_power": str(self.tokens_per_power),
            "min_bond": str(self.min_bond),
            "unbonding_periods": list(self.unbonding_periods),
            "max_distributions": int(self.max_distributions),
        }

    @classmethod
    def from_json(cls, obj: Json) -> "Config":
        return cls(
            instantiator=str(obj.get("instantiator") or ""),
            staked_token=str(obj.get("staked_token") or ""),
            collection=str(obj.get("collection") or ""),
            tokens_per_power=as_u128(obj.get("tokens_per_power", 0)),
            min_bond=as_u128(obj.get("min_bond", MIN_BOND_FLOOR)),
            unbonding_periods=[_coerce_int(p, field="unbonding_periods") for p in obj.get("unbonding_periods") or []],
            max_distributions=_coerce_int(obj.get("max_distributions", 0), field="max_distributions"),
        )


@dataclass
class TokenInfo:
    staked: int = 0
    unbonding: int = 0

    def to_json(self) -> Json:
        return {"staked": str(self.staked), "unbonding": str(self.unbonding)}

    @classmethod
    def from_json(cls, obj: Optional[Json]) -> "TokenInfo":
        if not obj:
            return cls()
        return cls(as_u128(obj.get("staked", 0)), as_u128(obj.get("unbonding", 0)))
