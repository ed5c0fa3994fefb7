# src/stakeledger/ledger/assets.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List

from stakeledger.ledger.uint import as_u128
from stakeledger.runtime.errors import InvalidInstruction

Json = Dict[str, Any]

ASSET_KINDS = ("native", "token")


@dataclass(frozen=True, order=True)
class Asset:
    """Identity of a fungible asset: a native denom or a token contract address."""

    kind: str
    ref: str

    @staticmethod
    def native(denom: str) -> "Asset":
        return Asset("native", denom)

    @staticmethod
    def token(address: str) -> "Asset":
        return Asset("token", address)

    @property
    def key(self) -> str:
        return f"{self.kind}:{self.ref}"

    @classmethod
    def from_key(cls, key: str) -> "Asset":
        kind, _, ref = key.partition(":")
        return cls.from_json({kind: ref})

    @classmethod
    def from_json(cls, obj: Any) -> "Asset":
        if not isinstance(obj, dict) or len(obj) != 1:
            raise InvalidInstruction("bad_asset", {"value": obj})
        kind, ref = next(iter(obj.items()))
        if kind not in ASSET_KINDS or not isinstance(ref, str) or not ref.strip():
            raise InvalidInstruction("bad_asset", {"value": obj})
        return cls(kind, ref.strip())

    def to_json(self) -> Json:
        return {self.kind: self.ref}


@dataclass(frozen=True)
class Coin:
    asset: Asset
    amount: int

    @classmethod
    def from_json(cls, obj: Any) -> "Coin":
        if not isinstance(obj, dict):
            raise InvalidInstruction("bad_coin", {"value": obj})
        return cls(Asset.from_json(obj.get("asset")), as_u128(obj.get("amount")))

    def to_json(self) -> Json:
        return {"asset": self.asset.to_json(), "amount": str(self.amount)}


def coins_from_json(v: Any) -> List[Coin]:
    if v is None:
        return []
    if not isinstance(v, list):
        raise InvalidInstruction("funds_must_be_list", {"value": v})
    return [Coin.from_json(x) for x in v]


@dataclass(frozen=True)
class Transfer:
    """Outbound effect: move `amount` of `asset` from the ledger to `recipient`.

    The ledger never moves funds itself; the host settles these after commit.
    """

    asset: Asset
    recipient: str
    amount: int

    def to_json(self) -> Json:
        return {
            "type": "transfer",
            "asset": self.asset.to_json(),
            "recipient": self.recipient,
            "amount": str(self.amount),
        }
