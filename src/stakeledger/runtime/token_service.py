# src/stakeledger/runtime/token_service.py
from __future__ import annotations

"""Token collaborator.

The ledger core never moves funds. It reads balances and returns Transfer
effects; the executor hands those to a TokenService inside the instruction's
store transaction, so a failed settlement rolls the ledger state back too.

StoreTokenService keeps balances in the ledger's own store and is what the
node runtime uses. InMemoryTokenService is the lightweight variant the tests
drive directly.
"""

import threading
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, Protocol, Sequence, Tuple

from stakeledger.ledger.assets import Asset, Coin
from stakeledger.ledger.uint import as_u128, checked_add
from stakeledger.runtime.errors import ApplyError

Json = Dict[str, Any]


class TokenService(Protocol):
    def balance_of(self, asset: Asset, holder: str) -> int: ...

    def within(self, tx: Any) -> "TokenService": ...

    def settle(self, holder: str, sender: str, funds: Sequence[Coin], effects: Sequence[Json]) -> None: ...


def _transfers(
    holder: str, sender: str, funds: Sequence[Coin], effects: Sequence[Json]
) -> Iterator[Tuple[Asset, str, str, int]]:
    """Attached funds into `holder` first, then every transfer effect out of it."""
    for c in funds:
        yield c.asset, sender, holder, c.amount
    for eff in effects:
        if eff.get("type") != "transfer":
            continue
        yield Asset.from_json(eff.get("asset")), holder, str(eff.get("recipient")), as_u128(eff.get("amount"))


def _shortfall(asset: Asset, src: str, have: int, amount: int) -> ApplyError:
    return ApplyError(
        "insufficient_funds",
        "balance_below_transfer",
        {"asset": asset.to_json(), "holder": src, "balance": str(have), "amount": str(amount)},
    )


class InMemoryTokenService:
    """Balances keyed by (asset key, holder). settle() is all-or-nothing."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._balances: Dict[Tuple[str, str], int] = {}

    def balance_of(self, asset: Asset, holder: str) -> int:
        with self._lock:
            return self._balances.get((asset.key, holder), 0)

    def within(self, tx: Any) -> "InMemoryTokenService":
        return self

    def mint(self, asset: Asset, holder: str, amount: int) -> None:
        with self._lock:
            k = (asset.key, holder)
            self._balances[k] = checked_add(self._balances.get(k, 0), amount)

    def settle(self, holder: str, sender: str, funds: Sequence[Coin], effects: Sequence[Json]) -> None:
        with self._lock:
            staged = dict(self._balances)
            for asset, src, dst, amount in _transfers(holder, sender, funds, effects):
                have = staged.get((asset.key, src), 0)
                if have < amount:
                    raise _shortfall(asset, src, have, amount)
                staged[(asset.key, src)] = have - amount
                staged[(asset.key, dst)] = checked_add(staged.get((asset.key, dst), 0), amount)
            self._balances = staged


def _balance_key(holder: str, asset: Asset) -> str:
    return f"balance/{holder}/{asset.key}"


class StoreTokenService:
    """Balances kept as `balance/{holder}/{asset key}` entries in a KV store.

    The executor binds it to the open transaction with within(tx), so moves
    commit or roll back together with the ledger state that produced them.
    """

    def __init__(self, store: Any) -> None:
        self.store = store

    def within(self, tx: Any) -> "StoreTokenService":
        return StoreTokenService(tx)

    def balance_of(self, asset: Asset, holder: str) -> int:
        v = self.store.get(_balance_key(holder, asset))
        return 0 if v is None else as_u128(v)

    def _put(self, asset: Asset, holder: str, amount: int) -> None:
        if amount == 0:
            self.store.delete(_balance_key(holder, asset))
        else:
            self.store.set(_balance_key(holder, asset), str(amount))

    def mint(self, asset: Asset, holder: str, amount: int) -> None:
        self._put(asset, holder, checked_add(self.balance_of(asset, holder), amount))

    def settle(self, holder: str, sender: str, funds: Sequence[Coin], effects: Sequence[Json]) -> None:
        # partial moves are undone by the enclosing transaction
        for asset, src, dst, amount in _transfers(holder, sender, funds, effects):
            have = self.balance_of(asset, src)
            if have < amount:
                raise _shortfall(asset, src, have, amount)
            self._put(asset, src, have - amount)
            self._put(asset, dst, checked_add(self.balance_of(asset, dst), amount))


@dataclass(frozen=True)
class HostContext:
    """What apply and query code may ask of the host besides the store."""

    contract_address: str
    tokens: TokenService

    def balance(self, asset: Asset, attached: Iterable[Coin] = ()) -> int:
        """The ledger's balance of `asset`, counting funds attached to the
        instruction being applied (they settle after the apply step)."""
        total = self.tokens.balance_of(asset, self.contract_address)
        for c in attached:
            if c.asset == asset:
                total = checked_add(total, c.amount)
        return total

    def require_funds(self, sender: str, funds: Iterable[Coin]) -> None:
        need: Dict[Asset, int] = {}
        for c in funds:
            need[c.asset] = checked_add(need.get(c.asset, 0), c.amount)
        for asset, amount in need.items():
            have = self.tokens.balance_of(asset, sender)
            if have < amount:
                raise ApplyError(
                    "insufficient_funds",
                    "attached_funds_exceed_balance",
                    {"asset": asset.to_json(), "sender": sender, "balance": str(have), "amount": str(amount)},
                )
