from __future__ import annotations

import json
import os
import sys
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import pytest

# Ensure local "src/" takes precedence over any globally-installed "stakeledger" package.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

src_str = str(SRC)
if src_str not in sys.path:
    sys.path.insert(0, src_str)

# stakeledger.api.app builds a module-level app on import; keep it in memory.
if "STAKELEDGER_CONFIG_PATH" not in os.environ:
    _cfg_dir = Path(tempfile.mkdtemp(prefix="stakeledger-test-"))
    _cfg_path = _cfg_dir / "node.json"
    _cfg_path.write_text(json.dumps({"mode": "dev", "store": "memory"}), encoding="utf-8")
    os.environ["STAKELEDGER_CONFIG_PATH"] = str(_cfg_path)
os.environ.setdefault("STAKELEDGER_MODE", "dev")

from stakeledger.ledger.assets import Asset  # noqa: E402
from stakeledger.runtime.executor import LedgerExecutor  # noqa: E402
from stakeledger.runtime.storage import MemoryStore  # noqa: E402
from stakeledger.runtime.token_service import InMemoryTokenService  # noqa: E402

Json = Dict[str, Any]

STAKE_TOKEN = "stake-token"
STAKE_ASSET = Asset.token(STAKE_TOKEN)
REWARD_ASSET = Asset.native("ureward")
LEDGER_ADDR = "ledger"
ADMIN = "admin"


class Harness:
    """Executor over a MemoryStore plus helpers that mint before they spend."""

    def __init__(self, store: Any = None) -> None:
        self.tokens = InMemoryTokenService()
        self.store = store if store is not None else MemoryStore()
        self.ex = LedgerExecutor(store=self.store, tokens=self.tokens, contract_address=LEDGER_ADDR)

    def execute(
        self,
        type_: str,
        sender: str,
        now: int = 0,
        payload: Optional[Json] = None,
        funds: Sequence[Json] = (),
    ) -> Json:
        return self.ex.execute(
            {"type": type_, "sender": sender, "now": now, "funds": list(funds), "payload": payload or {}}
        )

    def query(self, kind: str, now: int = 0, **fields: Any) -> Json:
        q: Json = {"query": kind}
        q.update(fields)
        return self.ex.query(q, now=now)

    def balance(self, asset: Asset, holder: str) -> int:
        return self.tokens.balance_of(asset, holder)

    # -- staking ---------------------------------------------------------

    def instantiate(
        self,
        *,
        periods: Sequence[int] = (20,),
        tokens_per_power: int = 1000,
        min_bond: int = 5000,
        max_distributions: Optional[int] = None,
        admin: Optional[str] = ADMIN,
    ) -> Json:
        payload: Json = {
            "staked_token": STAKE_TOKEN,
            "collection": "collection",
            "tokens_per_power": str(tokens_per_power),
            "min_bond": str(min_bond),
            "unbonding_periods": list(periods),
            "admin": admin,
        }
        if max_distributions is not None:
            payload["max_distributions"] = max_distributions
        return self.execute("instantiate", "creator", 0, payload)

    def bond(self, sender: str, amount: int, period: int, now: int = 0, delegate_as: Optional[str] = None) -> Json:
        self.tokens.mint(STAKE_ASSET, sender, amount)
        payload: Json = {"unbonding_period": period}
        if delegate_as:
            payload["delegate_as"] = delegate_as
        return self.execute("bond", sender, now, payload, [coin(STAKE_ASSET, amount)])

    def unbond(self, sender: str, amount: int, period: int, now: int = 0) -> Json:
        return self.execute("unbond", sender, now, {"tokens": str(amount), "unbonding_period": period})

    def rebond(self, sender: str, amount: int, bond_from: int, bond_to: int, now: int = 0) -> Json:
        return self.execute("rebond", sender, now, {"tokens": str(amount), "bond_from": bond_from, "bond_to": bond_to})

    def claim(self, sender: str, now: int) -> Json:
        return self.execute("claim", sender, now)

    def stake_of(self, address: str, period: int, now: int = 0) -> int:
        return int(self.query("staked", now, address=address, unbonding_period=period)["stake"])

    # -- rewards ---------------------------------------------------------

    def create_flow(
        self,
        rewards: List[List[Any]],
        asset: Asset = REWARD_ASSET,
        sender: str = ADMIN,
        manager: str = "manager",
    ) -> Json:
        return self.execute(
            "create_distribution_flow",
            sender,
            0,
            {"manager": manager, "asset": asset.to_json(), "rewards": rewards},
        )

    def fund(self, amount: int, curve: Json, now: int = 0, asset: Asset = REWARD_ASSET, sender: str = "funder") -> Json:
        self.tokens.mint(asset, sender, amount)
        return self.execute("fund_distribution", sender, now, {"curve": curve}, [coin(asset, amount)])

    def distribute(self, now: int = 0, sender: str = "anyone", funds: Sequence[Json] = ()) -> Json:
        return self.execute("distribute_rewards", sender, now, {}, funds)

    def send_rewards(self, amount: int, asset: Asset = REWARD_ASSET) -> None:
        """Reward tokens arriving at the ledger without a funding schedule."""
        self.tokens.mint(asset, LEDGER_ADDR, amount)

    def withdraw(self, sender: str, now: int = 0, owner: Optional[str] = None, receiver: Optional[str] = None) -> Json:
        payload: Json = {}
        if owner:
            payload["owner"] = owner
        if receiver:
            payload["receiver"] = receiver
        return self.execute("withdraw_rewards", sender, now, payload)

    def power_of(self, address: str, asset: Asset = REWARD_ASSET) -> Optional[int]:
        for a, amount in self.query("rewards_power", address=address)["rewards"]:
            if a == asset.to_json():
                return int(amount)
        return None

    def withdrawable(self, owner: str, asset: Asset = REWARD_ASSET) -> int:
        for r in self.query("withdrawable_rewards", owner=owner)["rewards"]:
            if r["asset"] == asset.to_json():
                return int(r["amount"])
        return 0


def coin(asset: Asset, amount: int) -> Json:
    return {"asset": asset.to_json(), "amount": str(amount)}


@pytest.fixture()
def harness() -> Harness:
    return Harness()


@pytest.fixture(autouse=True)
def _restore_root_logging():
    # create_app() reconfigures the process-wide root logger; undo it so
    # tests that inspect log records do not depend on execution order.
    import logging

    root = logging.getLogger()
    level, handlers = root.level, list(root.handlers)
    had_flag = hasattr(root, "_stakeledger_configured")
    flag = getattr(root, "_stakeledger_configured", None)
    yield
    root.setLevel(level)
    root.handlers = handlers
    if had_flag:
        setattr(root, "_stakeledger_configured", flag)
    elif hasattr(root, "_stakeledger_configured"):
        delattr(root, "_stakeledger_configured")
