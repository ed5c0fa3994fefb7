# src/stakeledger/ledger/state.py
from __future__ import annotations

"""Typed access to the ledger key space.

Key layout (values are JSON):

    config                                   Config
    admin                                    address or null
    token_info                               TokenInfo
    total_per_period                         [[period, TotalStake], ...] sorted by period
    stake/{staker}/{period:020d}             BondingInfo
    distribution/{asset_key}                 Distribution
    reward_curve/{asset_key}                 Curve
    withdraw_adjustment/{staker}/{asset_key} WithdrawAdjustment
    claims/{staker}                          [Claim, ...] in insertion order

Periods are zero-padded so prefix iteration returns them in numeric order.
"""

from typing import Any, Dict, List, Optional, Tuple

from stakeledger.ledger.assets import Asset
from stakeledger.ledger.bonding import BondingInfo, TotalStake, totals_index
from stakeledger.ledger.claims import Claim
from stakeledger.ledger.curve import Curve
from stakeledger.ledger.distribution import Distribution, WithdrawAdjustment
from stakeledger.ledger.types import Config, TokenInfo
from stakeledger.runtime.errors import NoDistributionFlow, NotInstantiated
from stakeledger.runtime.storage import KVStore

Json = Dict[str, Any]

K_CONFIG = "config"
K_ADMIN = "admin"
K_TOKEN_INFO = "token_info"
K_TOTAL_PER_PERIOD = "total_per_period"
P_STAKE = "stake/"
P_DISTRIBUTION = "distribution/"
P_REWARD_CURVE = "reward_curve/"
P_WITHDRAW_ADJUSTMENT = "withdraw_adjustment/"
P_CLAIMS = "claims/"


def _stake_key(staker: str, period: int) -> str:
    return f"{P_STAKE}{staker}/{int(period):020d}"


class LedgerState:
    """Thin typed wrapper over a KVStore. Holds no cached state of its own."""

    def __init__(self, store: KVStore) -> None:
        self.store = store

    # ------------------------------------------------------------------
    # singletons
    # ------------------------------------------------------------------

    def is_instantiated(self) -> bool:
        return self.store.get(K_CONFIG) is not None

    def load_config(self) -> Config:
        raw = self.store.get(K_CONFIG)
        if raw is None:
            raise NotInstantiated()
        return Config.from_json(raw)

    def save_config(self, cfg: Config) -> None:
        self.store.set(K_CONFIG, cfg.to_json())

    def load_admin(self) -> Optional[str]:
        v = self.store.get(K_ADMIN)
        return str(v) if v else None

    def save_admin(self, admin: Optional[str]) -> None:
        self.store.set(K_ADMIN, admin or None)

    def load_token_info(self) -> TokenInfo:
        return TokenInfo.from_json(self.store.get(K_TOKEN_INFO))

    def save_token_info(self, info: TokenInfo) -> None:
        self.store.set(K_TOKEN_INFO, info.to_json())

    # ------------------------------------------------------------------
    # per-period totals
    # ------------------------------------------------------------------

    def load_totals(self) -> List[Tuple[int, TotalStake]]:
        raw = self.store.get(K_TOTAL_PER_PERIOD) or []
        return [(int(p), TotalStake.from_json(t)) for p, t in raw]

    def save_totals(self, totals: List[Tuple[int, TotalStake]]) -> None:
        self.store.set(K_TOTAL_PER_PERIOD, [[p, t.to_json()] for p, t in totals])

    def load_total_of_period(self, period: int) -> TotalStake:
        totals = self.load_totals()
        return totals[totals_index(totals, period)][1]

    # ------------------------------------------------------------------
    # bonding
    # ------------------------------------------------------------------

    def may_load_stake(self, staker: str, period: int) -> Optional[BondingInfo]:
        raw = self.store.get(_stake_key(staker, period))
        return None if raw is None else BondingInfo.from_json(raw)

    def load_stake(self, staker: str, period: int) -> BondingInfo:
        return self.may_load_stake(staker, period) or BondingInfo()

    def save_stake(self, staker: str, period: int, info: BondingInfo) -> None:
        self.store.set(_stake_key(staker, period), info.to_json())

    def stakes_of(self, staker: str, periods: List[int]) -> Dict[int, int]:
        """Total stake per period for one staker (missing periods are 0)."""
        out: Dict[int, int] = {}
        for p in periods:
            info = self.may_load_stake(staker, p)
            out[p] = info.total_stake() if info is not None else 0
        return out

    # ------------------------------------------------------------------
    # distributions
    # ------------------------------------------------------------------

    def distributions(self) -> List[Tuple[Asset, Distribution]]:
        """Every distribution in ascending asset-key order."""
        out: List[Tuple[Asset, Distribution]] = []
        for key, raw in self.store.range_prefix(P_DISTRIBUTION):
            out.append((Asset.from_key(key[len(P_DISTRIBUTION):]), Distribution.from_json(raw)))
        return out

    def may_load_distribution(self, asset: Asset) -> Optional[Distribution]:
        raw = self.store.get(P_DISTRIBUTION + asset.key)
        return None if raw is None else Distribution.from_json(raw)

    def load_distribution(self, asset: Asset) -> Distribution:
        dist = self.may_load_distribution(asset)
        if dist is None:
            raise NoDistributionFlow(details={"asset": asset.to_json()})
        return dist

    def save_distribution(self, asset: Asset, dist: Distribution) -> None:
        self.store.set(P_DISTRIBUTION + asset.key, dist.to_json())

    def load_reward_curve(self, asset: Asset) -> Curve:
        raw = self.store.get(P_REWARD_CURVE + asset.key)
        if raw is None:
            raise NoDistributionFlow(details={"asset": asset.to_json()})
        return Curve.from_json(raw)

    def save_reward_curve(self, asset: Asset, curve: Curve) -> None:
        self.store.set(P_REWARD_CURVE + asset.key, curve.to_json())

    def load_adjustment(self, staker: str, asset: Asset) -> WithdrawAdjustment:
        return WithdrawAdjustment.from_json(self.store.get(f"{P_WITHDRAW_ADJUSTMENT}{staker}/{asset.key}"))

    def save_adjustment(self, staker: str, asset: Asset, adj: WithdrawAdjustment) -> None:
        self.store.set(f"{P_WITHDRAW_ADJUSTMENT}{staker}/{asset.key}", adj.to_json())

    # ------------------------------------------------------------------
    # claims
    # ------------------------------------------------------------------

    def load_claims(self, staker: str) -> List[Claim]:
        return [Claim.from_json(c) for c in self.store.get(P_CLAIMS + staker) or []]

    def save_claims(self, staker: str, claims: List[Claim]) -> None:
        if claims:
            self.store.set(P_CLAIMS + staker, [c.to_json() for c in claims])
        else:
            self.store.delete(P_CLAIMS + staker)
