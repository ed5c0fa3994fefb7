# src/stakeledger/runtime/queries.py
from __future__ import annotations

"""Read-only queries.

A query is a JSON object with a `query` kind plus its arguments:

    {"query": "staked", "address": "alice", "unbonding_period": 20}

Amounts come back as decimal strings, assets in their JSON form.
Time-dependent queries (staked, all_staked, annualized_rewards) read `now`.
"""

from typing import Any, Callable, Dict, List, Optional

from stakeledger.ledger.assets import Asset
from stakeledger.ledger.bonding import totals_index
from stakeledger.ledger.constants import SECONDS_PER_YEAR
from stakeledger.ledger.distribution import (
    total_rewards_power,
    total_rewards_power_of_period,
    withdrawable_rewards,
)
from stakeledger.ledger.state import LedgerState
from stakeledger.ledger.uint import format_decimal, ratio_floor, saturating_sub
from stakeledger.runtime.apply.rewards import delegated_of, rewards_power_of
from stakeledger.runtime.errors import ApplyError, InvalidInstruction
from stakeledger.runtime.token_service import HostContext

Json = Dict[str, Any]
QueryFn = Callable[[LedgerState, Json, HostContext, int], Json]


def _addr(q: Json, key: str) -> str:
    v = q.get(key)
    if not isinstance(v, str) or not v.strip():
        raise InvalidInstruction("bad_address", {"field": key, "value": v})
    return v.strip()


def _period(q: Json, key: str = "unbonding_period") -> int:
    v = q.get(key)
    if isinstance(v, bool) or not isinstance(v, int):
        raise InvalidInstruction("bad_period", {"field": key, "value": v})
    return v


def _staked_entry(state: LedgerState, staked_token: str, address: str, period: int, now: int) -> Optional[Json]:
    info = state.may_load_stake(address, period)
    if info is None:
        return None
    return {
        "stake": str(info.total_stake()),
        "total_locked": str(info.total_locked(now)),
        "unbonding_period": period,
        "staked_token": staked_token,
    }


def query_staked(state: LedgerState, q: Json, host: HostContext, now: int) -> Json:
    address = _addr(q, "address")
    period = _period(q)
    cfg = state.load_config()
    state.load_total_of_period(period)
    entry = _staked_entry(state, cfg.staked_token, address, period, now)
    if entry is None:
        return {"stake": "0", "total_locked": "0", "unbonding_period": period, "staked_token": cfg.staked_token}
    return entry


def query_all_staked(state: LedgerState, q: Json, host: HostContext, now: int) -> Json:
    address = _addr(q, "address")
    cfg = state.load_config()
    stakes: List[Json] = []
    for period in cfg.unbonding_periods:
        entry = _staked_entry(state, cfg.staked_token, address, period, now)
        if entry is not None:
            stakes.append(entry)
    return {"stakes": stakes}


def query_total_staked(state: LedgerState, q: Json, host: HostContext, now: int) -> Json:
    return {"total_staked": str(state.load_token_info().staked)}


def query_total_unbonding(state: LedgerState, q: Json, host: HostContext, now: int) -> Json:
    return {"total_unbonding": str(state.load_token_info().unbonding)}


def query_claims(state: LedgerState, q: Json, host: HostContext, now: int) -> Json:
    return {"claims": [c.to_json() for c in state.load_claims(_addr(q, "address"))]}


def query_bonding_info(state: LedgerState, q: Json, host: HostContext, now: int) -> Json:
    return {
        "bonding": [
            {"unbonding_period": p, "total_staked": str(t.staked)} for p, t in state.load_totals()
        ]
    }


def query_rewards_power(state: LedgerState, q: Json, host: HostContext, now: int) -> Json:
    address = _addr(q, "address")
    cfg = state.load_config()
    rewards: List[List[Any]] = []
    for asset, dist in state.distributions():
        power = rewards_power_of(state, cfg, dist, address)
        if power:
            rewards.append([asset.to_json(), str(power)])
    return {"rewards": rewards}


def query_total_rewards_power(state: LedgerState, q: Json, host: HostContext, now: int) -> Json:
    cfg = state.load_config()
    totals = state.load_totals()
    return {
        "rewards": [
            [asset.to_json(), str(total_rewards_power(dist, cfg, totals))] for asset, dist in state.distributions()
        ]
    }


def query_annualized_rewards(state: LedgerState, q: Json, host: HostContext, now: int) -> Json:
    """Estimated yearly reward per staked token, per period and asset.

    The amount the reward curve releases over the next year is split by each
    period's share of total power, then divided by the period's powered stake.
    """
    cfg = state.load_config()
    totals = state.load_totals()
    dists = state.distributions()

    out: List[List[Any]] = []
    for period in cfg.unbonding_periods:
        period_total = totals[totals_index(totals, period)][1]
        rewards: List[Json] = []
        for asset, dist in dists:
            total_power = total_rewards_power(dist, cfg, totals)
            if period_total.powered_stake == 0 or total_power == 0:
                rewards.append({"info": asset.to_json(), "amount": None})
                continue

            power_of_period = total_rewards_power_of_period(dist, cfg, period, period_total)
            curve = state.load_reward_curve(asset)
            released = saturating_sub(curve.value(now), curve.value(now + SECONDS_PER_YEAR))
            per_token = ratio_floor(released * power_of_period, total_power * period_total.powered_stake)
            rewards.append({"info": asset.to_json(), "amount": format_decimal(per_token)})
        out.append([period, rewards])
    return {"rewards": out}


def query_withdrawable_rewards(state: LedgerState, q: Json, host: HostContext, now: int) -> Json:
    owner = _addr(q, "owner")
    cfg = state.load_config()
    rewards: List[Json] = []
    for asset, dist in state.distributions():
        amount = withdrawable_rewards(dist, state.load_adjustment(owner, asset), rewards_power_of(state, cfg, dist, owner))
        rewards.append({"asset": asset.to_json(), "amount": str(amount)})
    return {"rewards": rewards}


def query_distributed_rewards(state: LedgerState, q: Json, host: HostContext, now: int) -> Json:
    dists = state.distributions()
    return {
        "distributed": [{"asset": a.to_json(), "amount": str(d.distributed_total)} for a, d in dists],
        "withdrawable": [{"asset": a.to_json(), "amount": str(d.withdrawable_total)} for a, d in dists],
    }


def query_undistributed_rewards(state: LedgerState, q: Json, host: HostContext, now: int) -> Json:
    rewards: List[Json] = []
    for asset, dist in state.distributions():
        balance = host.balance(asset)
        rewards.append({"asset": asset.to_json(), "amount": str(saturating_sub(balance, dist.withdrawable_total))})
    return {"rewards": rewards}


def query_delegated(state: LedgerState, q: Json, host: HostContext, now: int) -> Json:
    return {"delegated": delegated_of(state, _addr(q, "owner"))}


def query_distribution_data(state: LedgerState, q: Json, host: HostContext, now: int) -> Json:
    return {"distributions": [[a.to_json(), d.to_json()] for a, d in state.distributions()]}


def query_withdraw_adjustment_data(state: LedgerState, q: Json, host: HostContext, now: int) -> Json:
    address = _addr(q, "address")
    asset = Asset.from_json(q.get("asset"))
    return state.load_adjustment(address, asset).to_json()


def query_admin(state: LedgerState, q: Json, host: HostContext, now: int) -> Json:
    return {"admin": state.load_admin()}


_QUERIES: Dict[str, QueryFn] = {
    "staked": query_staked,
    "all_staked": query_all_staked,
    "total_staked": query_total_staked,
    "total_unbonding": query_total_unbonding,
    "claims": query_claims,
    "bonding_info": query_bonding_info,
    "rewards_power": query_rewards_power,
    "total_rewards_power": query_total_rewards_power,
    "annualized_rewards": query_annualized_rewards,
    "withdrawable_rewards": query_withdrawable_rewards,
    "distributed_rewards": query_distributed_rewards,
    "undistributed_rewards": query_undistributed_rewards,
    "delegated": query_delegated,
    "distribution_data": query_distribution_data,
    "withdraw_adjustment_data": query_withdraw_adjustment_data,
    "admin": query_admin,
}

QUERY_KINDS = tuple(sorted(_QUERIES))


def run_query(state: LedgerState, q: Any, host: HostContext, now: int) -> Json:
    if not isinstance(q, dict):
        raise InvalidInstruction("query_must_be_object")
    kind = str(q.get("query") or "").strip().lower()
    fn = _QUERIES.get(kind)
    if fn is None:
        raise ApplyError("unknown_query", "query_kind_not_supported", {"query": kind})
    return fn(state, q, host, now)


__all__ = ["QUERY_KINDS", "run_query"]
