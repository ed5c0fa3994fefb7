# src/stakeledger/runtime/apply/rewards.py
from __future__ import annotations

from typing import Any, Dict, List, Optional

from stakeledger.ledger.assets import Asset, Transfer
from stakeledger.ledger.curve import Curve
from stakeledger.ledger.distribution import (
    Distribution,
    calc_rewards_power,
    distribute_amount,
    record_withdrawal,
    total_rewards_power,
    validate_reward_multipliers,
    withdrawable_rewards,
)
from stakeledger.ledger.state import LedgerState
from stakeledger.ledger.types import Config
from stakeledger.runtime.errors import (
    ArithmeticOverflow,
    DistributionAlreadyExists,
    InvalidAsset,
    InvalidInstruction,
    InvalidRewards,
    TooManyDistributions,
    Unauthorized,
)
from stakeledger.runtime.instructions import (
    CreateDistributionFlow,
    DelegateWithdrawal,
    DistributeRewards,
    FundDistribution,
    InstructionEnvelope,
    WithdrawRewards,
)
from stakeledger.runtime.token_service import HostContext

Json = Dict[str, Any]


def rewards_power_of(state: LedgerState, cfg: Config, dist: Distribution, staker: str) -> int:
    return calc_rewards_power(dist, cfg, state.stakes_of(staker, cfg.unbonding_periods))


def delegated_of(state: LedgerState, owner: str) -> str:
    """Address allowed to withdraw for `owner`. Defaults to the owner."""
    for asset, _dist in state.distributions():
        return state.load_adjustment(owner, asset).delegated or owner
    return owner


def _require_flow(state: LedgerState, asset: Asset) -> None:
    state.load_distribution(asset)


def update_reward_config(state: LedgerState, now: int, asset: Asset, amount: int, schedule: Curve) -> Curve:
    """Add one funding schedule to the asset's reward curve.

    The schedule must fully release (min 0) and may never lock more than was
    attached. It is shifted to `now` so it cannot rewrite the past.
    """
    previous = state.load_reward_curve(asset)
    lo, hi = schedule.range()
    if lo != 0 or hi > amount:
        raise InvalidRewards("schedule_out_of_range", {"min": str(lo), "max": str(hi), "amount": str(amount)})

    combined = previous.combine(schedule.shift(now))
    combined.validate_monotonic_decreasing()
    state.save_reward_curve(asset, combined)
    return combined


# ---------------------------------------------------------------------------
# Appliers
# ---------------------------------------------------------------------------


def _apply_create_distribution_flow(
    state: LedgerState, env: InstructionEnvelope, instr: CreateDistributionFlow
) -> Json:
    admin = state.load_admin()
    if admin is None or env.sender != admin:
        raise Unauthorized("admin_only", {"sender": env.sender})

    cfg = state.load_config()

    # the ledger distributes its own balance, which includes all bonded stake
    if instr.asset == Asset.token(cfg.staked_token):
        raise InvalidAsset(details={"asset": instr.asset.to_json()})

    validate_reward_multipliers(cfg, instr.rewards)

    existing = [a for a, _ in state.distributions()]
    if len(existing) >= cfg.max_distributions:
        raise TooManyDistributions(details={"max_distributions": cfg.max_distributions})
    if instr.asset in existing:
        raise DistributionAlreadyExists(details={"asset": instr.asset.to_json()})

    state.save_reward_curve(instr.asset, Curve.constant(0))
    state.save_distribution(instr.asset, Distribution(manager=instr.manager, reward_multipliers=list(instr.rewards)))
    return {"applied": "CREATE_DISTRIBUTION_FLOW", "asset": instr.asset.to_json(), "manager": instr.manager}


def _apply_fund_distribution(state: LedgerState, env: InstructionEnvelope, instr: FundDistribution) -> Json:
    if not env.funds:
        raise InvalidInstruction("no_funds_attached")

    funded: List[Json] = []
    for coin in env.funds:
        _require_flow(state, coin.asset)
        update_reward_config(state, env.now, coin.asset, coin.amount, instr.curve)
        funded.append(coin.to_json())
    return {"applied": "FUND_DISTRIBUTION", "funded": funded}


def _apply_distribute_rewards(
    state: LedgerState, env: InstructionEnvelope, instr: DistributeRewards, host: HostContext
) -> Json:
    for coin in env.funds:
        _require_flow(state, coin.asset)

    cfg = state.load_config()
    totals = state.load_totals()
    distributed: List[Json] = []

    for asset, dist in state.distributions():
        total_power = total_rewards_power(dist, cfg, totals)
        if total_power == 0:
            continue

        balance = host.balance(asset, env.funds)
        locked = state.load_reward_curve(asset).value(env.now)
        amount = balance - dist.withdrawable_total - locked
        if amount < 0:
            raise ArithmeticOverflow(
                "balance_below_committed_rewards",
                {
                    "asset": asset.to_json(),
                    "balance": str(balance),
                    "withdrawable_total": str(dist.withdrawable_total),
                    "locked": str(locked),
                },
            )
        if amount == 0:
            continue

        distribute_amount(dist, amount, total_power)
        state.save_distribution(asset, dist)
        distributed.append({"asset": asset.to_json(), "amount": str(amount)})

    return {
        "applied": "DISTRIBUTE_REWARDS",
        "sender": instr.sender or env.sender,
        "distributed": distributed,
    }


def _apply_withdraw_rewards(state: LedgerState, env: InstructionEnvelope, instr: WithdrawRewards) -> Json:
    owner = instr.owner or env.sender
    receiver = instr.receiver or env.sender

    if env.sender != owner and env.sender != delegated_of(state, owner):
        raise Unauthorized("not_owner_or_delegate", {"sender": env.sender, "owner": owner})

    cfg = state.load_config()
    effects: List[Json] = []
    for asset, dist in state.distributions():
        adj = state.load_adjustment(owner, asset)
        reward = withdrawable_rewards(dist, adj, rewards_power_of(state, cfg, dist, owner))
        if reward == 0:
            continue
        record_withdrawal(dist, adj, reward)
        state.save_adjustment(owner, asset, adj)
        state.save_distribution(asset, dist)
        effects.append(Transfer(asset, receiver, reward).to_json())

    return {"applied": "WITHDRAW_REWARDS", "owner": owner, "receiver": receiver, "effects": effects}


def _apply_delegate_withdrawal(state: LedgerState, env: InstructionEnvelope, instr: DelegateWithdrawal) -> Json:
    # only existing flows record the delegation
    flows = state.distributions()
    for asset, _dist in flows:
        adj = state.load_adjustment(env.sender, asset)
        adj.delegated = instr.delegated
        state.save_adjustment(env.sender, asset, adj)
    return {
        "applied": "DELEGATE_WITHDRAWAL",
        "owner": env.sender,
        "delegated": instr.delegated,
        "distributions": len(flows),
    }


def apply_rewards(state: LedgerState, env: InstructionEnvelope, instr: Any, host: HostContext) -> Optional[Json]:
    """
    Returns:
      - dict: receipt
      - None: instruction not in the rewards domain
    """
    if isinstance(instr, CreateDistributionFlow):
        return _apply_create_distribution_flow(state, env, instr)

    if isinstance(instr, FundDistribution):
        return _apply_fund_distribution(state, env, instr)

    if isinstance(instr, DistributeRewards):
        return _apply_distribute_rewards(state, env, instr, host)

    if isinstance(instr, WithdrawRewards):
        return _apply_withdraw_rewards(state, env, instr)

    if isinstance(instr, DelegateWithdrawal):
        return _apply_delegate_withdrawal(state, env, instr)

    return None


__all__ = ["apply_rewards", "delegated_of", "rewards_power_of", "update_reward_config"]
