# src/stakeledger/runtime/apply/staking.py
from __future__ import annotations

"""Bonding ledger transitions: instantiate, bond, mass bond, unbond, rebond, claim.

Every stake change follows the same pass:
  1. reward power of the staker for every distribution (before)
  2. mutate BondingInfo, feed before/after totals into the period total
  3. reward power again (after), shares correction per distribution
Validation happens before the first write.
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple

from stakeledger.ledger.assets import Asset, Transfer
from stakeledger.ledger.bonding import TotalStake, period_index, totals_index, update_total_stake
from stakeledger.ledger.claims import claim_matured, create_claim
from stakeledger.ledger.distribution import Distribution, apply_points_correction
from stakeledger.ledger.state import LedgerState
from stakeledger.ledger.types import Config, TokenInfo
from stakeledger.ledger.uint import checked_add, saturating_sub
from stakeledger.runtime.apply.rewards import rewards_power_of
from stakeledger.runtime.errors import (
    AlreadyInstantiated,
    InvalidInstruction,
    MassDelegateTooMuch,
    MassDelegateUnallocated,
    NoRebondAmount,
    NothingToClaim,
    SameUnbondingRebond,
    TokenMismatch,
)
from stakeledger.runtime.instructions import (
    Bond,
    Claim,
    Instantiate,
    InstructionEnvelope,
    MassBond,
    Rebond,
    Unbond,
)

Json = Dict[str, Any]


def _powers(state: LedgerState, cfg: Config, staker: str, dists: Sequence[Tuple[Asset, Distribution]]) -> List[int]:
    return [rewards_power_of(state, cfg, dist, staker) for _asset, dist in dists]


def _update_rewards(
    state: LedgerState,
    cfg: Config,
    staker: str,
    dists: Sequence[Tuple[Asset, Distribution]],
    old_powers: Sequence[int],
) -> None:
    for (asset, dist), old in zip(dists, old_powers):
        new = rewards_power_of(state, cfg, dist, staker)
        if new == old:
            continue
        adj = state.load_adjustment(staker, asset)
        apply_points_correction(adj, dist.shares_per_point, old, new)
        state.save_adjustment(staker, asset, adj)


def _change_total(cfg: Config, totals: List[Tuple[int, TotalStake]], period: int, old: int, new: int) -> None:
    update_total_stake(totals[totals_index(totals, period)][1], cfg.min_bond, old, new)


def _staked_amount(cfg: Config, env: InstructionEnvelope) -> int:
    """Amount of the staked token attached to a bond. Nothing else may ride along."""
    expected = Asset.token(cfg.staked_token)
    if len(env.funds) != 1 or env.funds[0].asset != expected:
        raise TokenMismatch(
            details={"expected": expected.to_json(), "got": [c.to_json() for c in env.funds]},
        )
    amount = env.funds[0].amount
    if amount == 0:
        raise InvalidInstruction("zero_amount")
    return amount


# ---------------------------------------------------------------------------
# Appliers
# ---------------------------------------------------------------------------


def _apply_instantiate(state: LedgerState, env: InstructionEnvelope, instr: Instantiate) -> Json:
    if state.is_instantiated():
        raise AlreadyInstantiated()

    try:
        cfg = Config.build(
            instantiator=env.sender,
            staked_token=instr.staked_token,
            collection=instr.collection,
            tokens_per_power=instr.tokens_per_power,
            min_bond=instr.min_bond,
            unbonding_periods=instr.unbonding_periods,
            max_distributions=instr.max_distributions,
        )
    except ValueError as e:
        raise InvalidInstruction("bad_config", {"error": str(e)}) from e

    state.save_config(cfg)
    state.save_admin(instr.admin)
    state.save_token_info(TokenInfo())
    state.save_totals([(p, TotalStake()) for p in cfg.unbonding_periods])
    return {"applied": "INSTANTIATE", "config": cfg.to_json(), "admin": instr.admin}


def _mass_bond(state: LedgerState, cfg: Config, period: int, delegations: List[Tuple[str, int]], amount_sent: int) -> None:
    period_index(cfg.unbonding_periods, period)

    total = 0
    for _staker, amount in delegations:
        total = checked_add(total, amount)
    if total > amount_sent:
        raise MassDelegateTooMuch(details={"total": str(total), "amount_sent": str(amount_sent)})
    if total < amount_sent:
        raise MassDelegateUnallocated(details={"total": str(total), "amount_sent": str(amount_sent)})

    dists = state.distributions()
    totals = state.load_totals()
    for staker, amount in delegations:
        old_powers = _powers(state, cfg, staker, dists)

        info = state.load_stake(staker, period)
        old_stake = info.total_stake()
        info.add_unlocked(amount)
        state.save_stake(staker, period, info)

        # later recipients read the period total through state; keep it current
        _change_total(cfg, totals, period, old_stake, info.total_stake())
        state.save_totals(totals)

        _update_rewards(state, cfg, staker, dists, old_powers)

    token_info = state.load_token_info()
    token_info.staked = checked_add(token_info.staked, amount_sent)
    state.save_token_info(token_info)


def _apply_bond(state: LedgerState, env: InstructionEnvelope, instr: Bond) -> Json:
    cfg = state.load_config()
    amount = _staked_amount(cfg, env)
    staker = instr.delegate_as or env.sender
    _mass_bond(state, cfg, instr.unbonding_period, [(staker, amount)], amount)
    return {"applied": "BOND", "staker": staker, "amount": str(amount), "unbonding_period": instr.unbonding_period}


def _apply_mass_bond(state: LedgerState, env: InstructionEnvelope, instr: MassBond) -> Json:
    cfg = state.load_config()
    amount = _staked_amount(cfg, env)
    _mass_bond(state, cfg, instr.unbonding_period, list(instr.delegate_to), amount)
    return {
        "applied": "MASS_BOND",
        "amount": str(amount),
        "unbonding_period": instr.unbonding_period,
        "recipients": len(instr.delegate_to),
    }


def _apply_unbond(state: LedgerState, env: InstructionEnvelope, instr: Unbond) -> Json:
    cfg = state.load_config()
    period = instr.unbonding_period
    period_index(cfg.unbonding_periods, period)
    if instr.tokens == 0:
        raise InvalidInstruction("zero_amount")

    staker = env.sender
    dists = state.distributions()
    old_powers = _powers(state, cfg, staker, dists)

    info = state.load_stake(staker, period)
    old_stake = info.total_stake()
    info.release_stake(env.now, instr.tokens)
    state.save_stake(staker, period, info)

    totals = state.load_totals()
    _change_total(cfg, totals, period, old_stake, info.total_stake())
    state.save_totals(totals)

    _update_rewards(state, cfg, staker, dists, old_powers)

    token_info = state.load_token_info()
    token_info.staked = saturating_sub(token_info.staked, instr.tokens)
    token_info.unbonding = checked_add(token_info.unbonding, instr.tokens)
    state.save_token_info(token_info)

    release_at = env.now + period
    state.save_claims(staker, create_claim(state.load_claims(staker), instr.tokens, release_at))
    return {"applied": "UNBOND", "staker": staker, "amount": str(instr.tokens), "release_at": release_at}


def _apply_rebond(state: LedgerState, env: InstructionEnvelope, instr: Rebond) -> Json:
    if instr.tokens == 0:
        raise NoRebondAmount()
    if instr.bond_from == instr.bond_to:
        raise SameUnbondingRebond(details={"unbonding_period": instr.bond_from})

    cfg = state.load_config()
    period_index(cfg.unbonding_periods, instr.bond_from)
    period_index(cfg.unbonding_periods, instr.bond_to)

    staker = env.sender
    now = env.now
    # negative when moving to a longer period
    lock_shift = instr.bond_from - instr.bond_to

    dists = state.distributions()
    old_powers = _powers(state, cfg, staker, dists)

    src = state.load_stake(staker, instr.bond_from)
    old_from = src.total_stake()
    portions = src.release_for_rebond(now, instr.tokens)
    state.save_stake(staker, instr.bond_from, src)

    dst = state.load_stake(staker, instr.bond_to)
    old_to = dst.total_stake()
    for amount, unlock_time in portions:
        # free stake starts its exit clock now; locked tranches keep their own
        exit_from = now if unlock_time is None else unlock_time
        locked_until = exit_from + lock_shift
        if locked_until > now:
            dst.add_locked(amount, locked_until)
        else:
            dst.add_unlocked(amount)
    state.save_stake(staker, instr.bond_to, dst)

    totals = state.load_totals()
    _change_total(cfg, totals, instr.bond_from, old_from, src.total_stake())
    _change_total(cfg, totals, instr.bond_to, old_to, dst.total_stake())
    state.save_totals(totals)

    _update_rewards(state, cfg, staker, dists, old_powers)

    return {
        "applied": "REBOND",
        "staker": staker,
        "amount": str(instr.tokens),
        "bond_from": instr.bond_from,
        "bond_to": instr.bond_to,
    }


def _apply_claim(state: LedgerState, env: InstructionEnvelope, instr: Claim) -> Json:
    cfg = state.load_config()
    released, pending = claim_matured(state.load_claims(env.sender), env.now)
    if released == 0:
        raise NothingToClaim()
    state.save_claims(env.sender, pending)

    token_info = state.load_token_info()
    token_info.unbonding = saturating_sub(token_info.unbonding, released)
    state.save_token_info(token_info)

    transfer = Transfer(Asset.token(cfg.staked_token), env.sender, released)
    return {"applied": "CLAIM", "staker": env.sender, "amount": str(released), "effects": [transfer.to_json()]}


def apply_staking(state: LedgerState, env: InstructionEnvelope, instr: Any) -> Optional[Json]:
    """
    Returns:
      - dict: receipt
      - None: instruction not in the staking domain
    """
    if isinstance(instr, Instantiate):
        return _apply_instantiate(state, env, instr)

    if isinstance(instr, Bond):
        return _apply_bond(state, env, instr)

    if isinstance(instr, MassBond):
        return _apply_mass_bond(state, env, instr)

    if isinstance(instr, Unbond):
        return _apply_unbond(state, env, instr)

    if isinstance(instr, Rebond):
        return _apply_rebond(state, env, instr)

    if isinstance(instr, Claim):
        return _apply_claim(state, env, instr)

    return None


__all__ = ["apply_staking"]
