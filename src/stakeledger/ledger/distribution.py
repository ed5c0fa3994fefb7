# src/stakeledger/ledger/distribution.py
from __future__ import annotations

"""Points-per-share reward distribution.

Each reward asset has one Distribution. Funding raises `shares_per_point`
(scaled by 2**SHARES_SHIFT); stakers never get touched on funding. When a
staker's power changes, their WithdrawAdjustment absorbs the difference so
rewards already earned at the old power stay put:

    shares_correction += (new_power - old_power) * shares_per_point
    withdrawable = ((power * shares_per_point - shares_correction) >> SHARES_SHIFT)
                   - withdrawn_rewards

Power itself is never stored; it is recomputed from the bonding records.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from stakeledger.ledger.bonding import TotalStake
from stakeledger.ledger.constants import SHARES_SHIFT
from stakeledger.ledger.types import Config
from stakeledger.ledger.uint import (
    as_u128,
    checked_add,
    checked_add_signed,
    checked_mul,
    checked_mul_signed,
    checked_sub,
    format_decimal,
    mul_floor,
    parse_decimal,
)
from stakeledger.runtime.errors import ArithmeticOverflow, InvalidRewards

Json = Dict[str, Any]


@dataclass
class Distribution:
    manager: str
    # (period, multiplier atomics); periods match Config.unbonding_periods in order
    reward_multipliers: List[Tuple[int, int]] = field(default_factory=list)
    shares_per_point: int = 0
    shares_leftover: int = 0
    distributed_total: int = 0
    withdrawable_total: int = 0

    def to_json(self) -> Json:
        return {
            "manager": self.manager,
            "reward_multipliers": [[p, format_decimal(m)] for p, m in self.reward_multipliers],
            "shares_per_point": str(self.shares_per_point),
            "shares_leftover": str(self.shares_leftover),
            "distributed_total": str(self.distributed_total),
            "withdrawable_total": str(self.withdrawable_total),
        }

    @classmethod
    def from_json(cls, obj: Json) -> "Distribution":
        return cls(
            manager=str(obj.get("manager") or ""),
            reward_multipliers=[(int(p), parse_decimal(m)) for p, m in obj.get("reward_multipliers") or []],
            shares_per_point=as_u128(obj.get("shares_per_point", 0)),
            shares_leftover=as_u128(obj.get("shares_leftover", 0)),
            distributed_total=as_u128(obj.get("distributed_total", 0)),
            withdrawable_total=as_u128(obj.get("withdrawable_total", 0)),
        )

    def multiplier(self, period: int) -> int:
        for p, m in self.reward_multipliers:
            if p == period:
                return m
        return 0


@dataclass
class WithdrawAdjustment:
    shares_correction: int = 0
    withdrawn_rewards: int = 0
    # who may withdraw on the owner's behalf; empty means the owner
    delegated: str = ""

    def to_json(self) -> Json:
        return {
            "shares_correction": str(self.shares_correction),
            "withdrawn_rewards": str(self.withdrawn_rewards),
            "delegated": self.delegated,
        }

    @classmethod
    def from_json(cls, obj: Optional[Json]) -> "WithdrawAdjustment":
        if not obj:
            return cls()
        return cls(
            shares_correction=int(obj.get("shares_correction", 0)),
            withdrawn_rewards=as_u128(obj.get("withdrawn_rewards", 0)),
            delegated=str(obj.get("delegated") or ""),
        )


def validate_reward_multipliers(cfg: Config, rewards: List[Tuple[int, int]]) -> None:
    periods = [p for p, _ in rewards]
    if periods != list(cfg.unbonding_periods):
        raise InvalidRewards(
            "reward_periods_mismatch",
            {"expected": list(cfg.unbonding_periods), "got": periods},
        )
    for (p0, m0), (p1, m1) in zip(rewards, rewards[1:]):
        if m0 > m1:
            raise InvalidRewards(
                "reward_multipliers_decreasing",
                {"period": p1, "previous": format_decimal(m0), "multiplier": format_decimal(m1)},
            )


# ---------------------------------------------------------------------------
# Power
# ---------------------------------------------------------------------------


def calc_rewards_power(dist: Distribution, cfg: Config, stakes: Mapping[int, int]) -> int:
    """Power of one staker given their total stake per period.

    Periods where the staker holds less than min_bond contribute nothing.
    Each period is divided by tokens_per_power on its own.
    """
    power = 0
    for period, mult in dist.reward_multipliers:
        stake = stakes.get(period, 0)
        if stake >= cfg.min_bond:
            power = checked_add(power, mul_floor(stake, mult) // cfg.tokens_per_power)
    return power


def total_rewards_power(dist: Distribution, cfg: Config, totals: Iterable[Tuple[int, TotalStake]]) -> int:
    by_period = dict(totals)
    power = 0
    for period, mult in dist.reward_multipliers:
        total = by_period.get(period)
        if total is not None:
            power = checked_add(power, mul_floor(total.powered_stake, mult) // cfg.tokens_per_power)
    return power


def total_rewards_power_of_period(dist: Distribution, cfg: Config, period: int, total: TotalStake) -> int:
    return mul_floor(total.powered_stake, dist.multiplier(period)) // cfg.tokens_per_power


# ---------------------------------------------------------------------------
# Accounting
# ---------------------------------------------------------------------------


def apply_points_correction(adj: WithdrawAdjustment, shares_per_point: int, old_power: int, new_power: int) -> None:
    if old_power == new_power:
        return
    diff = new_power - old_power
    adj.shares_correction = checked_add_signed(adj.shares_correction, checked_mul_signed(diff, shares_per_point))


def withdrawable_rewards(dist: Distribution, adj: WithdrawAdjustment, power: int) -> int:
    points = checked_mul(power, dist.shares_per_point) - adj.shares_correction
    if points < 0:
        raise ArithmeticOverflow("negative_points", {"points": str(points)})
    earned = points >> SHARES_SHIFT
    return checked_sub(earned, adj.withdrawn_rewards)


def distribute_amount(dist: Distribution, amount: int, total_power: int) -> None:
    """Credit `amount` across `total_power`.

    The sub-unit remainder is kept in shares_leftover and folded into the
    next distribution.
    """
    if amount == 0 or total_power == 0:
        return
    points = checked_add(amount << SHARES_SHIFT, dist.shares_leftover)
    dist.shares_per_point = checked_add(dist.shares_per_point, points // total_power)
    dist.shares_leftover = points % total_power
    dist.distributed_total = checked_add(dist.distributed_total, amount)
    dist.withdrawable_total = checked_add(dist.withdrawable_total, amount)


def record_withdrawal(dist: Distribution, adj: WithdrawAdjustment, reward: int) -> None:
    adj.withdrawn_rewards = checked_add(adj.withdrawn_rewards, reward)
    dist.withdrawable_total = checked_sub(dist.withdrawable_total, reward)
