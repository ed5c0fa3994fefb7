# src/stakeledger/ledger/bonding.py
from __future__ import annotations

"""Per-(staker, period) stake records and per-period totals.

A BondingInfo holds free stake plus locked tranches. Tranches appear when
stake is rebonded into a shorter period: the tokens stay locked for the
difference so rebonding cannot be used to shorten an exit.
"""

from bisect import bisect_left
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from stakeledger.ledger.uint import as_u128, checked_add, checked_sub
from stakeledger.runtime.errors import NotEnoughStake, NoUnbondingPeriodFound

Json = Dict[str, Any]


@dataclass
class LockedTranche:
    amount: int
    unlock_time: int

    def to_json(self) -> Json:
        return {"amount": str(self.amount), "unlock_time": int(self.unlock_time)}

    @classmethod
    def from_json(cls, obj: Json) -> "LockedTranche":
        return cls(as_u128(obj.get("amount", 0)), int(obj.get("unlock_time", 0)))


@dataclass
class BondingInfo:
    stake: int = 0
    locked_tokens: List[LockedTranche] = field(default_factory=list)

    @classmethod
    def from_json(cls, obj: Optional[Json]) -> "BondingInfo":
        if not obj:
            return cls()
        locked = [LockedTranche.from_json(x) for x in obj.get("locked_tokens") or []]
        return cls(as_u128(obj.get("stake", 0)), locked)

    def to_json(self) -> Json:
        return {
            "stake": str(self.stake),
            "locked_tokens": [t.to_json() for t in self.locked_tokens],
        }

    def total_stake(self) -> int:
        total = self.stake
        for t in self.locked_tokens:
            total = checked_add(total, t.amount)
        return total

    def total_locked(self, now: int) -> int:
        return sum(t.amount for t in self.locked_tokens if t.unlock_time > now)

    def total_unlocked(self, now: int) -> int:
        return self.stake + sum(t.amount for t in self.locked_tokens if t.unlock_time <= now)

    def add_unlocked(self, amount: int) -> None:
        self.stake = checked_add(self.stake, amount)

    def add_locked(self, amount: int, unlock_time: int) -> None:
        self.locked_tokens.append(LockedTranche(amount, unlock_time))

    def free_unlocked(self, now: int) -> None:
        """Fold every matured tranche into free stake."""
        remaining: List[LockedTranche] = []
        for t in self.locked_tokens:
            if t.unlock_time <= now:
                self.stake = checked_add(self.stake, t.amount)
            else:
                remaining.append(t)
        self.locked_tokens = remaining

    def release_stake(self, now: int, amount: int) -> None:
        """Remove `amount` of available stake; unmatured tranches are untouchable."""
        self.free_unlocked(now)
        if amount > self.stake:
            raise NotEnoughStake(
                details={"requested": str(amount), "available": str(self.stake)},
            )
        self.stake -= amount

    def release_for_rebond(self, now: int, amount: int) -> List[Tuple[int, Optional[int]]]:
        """Remove `amount` for a move into another period.

        Draws from matured tranches, then free stake, then unmatured tranches
        soonest-unlocking first. Returns (amount, unlock_time) portions where
        unlock_time is None for free stake and the tranche's own unlock time
        for portions taken out of a still-locked tranche.
        """
        self.free_unlocked(now)
        if amount > self.total_stake():
            raise NotEnoughStake(
                details={"requested": str(amount), "available": str(self.total_stake())},
            )

        portions: List[Tuple[int, Optional[int]]] = []
        take = min(self.stake, amount)
        if take:
            self.stake -= take
            portions.append((take, None))
        left = amount - take

        remaining: List[LockedTranche] = []
        for t in sorted(self.locked_tokens, key=lambda x: x.unlock_time):
            if left == 0:
                remaining.append(t)
                continue
            take = min(t.amount, left)
            portions.append((take, t.unlock_time))
            left -= take
            if take < t.amount:
                remaining.append(LockedTranche(t.amount - take, t.unlock_time))
        self.locked_tokens = remaining
        return portions


@dataclass
class TotalStake:
    staked: int = 0
    powered_stake: int = 0

    def to_json(self) -> Json:
        return {"staked": str(self.staked), "powered_stake": str(self.powered_stake)}

    @classmethod
    def from_json(cls, obj: Optional[Json]) -> "TotalStake":
        if not obj:
            return cls()
        return cls(as_u128(obj.get("staked", 0)), as_u128(obj.get("powered_stake", 0)))


def period_index(periods: Sequence[int], period: int) -> int:
    """Binary search for `period` in the sorted period list."""
    i = bisect_left(periods, period)
    if i == len(periods) or periods[i] != period:
        raise NoUnbondingPeriodFound(details={"unbonding_period": period})
    return i


def totals_index(totals: Sequence[Tuple[int, TotalStake]], period: int) -> int:
    return period_index([p for p, _ in totals], period)


def update_total_stake(total: TotalStake, min_bond: int, old_stake: int, new_stake: int) -> None:
    """Apply one staker's before/after totals for a period to the period total.

    Always pass the staker's full stake in the period, never a delta: the
    min_bond cutoff depends on which side of it each value falls.
    """
    if old_stake <= new_stake:
        total.staked = checked_add(total.staked, new_stake - old_stake)
    else:
        total.staked = checked_sub(total.staked, old_stake - new_stake)

    was_powered = old_stake >= min_bond
    is_powered = new_stake >= min_bond
    if not was_powered and is_powered:
        total.powered_stake = checked_add(total.powered_stake, new_stake)
    elif was_powered and not is_powered:
        total.powered_stake = checked_sub(total.powered_stake, old_stake)
    elif was_powered and is_powered:
        if new_stake >= old_stake:
            total.powered_stake = checked_add(total.powered_stake, new_stake - old_stake)
        else:
            total.powered_stake = checked_sub(total.powered_stake, old_stake - new_stake)
