# src/stakeledger/runtime/instructions.py
from __future__ import annotations

"""Instruction envelope and the closed set of instruction variants.

Every call into the ledger arrives as an InstructionEnvelope:

    {"type": "bond", "sender": "alice", "now": 1700000000,
     "funds": [{"asset": {"token": "stake-token"}, "amount": "1000"}],
     "payload": {"unbonding_period": 20}}

parse_instruction() turns the envelope into exactly one variant dataclass or
raises. Unknown types fail with code `unknown_instruction`.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from stakeledger.ledger.assets import Asset, Coin, coins_from_json
from stakeledger.ledger.curve import Curve
from stakeledger.ledger.uint import as_u128, parse_decimal
from stakeledger.runtime.errors import ApplyError, InvalidInstruction

Json = Dict[str, Any]


def _as_addr(v: Any, *, field: str) -> str:
    s = str(v).strip() if isinstance(v, str) else ""
    if not s or "/" in s:
        raise InvalidInstruction("bad_address", {"field": field, "value": v})
    return s


def _opt_addr(v: Any, *, field: str) -> Optional[str]:
    if v is None or v == "":
        return None
    return _as_addr(v, field=field)


def _as_period(v: Any, *, field: str = "unbonding_period") -> int:
    if isinstance(v, bool) or not isinstance(v, int) or v < 0:
        raise InvalidInstruction("bad_period", {"field": field, "value": v})
    return v


def _as_dict(v: Any) -> Json:
    return v if isinstance(v, dict) else {}


@dataclass(frozen=True)
class InstructionEnvelope:
    type: str
    sender: str
    now: int
    funds: Tuple[Coin, ...] = ()
    payload: Json = field(default_factory=dict)

    @staticmethod
    def from_json(j: Any) -> "InstructionEnvelope":
        if isinstance(j, InstructionEnvelope):
            return j
        if not isinstance(j, dict):
            raise InvalidInstruction("envelope_must_be_object")
        now = j.get("now")
        if isinstance(now, bool) or not isinstance(now, int) or now < 0:
            raise InvalidInstruction("bad_now", {"now": now})
        return InstructionEnvelope(
            type=str(j.get("type", "") or "").strip().lower(),
            sender=_as_addr(j.get("sender"), field="sender"),
            now=now,
            funds=tuple(coins_from_json(j.get("funds"))),
            payload=dict(_as_dict(j.get("payload"))),
        )

    def to_json(self) -> Json:
        return {
            "type": self.type,
            "sender": self.sender,
            "now": self.now,
            "funds": [c.to_json() for c in self.funds],
            "payload": self.payload,
        }


# ---------------------------------------------------------------------------
# Variants
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Instantiate:
    staked_token: str
    collection: str
    tokens_per_power: int
    min_bond: int
    unbonding_periods: List[int]
    max_distributions: int
    admin: Optional[str] = None


@dataclass(frozen=True)
class Bond:
    unbonding_period: int
    delegate_as: Optional[str] = None


@dataclass(frozen=True)
class MassBond:
    unbonding_period: int
    delegate_to: List[Tuple[str, int]]


@dataclass(frozen=True)
class Unbond:
    tokens: int
    unbonding_period: int


@dataclass(frozen=True)
class Rebond:
    tokens: int
    bond_from: int
    bond_to: int


@dataclass(frozen=True)
class Claim:
    pass


@dataclass(frozen=True)
class CreateDistributionFlow:
    manager: str
    asset: Asset
    rewards: List[Tuple[int, int]]


@dataclass(frozen=True)
class FundDistribution:
    curve: Curve


@dataclass(frozen=True)
class DistributeRewards:
    sender: Optional[str] = None


@dataclass(frozen=True)
class WithdrawRewards:
    owner: Optional[str] = None
    receiver: Optional[str] = None


@dataclass(frozen=True)
class DelegateWithdrawal:
    delegated: str


Instruction = Union[
    Instantiate,
    Bond,
    MassBond,
    Unbond,
    Rebond,
    Claim,
    CreateDistributionFlow,
    FundDistribution,
    DistributeRewards,
    WithdrawRewards,
    DelegateWithdrawal,
]


# ---------------------------------------------------------------------------
# Parsers
# ---------------------------------------------------------------------------


def _parse_instantiate(p: Json) -> Instantiate:
    periods = p.get("unbonding_periods")
    if not isinstance(periods, list) or not periods:
        raise InvalidInstruction("bad_unbonding_periods", {"value": periods})
    return Instantiate(
        staked_token=_as_addr(p.get("staked_token"), field="staked_token"),
        collection=_as_addr(p.get("collection"), field="collection"),
        tokens_per_power=as_u128(p.get("tokens_per_power")),
        min_bond=as_u128(p.get("min_bond", 0)),
        unbonding_periods=[_as_period(x, field="unbonding_periods") for x in periods],
        max_distributions=_as_period(p.get("max_distributions", 6), field="max_distributions"),
        admin=_opt_addr(p.get("admin"), field="admin"),
    )


def _parse_bond(p: Json) -> Bond:
    return Bond(
        unbonding_period=_as_period(p.get("unbonding_period")),
        delegate_as=_opt_addr(p.get("delegate_as"), field="delegate_as"),
    )


def _parse_mass_bond(p: Json) -> MassBond:
    raw = p.get("delegate_to")
    if not isinstance(raw, list) or not raw:
        raise InvalidInstruction("bad_delegate_to", {"value": raw})
    pairs: List[Tuple[str, int]] = []
    for item in raw:
        if not isinstance(item, (list, tuple)) or len(item) != 2:
            raise InvalidInstruction("bad_delegation", {"value": item})
        pairs.append((_as_addr(item[0], field="delegate_to"), as_u128(item[1])))
    return MassBond(unbonding_period=_as_period(p.get("unbonding_period")), delegate_to=pairs)


def _parse_unbond(p: Json) -> Unbond:
    return Unbond(tokens=as_u128(p.get("tokens")), unbonding_period=_as_period(p.get("unbonding_period")))


def _parse_rebond(p: Json) -> Rebond:
    return Rebond(
        tokens=as_u128(p.get("tokens")),
        bond_from=_as_period(p.get("bond_from"), field="bond_from"),
        bond_to=_as_period(p.get("bond_to"), field="bond_to"),
    )


def _parse_create_distribution_flow(p: Json) -> CreateDistributionFlow:
    raw = p.get("rewards")
    if not isinstance(raw, list):
        raise InvalidInstruction("bad_rewards", {"value": raw})
    rewards: List[Tuple[int, int]] = []
    for item in raw:
        if not isinstance(item, (list, tuple)) or len(item) != 2:
            raise InvalidInstruction("bad_reward_multiplier", {"value": item})
        rewards.append((_as_period(item[0], field="rewards"), parse_decimal(item[1])))
    return CreateDistributionFlow(
        manager=_as_addr(p.get("manager"), field="manager"),
        asset=Asset.from_json(p.get("asset")),
        rewards=rewards,
    )


def _parse_fund_distribution(p: Json) -> FundDistribution:
    return FundDistribution(curve=Curve.from_json(p.get("curve")))


_PARSERS: Dict[str, Callable[[Json], Instruction]] = {
    "instantiate": _parse_instantiate,
    "bond": _parse_bond,
    "mass_bond": _parse_mass_bond,
    "unbond": _parse_unbond,
    "rebond": _parse_rebond,
    "claim": lambda p: Claim(),
    "create_distribution_flow": _parse_create_distribution_flow,
    "fund_distribution": _parse_fund_distribution,
    "distribute_rewards": lambda p: DistributeRewards(sender=_opt_addr(p.get("sender"), field="sender")),
    "withdraw_rewards": lambda p: WithdrawRewards(
        owner=_opt_addr(p.get("owner"), field="owner"),
        receiver=_opt_addr(p.get("receiver"), field="receiver"),
    ),
    "delegate_withdrawal": lambda p: DelegateWithdrawal(delegated=_as_addr(p.get("delegated"), field="delegated")),
}

INSTRUCTION_TYPES = tuple(sorted(_PARSERS))


def parse_instruction(env: InstructionEnvelope) -> Instruction:
    parser = _PARSERS.get(env.type)
    if parser is None:
        raise ApplyError("unknown_instruction", "instruction_type_not_supported", {"type": env.type})
    return parser(env.payload)
