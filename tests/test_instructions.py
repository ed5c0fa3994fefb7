from __future__ import annotations

import pytest

from stakeledger.ledger.assets import Asset
from stakeledger.ledger.curve import Curve
from stakeledger.runtime.errors import ApplyError, InvalidCurve
from stakeledger.runtime.instructions import (
    INSTRUCTION_TYPES,
    Bond,
    CreateDistributionFlow,
    FundDistribution,
    InstructionEnvelope,
    MassBond,
    WithdrawRewards,
    parse_instruction,
)


def _env(type_: str, payload: dict, **kw) -> InstructionEnvelope:
    raw = {"type": type_, "sender": "alice", "now": 10, "payload": payload}
    raw.update(kw)
    return InstructionEnvelope.from_json(raw)


def test_envelope_normalizes_type_and_funds() -> None:
    env = _env(" BOND ", {"unbonding_period": 20}, funds=[{"asset": {"token": "stake"}, "amount": "5"}])
    assert env.type == "bond"
    assert env.funds[0].asset == Asset.token("stake")
    assert env.funds[0].amount == 5
    assert env.to_json()["funds"] == [{"asset": {"token": "stake"}, "amount": "5"}]


def test_parse_variants() -> None:
    assert parse_instruction(_env("bond", {"unbonding_period": 20})) == Bond(20, None)
    assert parse_instruction(_env("bond", {"unbonding_period": 20, "delegate_as": "bob"})) == Bond(20, "bob")

    mb = parse_instruction(_env("mass_bond", {"unbonding_period": 20, "delegate_to": [["bob", "3"], ["carol", 4]]}))
    assert mb == MassBond(20, [("bob", 3), ("carol", 4)])

    flow = parse_instruction(
        _env(
            "create_distribution_flow",
            {"manager": "m", "asset": {"native": "ureward"}, "rewards": [[20, "0.5"], [40, "1"]]},
        )
    )
    assert isinstance(flow, CreateDistributionFlow)
    assert flow.rewards == [(20, 5 * 10**17), (40, 10**18)]

    fund = parse_instruction(_env("fund_distribution", {"curve": {"constant": {"y": "0"}}}))
    assert fund == FundDistribution(Curve.constant(0))

    assert parse_instruction(_env("withdraw_rewards", {})) == WithdrawRewards(None, None)


def test_parse_rejections() -> None:
    with pytest.raises(ApplyError) as e:
        parse_instruction(_env("bond", {"unbonding_period": "20"}))
    assert e.value.code == "invalid_instruction"

    with pytest.raises(ApplyError) as e:
        parse_instruction(_env("mass_bond", {"unbonding_period": 20, "delegate_to": []}))
    assert e.value.code == "invalid_instruction"

    with pytest.raises(ApplyError) as e:
        parse_instruction(_env("unbond", {"tokens": "-5", "unbonding_period": 20}))
    assert e.value.code == "arithmetic_overflow"

    with pytest.raises(InvalidCurve):
        parse_instruction(_env("fund_distribution", {"curve": {"steps": []}}))

    with pytest.raises(ApplyError) as e:
        parse_instruction(_env("create_distribution_flow", {"manager": "m", "asset": {"cw721": "x"}, "rewards": []}))
    assert e.value.code == "invalid_instruction"


def test_every_type_has_a_parser() -> None:
    assert set(INSTRUCTION_TYPES) == {
        "instantiate",
        "bond",
        "mass_bond",
        "unbond",
        "rebond",
        "claim",
        "create_distribution_flow",
        "fund_distribution",
        "distribute_rewards",
        "withdraw_rewards",
        "delegate_withdrawal",
    }
