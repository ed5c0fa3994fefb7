# tests/test_staking_flows.py
from __future__ import annotations

import pytest

from conftest import LEDGER_ADDR, STAKE_ASSET, Harness, coin
from stakeledger.ledger.assets import Asset
from stakeledger.runtime.errors import (
    AlreadyInstantiated,
    ApplyError,
    InvalidInstruction,
    MassDelegateTooMuch,
    MassDelegateUnallocated,
    NotEnoughStake,
    NothingToClaim,
    NoUnbondingPeriodFound,
    TokenMismatch,
)

USER1 = "user1"
USER2 = "user2"
USER3 = "user3"


def test_instantiate_once_and_normalize_config(harness: Harness) -> None:
    r = harness.instantiate(periods=(40, 20, 20), min_bond=0)
    assert r["applied"] == "INSTANTIATE"
    assert r["config"]["unbonding_periods"] == [20, 40]
    assert r["config"]["min_bond"] == "1"
    assert r["config"]["max_distributions"] == 6

    with pytest.raises(AlreadyInstantiated):
        harness.instantiate()


def test_instructions_before_instantiate_are_rejected(harness: Harness) -> None:
    with pytest.raises(ApplyError) as e:
        harness.bond(USER1, 1000, 20)
    assert e.value.code == "not_instantiated"


def test_bond_moves_tokens_and_updates_totals(harness: Harness) -> None:
    harness.instantiate(periods=(20,))
    r = harness.bond(USER1, 12_000, 20, now=5)
    assert r["applied"] == "BOND"

    assert harness.balance(STAKE_ASSET, USER1) == 0
    assert harness.balance(STAKE_ASSET, LEDGER_ADDR) == 12_000
    assert harness.stake_of(USER1, 20) == 12_000
    assert harness.query("total_staked") == {"total_staked": "12000"}
    assert harness.query("bonding_info") == {"bonding": [{"unbonding_period": 20, "total_staked": "12000"}]}


def test_bond_rejects_wrong_token_and_extra_coins(harness: Harness) -> None:
    harness.instantiate(periods=(20,))
    other = Asset.native("uother")
    harness.tokens.mint(other, USER1, 100)
    harness.tokens.mint(STAKE_ASSET, USER1, 100)

    with pytest.raises(TokenMismatch):
        harness.execute("bond", USER1, 0, {"unbonding_period": 20}, [coin(other, 100)])
    with pytest.raises(TokenMismatch):
        harness.execute("bond", USER1, 0, {"unbonding_period": 20}, [coin(STAKE_ASSET, 50), coin(other, 50)])
    with pytest.raises(TokenMismatch):
        harness.execute("bond", USER1, 0, {"unbonding_period": 20}, [])

    # nothing moved
    assert harness.balance(STAKE_ASSET, USER1) == 100
    assert harness.stake_of(USER1, 20) == 0


def test_bond_unknown_period_and_zero_amount(harness: Harness) -> None:
    harness.instantiate(periods=(20,))
    with pytest.raises(NoUnbondingPeriodFound):
        harness.bond(USER1, 1000, 30)
    with pytest.raises(InvalidInstruction):
        harness.bond(USER1, 0, 20)


def test_bond_on_behalf_of_another_staker(harness: Harness) -> None:
    harness.instantiate(periods=(20,))
    harness.bond(USER1, 5000, 20, delegate_as=USER2)
    assert harness.stake_of(USER1, 20) == 0
    assert harness.stake_of(USER2, 20) == 5000


def test_unbond_more_than_staked_fails(harness: Harness) -> None:
    harness.instantiate(periods=(20,))
    harness.bond(USER1, 1000, 20)
    with pytest.raises(NotEnoughStake):
        harness.unbond(USER1, 1001, 20)
    with pytest.raises(InvalidInstruction):
        harness.unbond(USER1, 0, 20)


def test_unbond_and_claim_workflow(harness: Harness) -> None:
    harness.instantiate(periods=(20,), min_bond=5000)
    t = 1000

    harness.bond(USER1, 12_000, 20, now=t + 5)
    harness.bond(USER2, 7_500, 20, now=t + 5)
    harness.bond(USER3, 4_000, 20, now=t + 5)

    r = harness.unbond(USER1, 4_500, 20, now=t + 10)
    assert r["release_at"] == t + 30
    harness.unbond(USER2, 2_600, 20, now=t + 10)

    harness.unbond(USER2, 1_345, 20, now=t + 22)
    harness.unbond(USER3, 1_500, 20, now=t + 22)

    assert harness.query("total_staked")["total_staked"] == str(12_000 + 7_500 + 4_000 - 4_500 - 2_600 - 1_345 - 1_500)
    assert harness.query("total_unbonding")["total_unbonding"] == str(4_500 + 2_600 + 1_345 + 1_500)
    assert harness.query("claims", address=USER2)["claims"] == [
        {"amount": "2600", "release_at": t + 30},
        {"amount": "1345", "release_at": t + 42},
    ]

    with pytest.raises(NothingToClaim):
        harness.claim(USER1, now=t + 22)

    r = harness.claim(USER1, now=t + 30)
    assert r["amount"] == "4500"
    assert harness.balance(STAKE_ASSET, USER1) == 4_500
    r = harness.claim(USER2, now=t + 30)
    assert r["amount"] == "2600"
    with pytest.raises(NothingToClaim):
        harness.claim(USER3, now=t + 30)

    harness.unbond(USER2, 600, 20, now=t + 26)
    harness.unbond(USER2, 1_005, 20, now=t + 30)

    r = harness.claim(USER2, now=t + 52)
    assert r["amount"] == "2950"
    assert harness.balance(STAKE_ASSET, USER2) == 2_600 + 2_950
    assert harness.query("claims", address=USER2)["claims"] == []
    assert harness.stake_of(USER2, 20) == 7_500 - 2_600 - 1_345 - 600 - 1_005


def test_mass_bond_splits_between_recipients(harness: Harness) -> None:
    harness.instantiate(periods=(20, 40))
    harness.tokens.mint(STAKE_ASSET, USER1, 10_000)

    r = harness.execute(
        "mass_bond",
        USER1,
        0,
        {"unbonding_period": 40, "delegate_to": [[USER2, "6000"], [USER3, "4000"]]},
        [coin(STAKE_ASSET, 10_000)],
    )
    assert r["applied"] == "MASS_BOND"
    assert r["recipients"] == 2
    assert harness.stake_of(USER2, 40) == 6_000
    assert harness.stake_of(USER3, 40) == 4_000
    assert harness.stake_of(USER1, 40) == 0
    assert harness.query("total_staked")["total_staked"] == "10000"


def test_mass_bond_must_allocate_exactly_what_was_sent(harness: Harness) -> None:
    harness.instantiate(periods=(20,))
    harness.tokens.mint(STAKE_ASSET, USER1, 10_000)

    with pytest.raises(MassDelegateTooMuch):
        harness.execute(
            "mass_bond",
            USER1,
            0,
            {"unbonding_period": 20, "delegate_to": [[USER2, "6000"], [USER3, "4001"]]},
            [coin(STAKE_ASSET, 10_000)],
        )
    with pytest.raises(MassDelegateUnallocated):
        harness.execute(
            "mass_bond",
            USER1,
            0,
            {"unbonding_period": 20, "delegate_to": [[USER2, "6000"], [USER3, "3999"]]},
            [coin(STAKE_ASSET, 10_000)],
        )
    assert harness.balance(STAKE_ASSET, USER1) == 10_000


def test_all_staked_lists_only_periods_with_records(harness: Harness) -> None:
    harness.instantiate(periods=(20, 40, 60))
    harness.bond(USER1, 1_000, 20)
    harness.bond(USER1, 2_000, 60)

    out = harness.query("all_staked", address=USER1)
    assert [(s["unbonding_period"], s["stake"]) for s in out["stakes"]] == [(20, "1000"), (60, "2000")]
    assert all(s["staked_token"] == "stake-token" for s in out["stakes"])


def test_staked_query_for_unknown_period_fails(harness: Harness) -> None:
    harness.instantiate(periods=(20,))
    with pytest.raises(NoUnbondingPeriodFound):
        harness.query("staked", address=USER1, unbonding_period=21)
    assert harness.query("staked", address=USER1, unbonding_period=20)["stake"] == "0"
