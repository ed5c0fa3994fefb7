# tests/test_rewards_power.py
from __future__ import annotations

import pytest

from conftest import Harness
from stakeledger.runtime.errors import NoRebondAmount, NotEnoughStake, NoUnbondingPeriodFound, SameUnbondingRebond

USER1 = "user1"
USER2 = "user2"
USER3 = "user3"


def _setup_single_period(h: Harness) -> None:
    h.instantiate(periods=(20,), tokens_per_power=1000, min_bond=5000)
    h.create_flow([[20, "0.01"]])


def _setup_two_periods(h: Harness) -> None:
    h.instantiate(periods=(20, 40), tokens_per_power=1000, min_bond=1000)
    h.create_flow([[20, "0.01"], [40, "0.1"]])


def test_power_follows_bond_and_unbond(harness: Harness) -> None:
    _setup_single_period(harness)
    harness.bond(USER1, 1_200_000, 20)
    harness.bond(USER2, 770_000, 20)
    harness.bond(USER3, 4_000_000, 20)

    assert harness.power_of(USER1) == 12
    assert harness.power_of(USER2) == 7
    assert harness.power_of(USER3) == 40

    harness.unbond(USER1, 100_000, 20)
    harness.unbond(USER2, 99_600, 20)
    harness.unbond(USER3, 3_600_000, 20)

    assert harness.power_of(USER1) == 11
    assert harness.power_of(USER2) == 6
    assert harness.power_of(USER3) == 4


def test_stake_below_min_bond_has_no_power(harness: Harness) -> None:
    _setup_single_period(harness)
    harness.bond(USER1, 4_999, 20)
    assert harness.power_of(USER1) is None
    assert harness.query("rewards_power", address=USER1) == {"rewards": []}

    total = harness.query("total_rewards_power")["rewards"]
    assert total == [[{"native": "ureward"}, "0"]]

    harness.bond(USER1, 1, 20)
    # powered now, but 50 // 1000 rounds to nothing
    assert harness.power_of(USER1) is None
    assert harness.ex.state().load_totals()[0][1].powered_stake == 5_000


def test_power_is_floored_per_period(harness: Harness) -> None:
    _setup_two_periods(harness)
    harness.bond(USER3, 10_000, 20)
    harness.bond(USER3, 9_000, 40)
    # 100 // 1000 + 900 // 1000, not (100 + 900) // 1000
    assert harness.power_of(USER3) is None


def test_rebond_moves_power_between_periods(harness: Harness) -> None:
    _setup_two_periods(harness)
    for user, amount in ((USER1, 1_000_000), (USER2, 180_000), (USER3, 10_000)):
        harness.bond(user, amount, 20)
    assert (harness.power_of(USER1), harness.power_of(USER2), harness.power_of(USER3)) == (10, 1, None)

    for user, amount in ((USER1, 1_000_000), (USER2, 100_000), (USER3, 9_000)):
        harness.bond(user, amount, 40)
    assert (harness.power_of(USER1), harness.power_of(USER2), harness.power_of(USER3)) == (110, 11, None)

    for user, amount in ((USER1, 100_000), (USER2, 180_000), (USER3, 10_000)):
        r = harness.rebond(user, amount, 20, 40, now=100)
        assert r["applied"] == "REBOND"
    assert (harness.power_of(USER1), harness.power_of(USER2), harness.power_of(USER3)) == (119, 28, 1)

    assert [harness.stake_of(u, 20) for u in (USER1, USER2, USER3)] == [900_000, 0, 0]
    assert [harness.stake_of(u, 40) for u in (USER1, USER2, USER3)] == [1_100_000, 280_000, 19_000]

    # 900_000 * 0.01 // 1000 + 1_399_000 * 0.1 // 1000
    assert harness.query("total_rewards_power")["rewards"] == [[{"native": "ureward"}, "148"]]

    # moving to a longer period leaves nothing locked
    assert harness.query("staked", now=100, address=USER1, unbonding_period=40)["total_locked"] == "0"


def test_rebond_to_shorter_period_locks_the_difference(harness: Harness) -> None:
    _setup_two_periods(harness)
    harness.bond(USER1, 50_000, 40, now=0)

    harness.rebond(USER1, 20_000, 40, 20, now=100)
    staked = harness.query("staked", now=100, address=USER1, unbonding_period=20)
    assert staked["stake"] == "20000"
    assert staked["total_locked"] == "20000"

    # locked tokens cannot be unbonded before now + (40 - 20)
    with pytest.raises(NotEnoughStake):
        harness.unbond(USER1, 1, 20, now=119)
    assert harness.query("staked", now=120, address=USER1, unbonding_period=20)["total_locked"] == "0"
    harness.unbond(USER1, 20_000, 20, now=120)
    assert harness.query("claims", address=USER1)["claims"] == [{"amount": "20000", "release_at": 140}]


def test_rebond_locked_tranche_back_to_longer_period_is_free(harness: Harness) -> None:
    _setup_two_periods(harness)
    harness.bond(USER1, 50_000, 40, now=0)
    harness.rebond(USER1, 20_000, 40, 20, now=100)

    # tranche unlocks at 120; moving it back to 40 subtracts 20 again
    harness.rebond(USER1, 20_000, 20, 40, now=105)
    staked = harness.query("staked", now=105, address=USER1, unbonding_period=40)
    assert staked["stake"] == "50000"
    assert staked["total_locked"] == "0"
    assert harness.stake_of(USER1, 20, now=105) == 0


def test_rebond_rejections(harness: Harness) -> None:
    _setup_two_periods(harness)
    harness.bond(USER1, 5_000, 20)

    with pytest.raises(NoRebondAmount):
        harness.rebond(USER1, 0, 20, 40)
    with pytest.raises(SameUnbondingRebond):
        harness.rebond(USER1, 100, 20, 20)
    with pytest.raises(NoUnbondingPeriodFound):
        harness.rebond(USER1, 100, 20, 30)
    with pytest.raises(NotEnoughStake):
        harness.rebond(USER1, 5_001, 20, 40)
    assert harness.stake_of(USER1, 20) == 5_000
