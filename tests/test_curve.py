# tests/test_curve.py
from __future__ import annotations

import pytest

from stakeledger.ledger.curve import Curve
from stakeledger.runtime.errors import InvalidCurve, InvalidRewards


def test_constant_curve_is_flat() -> None:
    c = Curve.constant(100)
    assert c.value(0) == 100
    assert c.value(10_000) == 100
    assert c.range() == (100, 100)


def test_saturating_linear_interpolates_and_floors_toward_left_value() -> None:
    c = Curve.saturating_linear((10, 100), (20, 0))
    assert c.value(0) == 100
    assert c.value(10) == 100
    assert c.value(15) == 50
    # 100 - 100*3//10 = 70; 100 - 100*7//10 = 30
    assert c.value(13) == 70
    assert c.value(17) == 30
    assert c.value(20) == 0
    assert c.value(99) == 0


def test_decreasing_interpolation_rounds_toward_left_value() -> None:
    c = Curve.piecewise_linear([(0, 10), (3, 0)])
    # 10 - 10*1//3 = 7
    assert c.value(1) == 7
    assert c.value(2) == 4


def test_piecewise_linear_json_round_trip() -> None:
    raw = {"piecewise_linear": {"steps": [[0, "100"], [10, "40"], [50, "0"]]}}
    c = Curve.from_json(raw)
    assert c.points == ((0, 100), (10, 40), (50, 0))
    assert c.to_json() == raw
    assert Curve.from_json({"constant": {"y": "7"}}).to_json() == {"constant": {"y": "7"}}


def test_saturating_linear_from_json() -> None:
    c = Curve.from_json({"saturating_linear": {"min_x": 0, "min_y": "100", "max_x": 50, "max_y": "0"}})
    assert c.points == ((0, 100), (50, 0))


def test_times_must_increase() -> None:
    with pytest.raises(InvalidCurve):
        Curve.piecewise_linear([(10, 5), (10, 0)])
    with pytest.raises(InvalidCurve):
        Curve.from_json({"saturating_linear": {"min_x": 5, "min_y": "1", "max_x": 5, "max_y": "0"}})


def test_unknown_curve_kind_rejected() -> None:
    with pytest.raises(InvalidCurve):
        Curve.from_json({"exponential": {}})
    with pytest.raises(InvalidCurve):
        Curve.from_json({"constant": {"y": "1"}, "piecewise_linear": {"steps": []}})


def test_shift_moves_breakpoints_but_not_constants() -> None:
    c = Curve.saturating_linear((0, 100), (10, 0)).shift(1000)
    assert c.points == ((1000, 100), (1010, 0))
    assert Curve.constant(5).shift(1000) == Curve.constant(5)


def test_combine_sums_values_on_union_of_breakpoints() -> None:
    a = Curve.saturating_linear((0, 100), (10, 0))
    b = Curve.saturating_linear((5, 50), (20, 0))
    c = a.combine(b)
    assert [t for t, _ in c.points] == [0, 5, 10, 20]
    assert c.value(0) == 150
    assert c.value(5) == 100
    assert c.value(10) == 0 + 50 - 50 * 5 // 15
    assert c.value(20) == 0


def test_combine_of_shifted_curve_matches_sum_at_breakpoints() -> None:
    a = Curve.piecewise_linear([(0, 10), (3, 0)])
    b = Curve.piecewise_linear([(0, 7), (6, 0)])
    c = a.shift(2).combine(b)
    assert [t for t, _ in c.points] == [0, 2, 5, 6]
    for t, y in c.points:
        assert y == a.value(t - 2) + b.value(t)
    for t in range(0, 8):
        assert abs(c.value(t) - (a.value(t - 2) + b.value(t))) <= 1


def test_combine_rounds_once_between_breakpoints() -> None:
    a = Curve.piecewise_linear([(0, 10), (3, 0)])
    c = a.combine(a)
    assert c.points == ((0, 20), (3, 0))
    # 20 - 20*2//3 = 7, while each half rounds to 10 - 10*2//3 = 4
    assert c.value(2) == 7
    assert a.value(2) + a.value(2) == 8


def test_combine_with_constant_adds_level() -> None:
    c = Curve.constant(10).combine(Curve.saturating_linear((0, 100), (10, 0)))
    assert c.points == ((0, 110), (10, 10))
    assert Curve.constant(3).combine(Curve.constant(4)) == Curve.constant(7)


def test_monotonic_decreasing_validation() -> None:
    Curve.saturating_linear((0, 100), (10, 0)).validate_monotonic_decreasing()
    Curve.constant(5).validate_monotonic_decreasing()
    with pytest.raises(InvalidRewards):
        Curve.saturating_linear((0, 0), (10, 100)).validate_monotonic_decreasing()
