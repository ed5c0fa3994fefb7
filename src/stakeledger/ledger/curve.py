# src/stakeledger/ledger/curve.py
from __future__ import annotations

"""Piecewise-linear emission curves.

A curve maps a timestamp (seconds) to the amount of a reward asset that is
still locked at that time. Funding schedules are built from these and must
only ever decrease, so rewards can be released early but never clawed back.

Evaluation uses integer arithmetic throughout: between two breakpoints the
interpolated value is rounded toward the left breakpoint's value. Outside the
breakpoints the curve is flat.

Because of that rounding, shift and combine are exact only at breakpoints:
combine(shift(a, dt), b) agrees with a(t - dt) + b(t) at every breakpoint of
the result, and between breakpoints it may differ from that sum by one unit.

JSON forms accepted by Curve.from_json:

    {"constant": {"y": "100"}}
    {"saturating_linear": {"min_x": 0, "min_y": "100", "max_x": 50, "max_y": "0"}}
    {"piecewise_linear": {"steps": [[0, "100"], [10, "40"], [50, "0"]]}}
"""

from bisect import bisect_right
from dataclasses import dataclass
from typing import Any, Dict, List, Sequence, Tuple

from stakeledger.ledger.uint import as_u128, checked_add
from stakeledger.runtime.errors import InvalidCurve, InvalidRewards

Json = Dict[str, Any]
Point = Tuple[int, int]


def _as_time(v: Any) -> int:
    if isinstance(v, bool) or not isinstance(v, (int, str)):
        raise InvalidCurve("bad_time", {"value": v})
    try:
        t = int(v)
    except ValueError:
        raise InvalidCurve("bad_time", {"value": v}) from None
    if t < 0:
        raise InvalidCurve("negative_time", {"value": t})
    return t


@dataclass(frozen=True)
class Curve:
    points: Tuple[Point, ...]

    def __post_init__(self) -> None:
        if not self.points:
            raise InvalidCurve("empty_curve")
        prev = None
        for t, _y in self.points:
            if prev is not None and t <= prev:
                raise InvalidCurve("times_not_increasing", {"time": t})
            prev = t

    # ------------------------------------------------------------------
    # constructors
    # ------------------------------------------------------------------

    @classmethod
    def constant(cls, y: int) -> "Curve":
        return cls(((0, int(y)),))

    @classmethod
    def saturating_linear(cls, start: Point, end: Point) -> "Curve":
        (t0, y0), (t1, y1) = start, end
        if t1 <= t0:
            raise InvalidCurve("saturating_linear_bad_range", {"min_x": t0, "max_x": t1})
        return cls(((int(t0), int(y0)), (int(t1), int(y1))))

    @classmethod
    def piecewise_linear(cls, steps: Sequence[Point]) -> "Curve":
        return cls(tuple((int(t), int(y)) for t, y in steps))

    @classmethod
    def from_json(cls, obj: Any) -> "Curve":
        if not isinstance(obj, dict) or len(obj) != 1:
            raise InvalidCurve("curve_must_have_one_variant", {"value": obj})
        kind, body = next(iter(obj.items()))
        if not isinstance(body, dict):
            raise InvalidCurve("bad_curve_body", {"kind": kind})
        if kind == "constant":
            return cls.constant(as_u128(body.get("y")))
        if kind == "saturating_linear":
            return cls.saturating_linear(
                (_as_time(body.get("min_x")), as_u128(body.get("min_y"))),
                (_as_time(body.get("max_x")), as_u128(body.get("max_y"))),
            )
        if kind == "piecewise_linear":
            steps = body.get("steps")
            if not isinstance(steps, list) or not steps:
                raise InvalidCurve("bad_steps")
            parsed: List[Point] = []
            for step in steps:
                if not isinstance(step, (list, tuple)) or len(step) != 2:
                    raise InvalidCurve("bad_step", {"step": step})
                parsed.append((_as_time(step[0]), as_u128(step[1])))
            return cls.piecewise_linear(parsed)
        raise InvalidCurve("unknown_curve_kind", {"kind": kind})

    def to_json(self) -> Json:
        if len(self.points) == 1:
            return {"constant": {"y": str(self.points[0][1])}}
        return {"piecewise_linear": {"steps": [[t, str(y)] for t, y in self.points]}}

    # ------------------------------------------------------------------
    # algebra
    # ------------------------------------------------------------------

    def value(self, t: int) -> int:
        pts = self.points
        if t <= pts[0][0]:
            return pts[0][1]
        if t >= pts[-1][0]:
            return pts[-1][1]
        i = bisect_right([p[0] for p in pts], t)
        t0, y0 = pts[i - 1]
        t1, y1 = pts[i]
        if t == t0:
            return y0
        dt = t1 - t0
        if y1 >= y0:
            return y0 + (y1 - y0) * (t - t0) // dt
        return y0 - (y0 - y1) * (t - t0) // dt

    def range(self) -> Tuple[int, int]:
        ys = [y for _t, y in self.points]
        return min(ys), max(ys)

    def shift(self, dt: int) -> "Curve":
        if len(self.points) == 1:
            return self
        return Curve(tuple((t + dt, y) for t, y in self.points))

    def combine(self, other: "Curve") -> "Curve":
        if len(self.points) == 1 and len(other.points) == 1:
            return Curve.constant(checked_add(self.points[0][1], other.points[0][1]))
        # a single point carries no breakpoint, only a flat level
        times = set()
        for c in (self, other):
            if len(c.points) > 1:
                times.update(t for t, _ in c.points)
        return Curve(tuple((t, checked_add(self.value(t), other.value(t))) for t in sorted(times)))

    def validate_monotonic_decreasing(self) -> None:
        for (t0, y0), (t1, y1) in zip(self.points, self.points[1:]):
            if y1 > y0:
                raise InvalidRewards("curve_not_monotonic_decreasing", {"from": [t0, str(y0)], "to": [t1, str(y1)]})
