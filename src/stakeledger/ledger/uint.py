# src/stakeledger/ledger/uint.py
from __future__ import annotations

"""Checked integer arithmetic and fixed-point multipliers.

Python ints never overflow, so the 128-bit bounds the ledger relies on are
enforced here explicitly. Every aggregate (TotalStake, TokenInfo,
Distribution totals, shares corrections) goes through these helpers.
"""

from decimal import Decimal, InvalidOperation
from typing import Any

from stakeledger.ledger.constants import (
    DECIMAL_FRACTIONAL,
    DECIMAL_PLACES,
    I128_MAX,
    I128_MIN,
    U128_MAX,
)
from stakeledger.runtime.errors import ArithmeticOverflow


def _check_u128(v: int, op: str) -> int:
    if v < 0 or v > U128_MAX:
        raise ArithmeticOverflow("u128_out_of_range", {"op": op, "value": str(v)})
    return v


def _check_i128(v: int, op: str) -> int:
    if v < I128_MIN or v > I128_MAX:
        raise ArithmeticOverflow("i128_out_of_range", {"op": op, "value": str(v)})
    return v


def as_u128(v: Any) -> int:
    """Parse an amount from JSON (int or decimal string) into a checked u128."""
    if isinstance(v, bool):
        raise ArithmeticOverflow("bad_amount", {"value": v})
    if isinstance(v, int):
        return _check_u128(v, "parse")
    if isinstance(v, str) and v.strip().isdigit():
        return _check_u128(int(v.strip()), "parse")
    raise ArithmeticOverflow("bad_amount", {"value": v})


def checked_add(a: int, b: int) -> int:
    return _check_u128(a + b, "add")


def checked_sub(a: int, b: int) -> int:
    return _check_u128(a - b, "sub")


def checked_mul(a: int, b: int) -> int:
    return _check_u128(a * b, "mul")


def saturating_sub(a: int, b: int) -> int:
    return a - b if a > b else 0


def checked_add_signed(a: int, b: int) -> int:
    return _check_i128(a + b, "add_signed")


def checked_mul_signed(a: int, b: int) -> int:
    return _check_i128(a * b, "mul_signed")


# ---------------------------------------------------------------------------
# Fixed-point multipliers (18 fractional digits)
# ---------------------------------------------------------------------------


def parse_decimal(v: Any) -> int:
    """Return the atomics (value * 10**18) of a non-negative decimal.

    Accepts strings like "0.01" or "1". Digits past the 18th fractional
    place are rejected rather than rounded.
    """
    if isinstance(v, bool) or not isinstance(v, (str, int)):
        raise ArithmeticOverflow("bad_decimal", {"value": v})
    try:
        d = Decimal(str(v).strip())
    except InvalidOperation:
        raise ArithmeticOverflow("bad_decimal", {"value": v}) from None
    if not d.is_finite() or d < 0:
        raise ArithmeticOverflow("bad_decimal", {"value": v})
    scaled = d.scaleb(DECIMAL_PLACES)
    if scaled != scaled.to_integral_value():
        raise ArithmeticOverflow("decimal_precision", {"value": v})
    return _check_u128(int(scaled), "parse_decimal")


def format_decimal(atomics: int) -> str:
    """Inverse of parse_decimal; trailing fractional zeros are dropped."""
    whole, frac = divmod(int(atomics), DECIMAL_FRACTIONAL)
    if frac == 0:
        return str(whole)
    frac_s = str(frac).rjust(DECIMAL_PLACES, "0").rstrip("0")
    return f"{whole}.{frac_s}"


def mul_floor(amount: int, atomics: int) -> int:
    """amount * multiplier, rounded down."""
    return _check_u128(amount * atomics // DECIMAL_FRACTIONAL, "mul_floor")


def ratio_floor(numerator: int, denominator: int) -> int:
    """numerator / denominator as 18-digit fixed-point atomics, rounded down."""
    if denominator == 0:
        raise ArithmeticOverflow("division_by_zero", {"numerator": str(numerator)})
    return numerator * DECIMAL_FRACTIONAL // denominator
