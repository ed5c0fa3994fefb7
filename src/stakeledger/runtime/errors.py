from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


@dataclass
class ApplyError(Exception):
    """Canonical error type for instruction apply and query failures."""

    code: str
    reason: str
    details: Any | None = None

    def __str__(self) -> str:  # pragma: no cover
        if self.details is None:
            return f"{self.code}:{self.reason}"
        return f"{self.code}:{self.reason}:{self.details}"


# Each subclass pins `code` so callers can match on either the class or the
# string carried in receipts and HTTP bodies.


def _error(code: str, default_reason: str):
    def __init__(self, reason: Optional[str] = None, details: Any | None = None) -> None:
        ApplyError.__init__(self, code, reason or default_reason, details)

    return __init__


class NoUnbondingPeriodFound(ApplyError):
    __init__ = _error("no_unbonding_period_found", "unbonding_period_not_configured")


class InvalidRewards(ApplyError):
    __init__ = _error("invalid_rewards", "invalid_rewards")


class InvalidCurve(ApplyError):
    __init__ = _error("invalid_curve", "invalid_curve")


class InvalidAsset(ApplyError):
    __init__ = _error("invalid_asset", "staked_token_not_distributable")


class TokenMismatch(ApplyError):
    __init__ = _error("token_mismatch", "staked_token_address_mismatch")


class TooManyDistributions(ApplyError):
    __init__ = _error("too_many_distributions", "max_distributions_reached")


class DistributionAlreadyExists(ApplyError):
    __init__ = _error("distribution_already_exists", "distribution_already_exists")


class NoDistributionFlow(ApplyError):
    __init__ = _error("no_distribution_flow", "no_distribution_flow_for_asset")


class MassDelegateTooMuch(ApplyError):
    __init__ = _error("mass_delegate_too_much", "delegations_exceed_amount_sent")


class MassDelegateUnallocated(ApplyError):
    __init__ = _error("mass_delegate_unallocated", "delegations_below_amount_sent")


class Unauthorized(ApplyError):
    __init__ = _error("unauthorized", "unauthorized")


class InvalidInstruction(ApplyError):
    __init__ = _error("invalid_instruction", "malformed_instruction")


class NotEnoughStake(ApplyError):
    __init__ = _error("not_enough_stake", "insufficient_available_stake")


class NothingToClaim(ApplyError):
    __init__ = _error("nothing_to_claim", "no_matured_claims")


class SameUnbondingRebond(ApplyError):
    __init__ = _error("same_unbonding_rebond", "bond_from_equals_bond_to")


class NoRebondAmount(ApplyError):
    __init__ = _error("no_rebond_amount", "rebond_amount_is_zero")


class NotInstantiated(ApplyError):
    __init__ = _error("not_instantiated", "ledger_not_instantiated")


class AlreadyInstantiated(ApplyError):
    __init__ = _error("already_instantiated", "ledger_already_instantiated")


class ArithmeticOverflow(ApplyError):
    __init__ = _error("arithmetic_overflow", "checked_arithmetic_failed")
