# src/stakeledger/runtime/dispatch.py

from __future__ import annotations

from typing import Any, Dict

from stakeledger.ledger.state import LedgerState
from stakeledger.runtime.apply.rewards import apply_rewards
from stakeledger.runtime.apply.staking import apply_staking
from stakeledger.runtime.errors import ApplyError
from stakeledger.runtime.instructions import InstructionEnvelope, parse_instruction
from stakeledger.runtime.token_service import HostContext

Json = Dict[str, Any]


def apply_instruction(state: LedgerState, env: Any, host: HostContext) -> Json:
    """Parse an envelope and hand it to the domain applier that claims it.

    Raises ApplyError (or a subclass) on any rejection. Callers own the store
    transaction; nothing here rolls back.
    """
    env_norm = InstructionEnvelope.from_json(env)
    instr = parse_instruction(env_norm)

    out = apply_staking(state, env_norm, instr)
    if out is not None:
        return out

    out = apply_rewards(state, env_norm, instr, host)
    if out is not None:
        return out

    raise ApplyError("unknown_instruction", "instruction_not_claimed", {"type": env_norm.type})
