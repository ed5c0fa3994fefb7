from __future__ import annotations

"""Pydantic request schemas for the HTTP API.

These only validate the outer shape of a request. Instruction payloads are
parsed and checked by stakeledger.runtime.instructions.
"""

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field


class CoinModel(BaseModel):
    asset: Dict[str, str] = Field(..., description="Asset, e.g. {\"token\": \"stake-token\"} or {\"native\": \"ustake\"}")
    amount: Union[int, str] = Field(..., description="Atomic units")


class ExecuteRequest(BaseModel):
    type: str = Field(..., description="Instruction name, e.g. bond, unbond, withdraw_rewards")
    sender: str = Field(..., description="Address the instruction is sent from")
    now: int = Field(..., ge=0, description="Block time in seconds")
    funds: List[CoinModel] = Field(default_factory=list, description="Coins attached to the instruction")
    payload: Dict[str, Any] = Field(default_factory=dict, description="Instruction-specific fields")

    model_config = {"extra": "allow"}


class QueryRequest(BaseModel):
    query: str = Field(..., description="Query kind, e.g. staked, claims, withdrawable_rewards")
    now: Optional[int] = Field(default=None, ge=0, description="Evaluation time; defaults to the server clock")

    # query-specific fields (address, unbonding_period, owner, ...) ride along as extras
    model_config = {"extra": "allow"}


class MintRequest(BaseModel):
    holder: str = Field(..., description="Address to credit")
    coin: CoinModel = Field(..., description="Asset and amount to mint")
