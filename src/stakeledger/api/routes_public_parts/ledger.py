from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from stakeledger.api.routes_public_parts.common import _executor
from stakeledger.api.schemas import ExecuteRequest, QueryRequest
from stakeledger.runtime.instructions import INSTRUCTION_TYPES
from stakeledger.runtime.queries import QUERY_KINDS

router = APIRouter()

Json = Dict[str, Any]


@router.post("/execute")
def execute(request: Request, body: ExecuteRequest) -> Json:
    """Apply one instruction.

    Returns:
      { ok: true, receipt }  on success
      { ok: false, error }   with 400 when the ledger rejects it
    """
    ex = _executor(request)
    receipt = ex.execute(body.model_dump())
    return {"ok": True, "receipt": receipt}


@router.post("/query")
def query(request: Request, body: QueryRequest) -> Json:
    ex = _executor(request)
    q = body.model_dump()
    now = q.pop("now", None)
    return {"ok": True, "result": ex.query(q, now=now)}


@router.get("/ledger/schema")
def ledger_schema() -> Json:
    return {"ok": True, "instructions": sorted(INSTRUCTION_TYPES), "queries": sorted(QUERY_KINDS)}
