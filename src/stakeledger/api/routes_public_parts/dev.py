from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from stakeledger.api.routes_public_parts.common import _executor
from stakeledger.api.schemas import MintRequest

router = APIRouter()

Json = Dict[str, Any]


@router.post("/mint")
def mint(request: Request, body: MintRequest) -> Json:
    """Credit an address with tokens so it can attach funds to instructions.

    Only mounted when the node runs outside prod mode.
    """
    ex = _executor(request)
    result = ex.mint(body.holder, body.coin.model_dump())
    return {"ok": True, "result": result}
