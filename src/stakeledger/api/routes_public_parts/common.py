from __future__ import annotations

from typing import Any, Dict

from fastapi import Request

from stakeledger.api.errors import ApiError

Json = Dict[str, Any]


def _executor(request: Request):
    ex = getattr(request.app.state, "executor", None)
    if ex is None:
        raise ApiError.internal("not_ready", "executor not attached to app.state", {})
    return ex
