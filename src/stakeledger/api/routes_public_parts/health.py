from __future__ import annotations

import os
import time
from typing import Any

from fastapi import APIRouter, Request

router = APIRouter()


def _now_ms() -> int:
    return int(time.time() * 1000)


def _is_instantiated(ex: Any) -> bool:
    if ex is None or not callable(getattr(ex, "state", None)):
        return False
    return bool(ex.state().is_instantiated())


@router.get("/health")
def health(request: Request) -> dict[str, object]:
    """Liveness: the process is up. Never touches storage."""
    ex = getattr(request.app.state, "executor", None)
    return {
        "ok": True,
        "service": "stakeledger",
        "version": "v1",
        "ts_ms": _now_ms(),
        "mode": (os.environ.get("STAKELEDGER_MODE") or "prod").strip().lower(),
        "executor_attached": ex is not None,
    }


@router.get("/readyz")
def readyz(request: Request) -> dict[str, object]:
    """Readiness: an executor is attached and the ledger has been instantiated."""
    ex = getattr(request.app.state, "executor", None)
    instantiated = _is_instantiated(ex)
    return {
        "ok": ex is not None and instantiated,
        "service": "stakeledger",
        "version": "v1",
        "ts_ms": _now_ms(),
        "contract_address": getattr(ex, "contract_address", None),
        "instantiated": instantiated,
    }
