from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from stakeledger.runtime.errors import ApplyError


@dataclass(slots=True)
class ApiError(Exception):
    status_code: int
    code: str
    message: str
    details: Dict[str, Any]

    @staticmethod
    def internal(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> "ApiError":
        return ApiError(500, code, message, details or {})

    @staticmethod
    def from_apply_error(e: ApplyError) -> "ApiError":
        details = e.details if isinstance(e.details, dict) else ({} if e.details is None else {"details": e.details})
        return ApiError(400, e.code, e.reason, dict(details))


def _error_body(code: str, message: str, details: Dict[str, Any]) -> Dict[str, Any]:
    return {"ok": False, "error": {"code": code, "message": message, "details": details}}


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=_error_body(exc.code, exc.message, exc.details))


async def apply_error_handler(request: Request, exc: ApplyError) -> JSONResponse:
    e = ApiError.from_apply_error(exc)
    return JSONResponse(status_code=e.status_code, content=_error_body(e.code, e.message, e.details))


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code = "not_found" if exc.status_code == 404 else "http_error"
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(code, str(exc.detail), {"path": str(request.url.path or "")}),
        headers=getattr(exc, "headers", None),
    )
