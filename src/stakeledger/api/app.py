from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from starlette.exceptions import HTTPException as StarletteHTTPException

from stakeledger.api.errors import ApiError, api_error_handler, apply_error_handler, http_error_handler
from stakeledger.api.routes_public import public_router
from stakeledger.api.routes_public_parts.dev import router as dev_router
from stakeledger.api.structured_logging import RequestLogMiddleware, configure_structured_logging
from stakeledger.runtime.errors import ApplyError
from stakeledger.runtime.executor_boot import build_executor as _build_executor
from stakeledger.runtime.ledger_logging import log_event

_log = logging.getLogger("stakeledger.api")


def build_executor():
    """Build a LedgerExecutor for API runtime.

    This wrapper exists so tests can monkeypatch `stakeledger.api.app.build_executor`
    without reaching into runtime modules.
    """
    return _build_executor()


def create_app(*, boot_runtime: bool = True) -> FastAPI:
    """Create the FastAPI application.

    boot_runtime:
      - True (default): build the executor from node config and attach it
      - False: keep lightweight for unit tests / import-time validation
    """
    mode = os.environ.get("STAKELEDGER_MODE", "prod").strip().lower()
    configure_structured_logging()

    @asynccontextmanager
    async def _lifespan(app: FastAPI):
        ex = getattr(app.state, "executor", None)
        log_event(_log, "api_start", mode=mode, executor_attached=ex is not None)
        yield
        log_event(_log, "api_stop")

    # Disable docs in production.
    if mode == "prod":
        app = FastAPI(
            title="Stake Ledger API",
            docs_url=None,
            redoc_url=None,
            openapi_url=None,
            lifespan=_lifespan,
        )
    else:
        app = FastAPI(title="Stake Ledger API", lifespan=_lifespan)

    if boot_runtime:
        app.state.executor = build_executor()
    else:
        app.state.executor = None

    app.add_middleware(RequestLogMiddleware)

    app.add_exception_handler(ApiError, api_error_handler)
    app.add_exception_handler(ApplyError, apply_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)

    app.include_router(public_router)
    if mode != "prod":
        app.include_router(dev_router, prefix="/v1/dev", tags=["dev"])

    return app


# Module-level app for uvicorn.
app = create_app(boot_runtime=True)
