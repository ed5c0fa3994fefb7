# src/stakeledger/api/routes_public.py
from __future__ import annotations

from fastapi import APIRouter

from stakeledger.api.routes_public_parts.health import router as health_router
from stakeledger.api.routes_public_parts.ledger import router as ledger_router

public_router = APIRouter()

public_router.include_router(health_router, prefix="/v1", tags=["health"])
public_router.include_router(ledger_router, prefix="/v1", tags=["ledger"])
