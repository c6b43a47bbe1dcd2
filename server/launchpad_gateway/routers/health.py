"""Health check endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from ..app_state import GatewayState
from ..deps import get_state
from ..services.records import MemoryRecordStore

router = APIRouter(tags=["health"])


@router.get("/api/health")
async def health_check(state: GatewayState = Depends(get_state)) -> dict:
    """Report gateway status and which record store backs it."""
    return {
        "status": "ok",
        "version": "0.1.0",
        "store": "memory" if isinstance(state.store, MemoryRecordStore) else "http",
    }
