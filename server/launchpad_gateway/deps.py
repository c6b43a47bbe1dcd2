"""FastAPI dependencies resolving the gateway state."""

from __future__ import annotations

from fastapi import HTTPException, Request

from .app_state import GatewayState


async def get_state(request: Request) -> GatewayState:
    """Return the GatewayState installed on the app at startup."""
    state = getattr(request.app.state, "gateway", None)
    if state is None:
        raise HTTPException(status_code=503, detail="Gateway not initialized")
    return state
