"""API key authentication for back-office calls (create / cancel job)."""

from __future__ import annotations

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .config import config

_bearer = HTTPBearer(auto_error=False)


async def require_auth(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
) -> str:
    """Validate the Bearer token and return the acting user's name.

    The caller may name the acting user with ``X-Launchpad-User``; it ends up
    in audit entries and notification templates.
    """
    if credentials and credentials.credentials == config.api_key:
        return request.headers.get("X-Launchpad-User", "api")

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or missing API key",
        headers={"WWW-Authenticate": "Bearer"},
    )
