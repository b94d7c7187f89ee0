from __future__ import annotations

import os
from fastapi import Header
from .errors import ApiError

def _get_token() -> str:
    token = os.getenv("SWIFTCHAT_TOKEN", "").strip()
    if not token:
        # refuse to serve the session without a configured token
        raise ApiError(code="UNAUTHORIZED", message="Server token not configured (SWIFTCHAT_TOKEN)", http_status=401)
    return token


def _check(authorization: str | None) -> None:
    token = _get_token()
    if not authorization or not authorization.lower().startswith("bearer "):
        raise ApiError(code="UNAUTHORIZED", message="Missing Bearer token", http_status=401)
    got = authorization.split(" ", 1)[1].strip()
    if got != token:
        raise ApiError(code="UNAUTHORIZED", message="Invalid token", http_status=401)


def require_bearer(authorization: str | None = Header(default=None)) -> None:
    """HTTP bearer auth dependency."""
    _check(authorization)


def check_ws_bearer(authorization: str | None) -> None:
    """WebSocket bearer auth, checked before the socket is accepted."""
    _check(authorization)
