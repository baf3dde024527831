from __future__ import annotations

from typing import Optional

from fastapi import HTTPException, Request, status

from .security import decode_user_token, verify_api_key


def _bearer(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    parts = value.split()
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1]
    # Cookies may hold the raw token without the Bearer prefix
    if len(parts) == 1 and "." in parts[0]:
        return parts[0]
    return None


def _get_user_token(request: Request) -> Optional[str]:
    # EventSource cannot set headers, so the dashboard passes ?token=...
    return (
        _bearer(request.headers.get("Authorization"))
        or request.query_params.get("token")
        or _bearer(request.cookies.get("access_token"))
    )


async def get_current_user_id(request: Request) -> str:
    token = _get_user_token(request)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing token")
    try:
        data = decode_user_token(token)
    except Exception:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    sub = data.get("sub")
    if not sub:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    return str(sub)


async def require_platform(request: Request) -> None:
    """Only the session platform may push sessions and transcriptions."""
    key = request.headers.get("X-API-Key")
    if not key:
        auth = request.headers.get("Authorization") or ""
        parts = auth.split()
        if len(parts) == 2 and parts[0].lower() == "bearer":
            key = parts[1]
    if not verify_api_key(key):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")
