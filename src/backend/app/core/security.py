from __future__ import annotations

import hmac
from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import jwt

from .config import get_settings


def create_user_token(subject: str, claims: Dict[str, Any] | None = None, expires_minutes: int = 60) -> str:
    """Issue a signed user token the way the session platform does for webviews."""
    settings = get_settings()
    now = datetime.now(timezone.utc)
    subject_str = str(subject)
    payload: Dict[str, Any] = {
        "sub": subject_str,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=expires_minutes)).timestamp()),
    }
    if claims:
        payload.update(claims)
    return jwt.encode(payload, settings.secret_key, algorithm="HS256")


def decode_user_token(token: str) -> Dict[str, Any]:
    settings = get_settings()
    data = jwt.decode(token, settings.secret_key, algorithms=["HS256"])  # raises on error
    return data


def verify_api_key(candidate: str | None) -> bool:
    if not candidate:
        return False
    expected = get_settings().platform_api_key
    return hmac.compare_digest(candidate.encode("utf-8"), expected.encode("utf-8"))
