"""Password gate: HMAC-signed session cookie checked by a FastAPI dependency."""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import time
from typing import Callable, Optional

from fastapi import HTTPException, Request, status

from cryptochat.config import settings

SESSION_COOKIE_NAME = "session"


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(text: str) -> Optional[bytes]:
    try:
        return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))
    except (binascii.Error, ValueError):
        return None


def _signature(secret: str, payload_b64: str) -> bytes:
    return hmac.new(secret.encode("utf-8"), payload_b64.encode("utf-8"), hashlib.sha256).digest()


def passwords_match(secret: str, candidate: str) -> bool:
    return hmac.compare_digest(secret.encode("utf-8"), candidate.encode("utf-8"))


def sign_session(secret: str, max_age_seconds: int, clock: Callable[[], float] = time.time) -> str:
    """Token is ``base64url(payload).base64url(hmac)``; payload times are in milliseconds."""
    now_ms = int(clock() * 1000)
    payload = json.dumps({"t": now_ms, "exp": now_ms + max_age_seconds * 1000}, separators=(",", ":"))
    payload_b64 = _b64encode(payload.encode("utf-8"))
    return f"{payload_b64}.{_b64encode(_signature(secret, payload_b64))}"


def verify_session(token: str, secret: Optional[str], clock: Callable[[], float] = time.time) -> bool:
    if not secret or not token:
        return False
    parts = token.split(".")
    if len(parts) != 2:
        return False
    payload_b64, sig_b64 = parts
    sig = _b64decode(sig_b64)
    if sig is None or not hmac.compare_digest(sig, _signature(secret, payload_b64)):
        return False
    raw = _b64decode(payload_b64)
    if raw is None:
        return False
    try:
        payload = json.loads(raw.decode("utf-8"))
    except ValueError:
        return False
    expires = payload.get("exp") if isinstance(payload, dict) else None
    return isinstance(expires, (int, float)) and not isinstance(expires, bool) and expires > clock() * 1000


def is_authenticated(request: Request) -> bool:
    token = request.cookies.get(SESSION_COOKIE_NAME)
    return token is not None and verify_session(token, settings.app_password)


def require_session(request: Request) -> None:
    """Route dependency: 500 when no password is configured, 401 without a valid session."""
    if not settings.app_password:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="APP_PASSWORD not configured")
    if not is_authenticated(request):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
