"""Client token verification for websocket and REST callers."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt

LOGGER = logging.getLogger(__name__)

ALGORITHM = "HS256"
ANONYMOUS_USER = "anonymous"


def create_token(email: str, secret: str, expires_minutes: int = 24 * 60) -> str:
    """Issue a signed token for `email`; used by the login collaborator and tests."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": email,
        "email": email,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=expires_minutes)).timestamp()),
    }
    return jwt.encode(payload, secret, algorithm=ALGORITHM)


def verify_token(token: Optional[str], secret: Optional[str]) -> Optional[Dict[str, Any]]:
    """Return the token claims, or None when the token is missing or invalid."""
    if not token or not secret:
        return None
    try:
        claims = jwt.decode(token, secret, algorithms=[ALGORITHM])
    except JWTError as exc:
        LOGGER.info("Rejected client token: %s", exc)
        return None
    if not claims.get("email") and not claims.get("sub"):
        return None
    return claims


def user_email(claims: Optional[Dict[str, Any]]) -> Optional[str]:
    if not claims:
        return None
    return claims.get("email") or claims.get("sub")


def session_key_for(email: Optional[str]) -> str:
    """Browser sessions are shared by every connection of the same user."""
    return f"user:{email or ANONYMOUS_USER}"
