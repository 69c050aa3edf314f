"""JWT token creation and verification.

JWT (JSON Web Token) provides stateless authentication for both the
WebSocket handshake (?token=) and the history API (Bearer header).

The token carries the user id as `sub` and, when known, the user's
email — the default identity the chat registry is keyed by.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from learnhub.config import settings


class TokenError(Exception):
    """Raised when token creation/verification fails."""


def create_access_token(
    user_id: str,
    email: Optional[str] = None,
    expires_minutes: Optional[int] = None,
) -> str:
    """Create a JWT access token."""
    expires = datetime.now(timezone.utc) + timedelta(
        minutes=expires_minutes or settings.access_token_expire_minutes
    )
    payload = {
        "sub": user_id,
        "type": "access",
        "exp": expires,
        "iat": datetime.now(timezone.utc),
    }
    if email:
        payload["email"] = email
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_token(token: str) -> dict:
    """Verify and decode a JWT token.

    Returns the payload dict on success.
    Raises TokenError on failure.
    """
    try:
        payload = jwt.decode(
            token, settings.jwt_secret, algorithms=[settings.jwt_algorithm]
        )
    except jwt.ExpiredSignatureError:
        raise TokenError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise TokenError(f"Invalid token: {e}")

    if payload.get("type") != "access":
        raise TokenError("Not an access token")
    return payload


def identity_from_claims(payload: dict) -> Optional[str]:
    """The chat identity a verified token stands for."""
    if settings.identity_field == "email":
        return payload.get("email") or None
    return payload.get("sub") or None
