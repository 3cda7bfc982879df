"""
Password hashing (bcrypt) and access-token encoding (PyJWT, HS256).

Issued tokens carry ``pwd_changed_at`` -- the user's last password change
as epoch seconds -- so a later password change invalidates them without a
revocation list.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta
from typing import Any, Optional

import bcrypt
import jwt

from src.config import settings
from src.domain.auth import PresentedToken
from src.domain.clock import epoch_seconds, utcnow

logger = logging.getLogger(__name__)


class TokenError(Exception):
    """Token could not be decoded.  ``code`` is INVALID_TOKEN or TOKEN_EXPIRED."""

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code


def hash_password(password: str) -> str:
    salt = bcrypt.gensalt(rounds=settings.bcrypt_rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        logger.warning("Stored password hash is malformed")
        return False


def password_changed_now() -> datetime:
    """Timestamp for a password change, truncated to milliseconds."""
    now = utcnow()
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)


def create_access_token(
    user_id: int,
    role: str,
    last_password_change: Optional[datetime],
    now: Optional[datetime] = None,
    expires_in: Optional[int] = None,
) -> str:
    now = now or utcnow()
    ttl = expires_in if expires_in is not None else settings.access_token_expiry_seconds
    payload: dict[str, Any] = {
        "sub": str(user_id),
        "role": role,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=ttl)).timestamp()),
        "pwd_changed_at": (
            epoch_seconds(last_password_change) if last_password_change else None
        ),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> PresentedToken:
    try:
        claims = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["sub", "exp"]},
        )
    except jwt.ExpiredSignatureError as exc:
        raise TokenError("TOKEN_EXPIRED", "Token has expired.") from exc
    except jwt.InvalidTokenError as exc:
        raise TokenError("INVALID_TOKEN", "Invalid token.") from exc

    return PresentedToken(
        subject=claims["sub"],
        issued_at=claims.get("iat"),
        pwd_changed_at=claims.get("pwd_changed_at"),
        expires_at=claims.get("exp"),
    )


def generate_reset_token() -> str:
    return secrets.token_hex(20)
