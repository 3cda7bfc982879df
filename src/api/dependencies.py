"""FastAPI dependency injection helpers."""

from __future__ import annotations

import json
import logging

from fastapi import Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.config import settings
from src.domain.auth import Rejected, validate
from src.domain.clock import utcnow
from src.domain.enums import RejectionReason, UserRole
from src.infrastructure.database import async_session_factory
from src.infrastructure.models import UserModel
from src.infrastructure.notifications import NotificationService
from src.infrastructure.repositories import UserRepository, credential_state
from src.infrastructure.security import TokenError, decode_access_token
from src.infrastructure.session_store import (
    InMemorySessionStore,
    NullSessionStore,
    RedisSessionStore,
    SessionStore,
    blacklist_key,
    session_key,
)

logger = logging.getLogger(__name__)

REJECTION_MESSAGES = {
    RejectionReason.USER_NOT_FOUND: "User not found.",
    RejectionReason.ACCOUNT_DEACTIVATED: "Account is deactivated.",
    RejectionReason.ACCOUNT_LOCKED: (
        "Account is temporarily locked due to multiple failed login attempts."
    ),
    RejectionReason.PASSWORD_CHANGED: "Password has been changed. Please login again.",
}

_session_store: SessionStore | None = None


async def get_db() -> AsyncSession:  # type: ignore[misc]
    """Yield an async DB session; commit on success, rollback on error."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def build_session_store(backend: str) -> SessionStore:
    if backend == "redis":
        from src.infrastructure.redis_client import get_redis

        return RedisSessionStore(get_redis())
    if backend == "memory":
        return InMemorySessionStore()
    return NullSessionStore()


def get_session_store() -> SessionStore:
    global _session_store
    if _session_store is None:
        _session_store = build_session_store(settings.session_backend)
    return _session_store


def get_notification_service(
    db: AsyncSession = Depends(get_db),
) -> NotificationService:
    return NotificationService(db)


def auth_error(code: str, message: str, status_code: int = 401) -> HTTPException:
    return HTTPException(
        status_code=status_code, detail={"error": message, "code": code}
    )


def extract_token(request: Request) -> str | None:
    header = request.headers.get("Authorization")
    if header and header.startswith("Bearer "):
        return header[len("Bearer "):]
    return request.headers.get("x-auth-token")


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
    store: SessionStore = Depends(get_session_store),
) -> UserModel:
    """Authenticate the bearer token and return the user it belongs to."""
    token = extract_token(request)
    if not token:
        raise auth_error("NO_TOKEN", "Access denied. No token provided.")

    if await store.get(blacklist_key(token)):
        raise auth_error("TOKEN_BLACKLISTED", "Token has been invalidated.")

    try:
        presented = decode_access_token(token)
    except TokenError as exc:
        raise auth_error(exc.code, str(exc))

    try:
        user_id = int(presented.subject)
    except ValueError:
        raise auth_error("INVALID_TOKEN", "Invalid token.")

    user = await UserRepository(db).get_by_id(user_id)
    if user is None:
        reason = RejectionReason.USER_NOT_FOUND
        raise auth_error(reason.value, REJECTION_MESSAGES[reason])

    now = utcnow()
    result = validate(
        presented,
        credential_state(user),
        now,
        grace_seconds=settings.password_change_grace_seconds,
    )
    if isinstance(result, Rejected):
        logger.info("Rejected token for user %s: %s", user.id, result.reason.value)
        raise auth_error(result.reason.value, REJECTION_MESSAGES[result.reason])

    user.last_login = now
    await db.flush()
    await store.set_with_expiry(
        session_key(user.id, token),
        json.dumps(
            {
                "user_id": user.id,
                "email": user.email,
                "role": user.role,
                "last_activity": now.isoformat(),
            }
        ),
        settings.session_ttl_seconds,
    )
    request.state.token = token
    return user


def require_roles(*roles: UserRole):
    allowed = {role.value for role in roles}

    async def _check(user: UserModel = Depends(get_current_user)) -> UserModel:
        if user.role not in allowed:
            raise auth_error(
                "INSUFFICIENT_PERMISSIONS",
                "Access denied. Insufficient permissions.",
                status_code=403,
            )
        return user

    return _check


require_admin = require_roles(UserRole.ADMIN)
