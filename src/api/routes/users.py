"""
User / authentication endpoints
===============================

POST   /api/v1/users/register         -- create an account, returns a token
POST   /api/v1/users/login            -- exchange credentials for a token
POST   /api/v1/users/logout           -- blacklist the presented token
GET    /api/v1/users/me               -- current profile
PUT    /api/v1/users/me               -- update profile (new token on password change)
DELETE /api/v1/users/me               -- deactivate the account
POST   /api/v1/users/forgot-password  -- issue a password reset token
POST   /api/v1/users/reset-password   -- set a new password with a reset token
"""

from __future__ import annotations

import logging
from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import (
    auth_error,
    get_current_user,
    get_db,
    get_session_store,
)
from src.api.middleware import API_LIMIT, LOGIN_LIMIT, limiter
from src.api.schemas import (
    ForgotPasswordRequest,
    ForgotPasswordResponse,
    LoginRequest,
    MessageResponse,
    ProfileUpdatedResponse,
    RegisterRequest,
    ResetPasswordRequest,
    TokenResponse,
    UpdateProfileRequest,
    UserResponse,
)
from src.config import settings
from src.domain.auth import (
    LoginAttemptState,
    is_locked,
    register_failed_login,
    reset_login_attempts,
)
from src.domain.clock import as_utc, utcnow
from src.domain.enums import AuditAction, UserRole
from src.infrastructure.models import UserModel
from src.infrastructure.repositories import AuditLogRepository, UserRepository
from src.infrastructure.security import (
    create_access_token,
    generate_reset_token,
    hash_password,
    password_changed_now,
    verify_password,
)
from src.infrastructure.session_store import (
    SessionStore,
    blacklist_key,
    session_key,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


def _issue_token(user: UserModel) -> str:
    return create_access_token(
        user.id, user.role, as_utc(user.last_password_change)
    )


@router.post(
    "/register",
    status_code=201,
    response_model=TokenResponse,
    summary="Register a new employee account",
)
@limiter.limit(API_LIMIT)
async def register(
    request: Request,
    body: RegisterRequest,
    db: AsyncSession = Depends(get_db),
):
    repo = UserRepository(db)
    email = body.email.strip().lower()
    if await repo.get_by_email(email):
        raise HTTPException(
            status_code=400,
            detail={"error": "User already exists.", "code": "USER_EXISTS"},
        )

    user = await repo.create(
        UserModel(
            name=body.name,
            email=email,
            password_hash=hash_password(body.password),
            role=UserRole.USER.value,
            phone=body.phone,
            department=body.department,
            employee_id=body.employee_id,
            designation=body.designation,
            last_password_change=password_changed_now(),
        )
    )
    logger.info("Registered user %s", user.id)
    return TokenResponse(token=_issue_token(user), user=UserResponse.model_validate(user))


@router.post("/login", response_model=TokenResponse, summary="Log in")
@limiter.limit(LOGIN_LIMIT)
async def login(
    request: Request,
    body: LoginRequest,
    db: AsyncSession = Depends(get_db),
):
    repo = UserRepository(db)
    user = await repo.get_by_email_for_update(body.email.strip().lower())
    if user is None:
        raise auth_error("INVALID_CREDENTIALS", "Invalid credentials.")
    if not user.is_active:
        raise auth_error("ACCOUNT_DEACTIVATED", "Account is deactivated.")

    now = utcnow()
    if is_locked(as_utc(user.lock_until), now):
        raise auth_error(
            "ACCOUNT_LOCKED",
            "Account is temporarily locked due to multiple failed login attempts.",
        )

    if not verify_password(body.password, user.password_hash):
        state = register_failed_login(
            LoginAttemptState(
                attempts=user.login_attempts or 0,
                lock_until=as_utc(user.lock_until),
            ),
            now,
            max_attempts=settings.max_login_attempts,
            lock_duration=timedelta(seconds=settings.lock_duration_seconds),
        )
        user.login_attempts = state.attempts
        user.lock_until = state.lock_until
        # Persist the counter even though the request fails.
        await db.commit()
        if state.lock_until is not None:
            logger.warning("User %s locked after %d attempts", user.id, state.attempts)
        raise auth_error("INVALID_CREDENTIALS", "Invalid credentials.")

    state = reset_login_attempts()
    user.login_attempts = state.attempts
    user.lock_until = state.lock_until
    user.last_login = now
    await db.flush()
    return TokenResponse(token=_issue_token(user), user=UserResponse.model_validate(user))


@router.post("/logout", response_model=MessageResponse, summary="Log out")
@limiter.limit(API_LIMIT)
async def logout(
    request: Request,
    user: UserModel = Depends(get_current_user),
    store: SessionStore = Depends(get_session_store),
):
    token = request.state.token
    await store.set_with_expiry(
        blacklist_key(token), "true", settings.access_token_expiry_seconds
    )
    await store.delete(session_key(user.id, token))
    return MessageResponse(message="Logged out successfully.")


@router.get("/me", response_model=UserResponse, summary="Current user profile")
@limiter.limit(API_LIMIT)
async def get_me(request: Request, user: UserModel = Depends(get_current_user)):
    return user


@router.put(
    "/me",
    response_model=ProfileUpdatedResponse,
    summary="Update the current user's profile",
)
@limiter.limit(API_LIMIT)
async def update_me(
    request: Request,
    body: UpdateProfileRequest,
    user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    changes = body.model_dump(exclude_unset=True, exclude={"password"})
    if "email" in changes and changes["email"]:
        email = changes["email"].strip().lower()
        existing = await UserRepository(db).get_by_email(email)
        if existing and existing.id != user.id:
            raise HTTPException(
                status_code=400,
                detail={"error": "Email already in use.", "code": "USER_EXISTS"},
            )
        changes["email"] = email
    for field, value in changes.items():
        if value is not None:
            setattr(user, field, value)

    token = None
    if body.password:
        user.password_hash = hash_password(body.password)
        user.last_password_change = password_changed_now()
        token = _issue_token(user)
        logger.info("Password changed for user %s", user.id)
    fields = sorted(changes) + (["password"] if body.password else [])
    await AuditLogRepository(db).record(
        user.id, AuditAction.UPDATE_PROFILE, {"fields": fields}
    )
    return ProfileUpdatedResponse(message="Profile updated.", token=token)


@router.delete(
    "/me", response_model=MessageResponse, summary="Deactivate the account"
)
@limiter.limit(API_LIMIT)
async def deactivate_me(
    request: Request,
    user: UserModel = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    store: SessionStore = Depends(get_session_store),
):
    user.is_active = False
    await AuditLogRepository(db).record(user.id, AuditAction.DEACTIVATE_USER)
    await store.delete(session_key(user.id, request.state.token))
    return MessageResponse(message="Account deactivated.")


@router.post(
    "/forgot-password",
    response_model=ForgotPasswordResponse,
    summary="Issue a password reset token",
)
@limiter.limit(LOGIN_LIMIT)
async def forgot_password(
    request: Request,
    body: ForgotPasswordRequest,
    db: AsyncSession = Depends(get_db),
):
    user = await UserRepository(db).get_by_email(body.email.strip().lower())
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")

    user.reset_password_token = generate_reset_token()
    user.reset_password_expires = utcnow() + timedelta(
        seconds=settings.reset_token_expiry_seconds
    )
    await db.flush()
    return ForgotPasswordResponse(
        message="Password reset token generated.", token=user.reset_password_token
    )


@router.post(
    "/reset-password",
    response_model=MessageResponse,
    summary="Reset the password with a reset token",
)
@limiter.limit(LOGIN_LIMIT)
async def reset_password(
    request: Request,
    body: ResetPasswordRequest,
    db: AsyncSession = Depends(get_db),
):
    user = await UserRepository(db).get_by_reset_token(body.token, utcnow())
    if user is None:
        raise HTTPException(
            status_code=400,
            detail={"error": "Invalid or expired reset token.", "code": "INVALID_TOKEN"},
        )

    state = reset_login_attempts()
    user.password_hash = hash_password(body.password)
    user.last_password_change = password_changed_now()
    user.reset_password_token = None
    user.reset_password_expires = None
    user.login_attempts = state.attempts
    user.lock_until = state.lock_until
    await db.flush()
    return MessageResponse(message="Password has been reset.")
