"""
Access token validation and account lockout rules.

Checks run in a fixed order and the first failure wins:

1. account deactivated
2. account locked (``lock_until`` in the future)
3. password changed since the token was issued

A missing user is reported by the caller as ``USER_NOT_FOUND`` before this
module is reached.  Token signature / expiry are enforced by the JWT decoder.

Password-change detection has two branches.  Tokens issued by this service
carry ``pwd_changed_at`` and must match the stored value exactly.  Legacy
tokens without the claim fall back to comparing ``iat`` with a small grace
window that absorbs write-ordering skew during account creation.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Union

from .clock import as_utc, epoch_seconds
from .enums import RejectionReason

PASSWORD_CHANGE_GRACE_SECONDS = 5
MAX_LOGIN_ATTEMPTS = 5
LOCK_DURATION = timedelta(hours=2)


@dataclass(frozen=True)
class UserCredentialState:
    is_active: bool = True
    lock_until: Optional[datetime] = None
    last_password_change: Optional[datetime] = None


@dataclass(frozen=True)
class PresentedToken:
    subject: str
    issued_at: Optional[int] = None
    pwd_changed_at: Optional[float] = None
    expires_at: Optional[int] = None


@dataclass(frozen=True)
class Accepted:
    accepted: bool = True


@dataclass(frozen=True)
class Rejected:
    reason: RejectionReason
    accepted: bool = False


ValidationResult = Union[Accepted, Rejected]


def is_locked(lock_until: Optional[datetime], now: datetime) -> bool:
    return lock_until is not None and as_utc(lock_until) > as_utc(now)


def password_changed_since_issue(
    token: PresentedToken,
    last_password_change: Optional[datetime],
    grace_seconds: int = PASSWORD_CHANGE_GRACE_SECONDS,
) -> bool:
    if last_password_change is None:
        return False
    changed_at = epoch_seconds(last_password_change)
    if token.pwd_changed_at is not None:
        return changed_at != token.pwd_changed_at
    if token.issued_at is None:
        return False
    return changed_at - token.issued_at > grace_seconds


def validate(
    token: PresentedToken,
    user: UserCredentialState,
    now: datetime,
    grace_seconds: int = PASSWORD_CHANGE_GRACE_SECONDS,
) -> ValidationResult:
    if not user.is_active:
        return Rejected(RejectionReason.ACCOUNT_DEACTIVATED)
    if is_locked(user.lock_until, now):
        return Rejected(RejectionReason.ACCOUNT_LOCKED)
    if password_changed_since_issue(
        token, user.last_password_change, grace_seconds
    ):
        return Rejected(RejectionReason.PASSWORD_CHANGED)
    return Accepted()


# ── Lockout state machine ─────────────────────────────────────────────


@dataclass(frozen=True)
class LoginAttemptState:
    attempts: int = 0
    lock_until: Optional[datetime] = None


def register_failed_login(
    state: LoginAttemptState,
    now: datetime,
    max_attempts: int = MAX_LOGIN_ATTEMPTS,
    lock_duration: timedelta = LOCK_DURATION,
) -> LoginAttemptState:
    """Return the attempt counter / lock after one more failed login."""
    if state.lock_until is not None and as_utc(state.lock_until) < as_utc(now):
        # Expired lock: start counting again.
        return LoginAttemptState(attempts=1, lock_until=None)

    attempts = state.attempts + 1
    lock_until = state.lock_until
    if attempts >= max_attempts and not is_locked(state.lock_until, now):
        lock_until = as_utc(now) + lock_duration
    return LoginAttemptState(attempts=attempts, lock_until=lock_until)


def reset_login_attempts() -> LoginAttemptState:
    return LoginAttemptState()
