"""Unit tests for token validation, account lockout and token encoding."""

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from src.config import settings
from src.domain.auth import (
    Accepted,
    LoginAttemptState,
    PresentedToken,
    Rejected,
    UserCredentialState,
    is_locked,
    register_failed_login,
    reset_login_attempts,
    validate,
)
from src.domain.clock import epoch_seconds
from src.domain.enums import RejectionReason
from src.infrastructure.security import (
    TokenError,
    create_access_token,
    decode_access_token,
    hash_password,
    verify_password,
)

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
T0 = datetime(2024, 5, 1, 9, 30, 15, 250000, tzinfo=timezone.utc)
T1 = T0 + timedelta(days=3)


def token_for(changed_at=None, issued_at=None) -> PresentedToken:
    return PresentedToken(
        subject="1",
        issued_at=issued_at,
        pwd_changed_at=epoch_seconds(changed_at) if changed_at else None,
    )


class TestValidator:
    def test_exact_match_is_accepted(self):
        user = UserCredentialState(last_password_change=T0)
        assert validate(token_for(T0), user, NOW) == Accepted()

    def test_changed_password_is_rejected(self):
        user = UserCredentialState(last_password_change=T1)
        result = validate(token_for(T0), user, NOW)
        assert result == Rejected(RejectionReason.PASSWORD_CHANGED)
        assert result.accepted is False

    def test_deactivated_wins_over_everything(self):
        user = UserCredentialState(
            is_active=False,
            lock_until=NOW + timedelta(hours=1),
            last_password_change=T1,
        )
        result = validate(token_for(T0), user, NOW)
        assert result == Rejected(RejectionReason.ACCOUNT_DEACTIVATED)

    def test_lock_checked_before_password(self):
        user = UserCredentialState(
            lock_until=NOW + timedelta(seconds=3600), last_password_change=T1
        )
        result = validate(token_for(T0), user, NOW)
        assert result == Rejected(RejectionReason.ACCOUNT_LOCKED)

    def test_expired_lock_is_ignored(self):
        user = UserCredentialState(
            lock_until=NOW - timedelta(seconds=1), last_password_change=T0
        )
        assert validate(token_for(T0), user, NOW) == Accepted()

    def test_legacy_token_within_grace(self):
        issued = int(T0.timestamp())
        user = UserCredentialState(last_password_change=T0.replace(microsecond=0) + timedelta(seconds=3))
        assert validate(token_for(issued_at=issued), user, NOW) == Accepted()

    def test_legacy_token_at_grace_boundary(self):
        issued = int(T0.timestamp())
        user = UserCredentialState(last_password_change=T0.replace(microsecond=0) + timedelta(seconds=5))
        assert validate(token_for(issued_at=issued), user, NOW) == Accepted()

    def test_legacy_token_outside_grace(self):
        issued = int(T0.timestamp())
        user = UserCredentialState(last_password_change=T0.replace(microsecond=0) + timedelta(seconds=6))
        result = validate(token_for(issued_at=issued), user, NOW)
        assert result == Rejected(RejectionReason.PASSWORD_CHANGED)

    def test_grace_window_is_configurable(self):
        issued = int(T0.timestamp())
        user = UserCredentialState(last_password_change=T0.replace(microsecond=0) + timedelta(seconds=6))
        result = validate(token_for(issued_at=issued), user, NOW, grace_seconds=10)
        assert result == Accepted()

    def test_user_without_password_change_is_accepted(self):
        user = UserCredentialState(last_password_change=None)
        assert validate(token_for(T0), user, NOW) == Accepted()

    def test_token_without_any_timestamps_is_accepted(self):
        user = UserCredentialState(last_password_change=T0)
        assert validate(token_for(), user, NOW) == Accepted()


class TestLockout:
    def test_is_locked(self):
        assert is_locked(NOW + timedelta(minutes=1), NOW)
        assert not is_locked(NOW - timedelta(minutes=1), NOW)
        assert not is_locked(None, NOW)

    def test_fifth_failure_locks_for_two_hours(self):
        state = LoginAttemptState()
        for _ in range(4):
            state = register_failed_login(state, NOW)
            assert state.lock_until is None
        state = register_failed_login(state, NOW)
        assert state.attempts == 5
        assert state.lock_until == NOW + timedelta(hours=2)

    def test_failures_while_locked_keep_the_lock(self):
        locked = LoginAttemptState(attempts=5, lock_until=NOW + timedelta(hours=1))
        state = register_failed_login(locked, NOW)
        assert state.attempts == 6
        assert state.lock_until == locked.lock_until

    def test_failure_after_lock_expired_restarts_count(self):
        expired = LoginAttemptState(attempts=5, lock_until=NOW - timedelta(minutes=1))
        state = register_failed_login(expired, NOW)
        assert state == LoginAttemptState(attempts=1, lock_until=None)

    def test_custom_threshold(self):
        state = register_failed_login(
            LoginAttemptState(attempts=1), NOW, max_attempts=2,
            lock_duration=timedelta(minutes=5),
        )
        assert state.lock_until == NOW + timedelta(minutes=5)

    def test_reset(self):
        assert reset_login_attempts() == LoginAttemptState(attempts=0, lock_until=None)


class TestTokens:
    def test_round_trip_claims(self):
        token = create_access_token(42, "admin", T0)
        presented = decode_access_token(token)
        assert presented.subject == "42"
        assert presented.pwd_changed_at == epoch_seconds(T0)
        assert presented.expires_at - presented.issued_at == settings.access_token_expiry_seconds

    def test_issued_token_validates_against_same_change(self):
        presented = decode_access_token(create_access_token(1, "user", T0))
        user = UserCredentialState(last_password_change=T0)
        assert validate(presented, user, datetime.now(timezone.utc)) == Accepted()

    def test_expired_token(self):
        token = create_access_token(
            1, "user", T0, now=datetime.now(timezone.utc) - timedelta(hours=2),
            expires_in=60,
        )
        with pytest.raises(TokenError) as excinfo:
            decode_access_token(token)
        assert excinfo.value.code == "TOKEN_EXPIRED"

    def test_wrong_signature(self):
        token = jwt.encode(
            {"sub": "1", "exp": int(datetime.now(timezone.utc).timestamp()) + 60},
            "someone-else",
            algorithm="HS256",
        )
        with pytest.raises(TokenError) as excinfo:
            decode_access_token(token)
        assert excinfo.value.code == "INVALID_TOKEN"

    def test_missing_subject(self):
        token = jwt.encode(
            {"exp": int(datetime.now(timezone.utc).timestamp()) + 60},
            settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
        )
        with pytest.raises(TokenError):
            decode_access_token(token)


class TestPasswords:
    def test_hash_and_verify(self):
        hashed = hash_password("correct horse")
        assert hashed != "correct horse"
        assert verify_password("correct horse", hashed)
        assert not verify_password("wrong horse", hashed)

    def test_malformed_hash_does_not_verify(self):
        assert not verify_password("anything", "not-a-bcrypt-hash")
