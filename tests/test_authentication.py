"""
Tests for registration, login and account lockout.
"""
import pytest

from accountguard.errors import (
    AccountLockedError,
    AlreadyExistsError,
    InvalidCredentialsError,
    MfaInvalidError,
    MfaRequiredError,
)
from accountguard.services.authentication import (
    AuthenticationService,
    MAX_FAILED_ATTEMPTS,
)
from accountguard.services.mfa_enrollment import MfaEnrollmentService

from conftest import DEFAULT_PASSWORD, totp_at


@pytest.fixture
def mfa_service(db, tokens, clock):
    return MfaEnrollmentService(db, tokens=tokens, clock=clock)


@pytest.fixture
def service(db, mfa_service):
    return AuthenticationService(db, mfa_service=mfa_service)


@pytest.fixture
def enrolled(alice, login_as, mfa_service, clock):
    """Alice with MFA on. Returns (secret, backup_codes)."""
    identity, _ = login_as(alice)
    payload = mfa_service.begin_enrollment(identity)
    codes = mfa_service.confirm_enrollment(identity, totp_at(payload.secret, clock()), payload.secret)
    return payload.secret, codes


class TestRegister:

    def test_register_signs_in(self, service, db):
        issued = service.register("New.User@Example.com", "long enough pw", name="New")

        assert issued.email == "new.user@example.com"
        assert issued.expires_in == 720 * 3600
        assert db.validate_session(issued.access_token)["user_id"] == issued.user_id

    def test_register_creates_default_settings(self, service, db):
        issued = service.register("new@example.com", "long enough pw")
        assert db.get_privacy_settings(issued.user_id)["profile_visibility"] == "private"
        assert db.get_notification_settings(issued.user_id) is not None

    def test_duplicate_email(self, service, alice):
        with pytest.raises(AlreadyExistsError):
            service.register("ALICE@example.com", "long enough pw")

    def test_session_ttl_from_environment(self, service, monkeypatch):
        monkeypatch.setenv("SESSION_TTL_HOURS", "1")
        assert service.register("new@example.com", "long enough pw").expires_in == 3600


class TestLogin:

    def test_password_login(self, service, alice, db):
        issued = service.login("alice@example.com", DEFAULT_PASSWORD, ip_address="10.0.0.9")

        assert issued.user_id == alice["user_id"]
        assert db.validate_session(issued.access_token) is not None
        history = db.list_login_history(alice["user_id"])
        assert history[0]["success"] is True
        assert history[0]["ip_address"] == "10.0.0.9"

    def test_unknown_email_and_wrong_password_look_alike(self, service, alice):
        with pytest.raises(InvalidCredentialsError) as unknown:
            service.login("nobody@example.com", DEFAULT_PASSWORD)
        with pytest.raises(InvalidCredentialsError) as wrong:
            service.login("alice@example.com", "wrong password")

        assert unknown.value.message == wrong.value.message
        assert unknown.value.status_code == wrong.value.status_code == 401

    def test_failed_attempt_recorded(self, service, alice, db):
        with pytest.raises(InvalidCredentialsError):
            service.login("alice@example.com", "wrong password")

        history = db.list_login_history(alice["user_id"])
        assert history[0]["success"] is False
        assert history[0]["failure_reason"] == "invalid_password"

    def test_passwordless_account_cannot_log_in(self, service, make_user):
        make_user("oauth@example.com", password=None)
        with pytest.raises(InvalidCredentialsError):
            service.login("oauth@example.com", "anything")

    def test_lockout_after_failures(self, service, alice):
        for _ in range(MAX_FAILED_ATTEMPTS):
            with pytest.raises(InvalidCredentialsError):
                service.login("alice@example.com", "wrong password")

        with pytest.raises(AccountLockedError) as exc_info:
            service.login("alice@example.com", DEFAULT_PASSWORD)

        assert exc_info.value.status_code == 429
        assert exc_info.value.headers["Retry-After"] == "900"

    def test_success_resets_failure_count(self, service, alice):
        for _ in range(MAX_FAILED_ATTEMPTS - 1):
            with pytest.raises(InvalidCredentialsError):
                service.login("alice@example.com", "wrong password")
        service.login("alice@example.com", DEFAULT_PASSWORD)

        for _ in range(MAX_FAILED_ATTEMPTS - 1):
            with pytest.raises(InvalidCredentialsError):
                service.login("alice@example.com", "wrong password")
        assert service.login("alice@example.com", DEFAULT_PASSWORD)


class TestLoginWithMfa:

    def test_factor_required(self, service, enrolled):
        with pytest.raises(MfaRequiredError) as exc_info:
            service.login("alice@example.com", DEFAULT_PASSWORD)
        assert exc_info.value.headers["X-MFA-Required"] == "true"

    def test_totp_login(self, service, enrolled, clock):
        secret, _ = enrolled
        issued = service.login("alice@example.com", DEFAULT_PASSWORD, totp_code=totp_at(secret, clock()))
        assert issued.mfa_enabled

    def test_wrong_totp_is_401(self, service, enrolled, clock):
        with pytest.raises(MfaInvalidError) as exc_info:
            service.login("alice@example.com", DEFAULT_PASSWORD, totp_code="000000")
        assert exc_info.value.status_code == 401

    def test_backup_code_works_once(self, service, enrolled):
        _, codes = enrolled

        service.login("alice@example.com", DEFAULT_PASSWORD, backup_code=codes[0])

        with pytest.raises(MfaInvalidError):
            service.login("alice@example.com", DEFAULT_PASSWORD, backup_code=codes[0])

    def test_wrong_password_checked_before_factor(self, service, enrolled, clock):
        secret, _ = enrolled
        with pytest.raises(InvalidCredentialsError):
            service.login("alice@example.com", "wrong", totp_code=totp_at(secret, clock()))


class TestLogout:

    def test_logout_ends_session(self, service, db, alice, login_as):
        identity, token = login_as(alice)
        service.logout(identity)
        assert db.validate_session(token) is None
