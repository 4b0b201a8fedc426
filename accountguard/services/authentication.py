"""
Registration, login and logout.

Login is password first, then a second factor (TOTP or a backup code) when
MFA is enabled. Accounts are locked after MAX_FAILED_ATTEMPTS failures within
LOCKOUT_MINUTES, counted from the login history since the last success.
"""
import os
import logging
from dataclasses import dataclass
from typing import Optional

from ..auth.identity import Identity
from ..auth.passwords import hash_password, verify_password
from ..errors import (
    AccessDeniedError,
    AccountLockedError,
    AlreadyExistsError,
    InvalidCredentialsError,
    MfaInvalidError,
    MfaRequiredError,
)
from .mfa_enrollment import MfaEnrollmentService

logger = logging.getLogger(__name__)

# Account lockout settings
MAX_FAILED_ATTEMPTS = 5
LOCKOUT_MINUTES = 15

DEFAULT_SESSION_TTL_HOURS = 720


def session_ttl_hours() -> int:
    return int(os.getenv("SESSION_TTL_HOURS", str(DEFAULT_SESSION_TTL_HOURS)))


@dataclass(frozen=True)
class IssuedSession:
    access_token: str
    session_id: str
    user_id: str
    email: str
    mfa_enabled: bool
    expires_in: int


class AuthenticationService:
    def __init__(self, db, mfa_service: Optional[MfaEnrollmentService] = None):
        self.db = db
        self.mfa = mfa_service or MfaEnrollmentService(db)

    def register(
        self,
        email: str,
        password: str,
        name: Optional[str] = None,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> IssuedSession:
        """
        Create an account with default settings and sign it in.

        Raises:
            AlreadyExistsError: Email is taken.
        """
        ttl_hours = session_ttl_hours()
        with self.db.get_session() as session:
            try:
                user_id = self.db.create_user(
                    email, hash_password(password), name=name, session=session
                )
            except ValueError:
                raise AlreadyExistsError("Email")

            self.db.create_default_settings(user_id, session=session)
            session_id, token = self.db.create_session(
                user_id,
                user_agent=user_agent,
                ip_address=ip_address,
                expires_hours=ttl_hours,
                session=session,
            )
            self.db.record_login_attempt(
                user_id, True, ip_address=ip_address, user_agent=user_agent, session=session
            )
            self.db.update_last_login(user_id, session=session)

        logger.info(f"New user registered: {user_id}")
        return IssuedSession(
            access_token=token,
            session_id=session_id,
            user_id=user_id,
            email=email.lower().strip(),
            mfa_enabled=False,
            expires_in=ttl_hours * 3600,
        )

    def login(
        self,
        email: str,
        password: str,
        totp_code: Optional[str] = None,
        backup_code: Optional[str] = None,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> IssuedSession:
        """
        Authenticate and open a session.

        Raises:
            InvalidCredentialsError: Unknown email, passwordless account or
                wrong password (one message for all).
            AccountLockedError: Too many recent failures.
            MfaRequiredError: MFA is on and no factor was supplied.
            MfaInvalidError: The factor did not verify (HTTP 401).
        """
        user = self.db.get_user_by_email(email)
        if user is None:
            logger.warning("Login failed: unknown email")
            raise InvalidCredentialsError()

        user_id = user["user_id"]

        def record_failure(reason: str) -> None:
            self.db.record_login_attempt(
                user_id, False, failure_reason=reason,
                ip_address=ip_address, user_agent=user_agent,
            )

        if self.db.get_failed_login_count(user_id, LOCKOUT_MINUTES) >= MAX_FAILED_ATTEMPTS:
            logger.warning(f"Login blocked for locked account {user_id}")
            raise AccountLockedError(
                f"Account locked due to too many failed attempts. "
                f"Try again in {LOCKOUT_MINUTES} minutes.",
                headers={"Retry-After": str(LOCKOUT_MINUTES * 60)},
            )

        if not user["is_active"]:
            record_failure("account_disabled")
            raise AccessDeniedError("Account is disabled")

        if not verify_password(password, user["password_hash"]):
            record_failure("invalid_password")
            logger.warning(f"Login failed for user {user_id}: invalid password")
            raise InvalidCredentialsError()

        if user["mfa_enabled"]:
            if not totp_code and not backup_code:
                raise MfaRequiredError(headers={"X-MFA-Required": "true"})

            if not self.mfa.verify_second_factor(user, totp_code, backup_code):
                record_failure("invalid_mfa")
                logger.warning(f"Login failed for user {user_id}: invalid MFA code")
                raise MfaInvalidError(status_code=401)

        ttl_hours = session_ttl_hours()
        with self.db.get_session() as session:
            session_id, token = self.db.create_session(
                user_id,
                user_agent=user_agent,
                ip_address=ip_address,
                expires_hours=ttl_hours,
                session=session,
            )
            self.db.record_login_attempt(
                user_id, True, ip_address=ip_address, user_agent=user_agent, session=session
            )
            self.db.update_last_login(user_id, session=session)

        logger.info(f"User logged in: {user_id}")
        return IssuedSession(
            access_token=token,
            session_id=session_id,
            user_id=user_id,
            email=user["email"],
            mfa_enabled=bool(user["mfa_enabled"]),
            expires_in=ttl_hours * 3600,
        )

    def logout(self, identity: Identity) -> None:
        self.db.delete_session(identity.session_id)
        logger.info(f"User {identity.user_id} logged out")
