"""
Account lifecycle: credential rotation, data export and account erasure.

Every mutating operation runs in one AuthDB transaction with the user row
locked, so a concurrent password change, email change or deletion for the
same user is serialized behind it.
"""
import os
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from pydantic.alias_generators import to_camel

from ..auth.identity import Identity
from ..auth.passwords import hash_password, verify_password
from ..auth.tokens import ConsumeResult, VerificationTokenManager, utcnow
from ..errors import (
    AlreadyExistsError,
    InvalidTokenError,
    NotFoundError,
    ReauthenticationError,
)
from ..notifications.delivery import EmailDelivery, LoggingEmailDelivery
from ..utils.secrets import mask_secret
from .mfa_enrollment import enrollment_identifier

logger = logging.getLogger(__name__)

DEFAULT_EMAIL_CHANGE_TTL_HOURS = 24

# Never leave the building, at any nesting level of an export
REDACTED_FIELDS = frozenset({
    "password",
    "password_hash",
    "mfa_secret",
    "mfa_backup_codes",
    "token_hash",
})


def email_change_ttl() -> timedelta:
    return timedelta(
        hours=int(os.getenv("EMAIL_CHANGE_TTL_HOURS", str(DEFAULT_EMAIL_CHANGE_TTL_HOURS)))
    )


def _is_redacted(key: str) -> bool:
    return key in REDACTED_FIELDS or key in {to_camel(f) for f in REDACTED_FIELDS}


def redact_export(data: Any) -> Any:
    """
    Strip secret fields from an export, recursively.

    Keys are compared in both snake_case and camelCase, and the result is
    rendered with camelCase keys.
    """
    if isinstance(data, dict):
        return {
            to_camel(key): redact_export(value)
            for key, value in data.items()
            if not _is_redacted(key)
        }
    if isinstance(data, (list, tuple)):
        return [redact_export(item) for item in data]
    return data


class AccountLifecycleService:
    """
    Password change, email change, export and deletion for the caller.

    Args:
        db: AuthDB instance.
        delivery: Where email-change verifications are handed off.
        tokens: VerificationTokenManager sharing the same db and clock.
        clock: Callable returning the current aware UTC datetime.
    """

    def __init__(
        self,
        db,
        delivery: Optional[EmailDelivery] = None,
        tokens: Optional[VerificationTokenManager] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.delivery = delivery or LoggingEmailDelivery()
        self.tokens = tokens or VerificationTokenManager(db, clock=clock)

    def _reauthenticate(self, user: Optional[Dict], password: str) -> None:
        if user is None or not user.get("password_hash"):
            raise NotFoundError("User")
        if not verify_password(password, user["password_hash"]):
            logger.warning(f"Reauthentication failed for user {user['user_id']}")
            raise ReauthenticationError()

    # ==========================================
    # Password
    # ==========================================

    def change_password(
        self, identity: Identity, current_password: str, new_password: str
    ) -> int:
        """
        Replace the caller's password after checking the current one.

        Other sessions of the user are revoked; the calling session stays.

        Returns:
            Number of other sessions revoked.

        Raises:
            NotFoundError: User missing or passwordless.
            ReauthenticationError: Current password is wrong (hash untouched).
        """
        with self.db.get_session() as session:
            user = self.db.get_user_by_id(identity.user_id, session=session, for_update=True)
            self._reauthenticate(user, current_password)

            self.db.update_password(identity.user_id, hash_password(new_password), session=session)
            revoked = self.db.delete_user_sessions(
                identity.user_id, keep_session_id=identity.session_id, session=session
            )

        logger.info(f"Password changed for user {identity.user_id}, {revoked} other sessions revoked")
        return revoked

    # ==========================================
    # Email
    # ==========================================

    def request_email_change(self, identity: Identity, new_email: str, password: str) -> str:
        """
        Start an email change: reauthenticate, then send a token to the new address.

        Returns:
            The raw verification token.

        Raises:
            NotFoundError: User missing or passwordless.
            ReauthenticationError: Wrong password.
            AlreadyExistsError: Another account uses new_email.
        """
        new_email = new_email.lower().strip()

        with self.db.get_session() as session:
            user = self.db.get_user_by_id(identity.user_id, session=session, for_update=True)
            self._reauthenticate(user, password)

            if self.db.get_user_by_email(new_email, session=session) is not None:
                raise AlreadyExistsError("Email")

            token = self.tokens.issue(
                new_email, email_change_ttl(), user_id=identity.user_id, session=session
            )

        self.delivery.send_email_change_verification(new_email, token)
        logger.info(f"Email change requested for user {identity.user_id}")
        return token

    def confirm_email_change(self, identity: Identity, new_email: str, token: str) -> None:
        """
        Finish an email change with the token sent to the new address.

        Raises:
            InvalidTokenError: Token wrong, expired, already used, or issued
                to another user. One message for all of them.
            AlreadyExistsError: new_email was taken in the meantime.
        """
        new_email = new_email.lower().strip()

        with self.db.get_session() as session:
            self.db.get_user_by_id(identity.user_id, session=session, for_update=True)

            outcome = self.tokens.consume(new_email, token, session=session)
            if outcome.result is not ConsumeResult.VALID:
                logger.warning(
                    f"Email change confirmation for user {identity.user_id} rejected: "
                    f"token {mask_secret(token)} is {outcome.result.value}"
                )
                raise InvalidTokenError()

            if outcome.user_id != identity.user_id:
                logger.warning(
                    f"Email change confirmation for user {identity.user_id} rejected: "
                    f"token belongs to another user"
                )
                raise InvalidTokenError()

            if self.db.email_taken_by_other(new_email, identity.user_id, session=session):
                raise AlreadyExistsError("Email")

            self.db.update_email(identity.user_id, new_email, session=session)

        logger.info(f"Email changed for user {identity.user_id}")

    # ==========================================
    # Export / Delete
    # ==========================================

    def export_data(self, identity: Identity) -> Dict[str, Any]:
        """
        Everything held about the caller, secrets removed, camelCase keys.

        Raises:
            NotFoundError: User no longer exists.
        """
        with self.db.get_session() as session:
            user = self.db.get_user_by_id(identity.user_id, session=session)
            if user is None:
                raise NotFoundError("User")

            snapshot = dict(user)
            snapshot["sessions"] = self.db.list_sessions(identity.user_id, session=session)
            snapshot["login_history"] = self.db.list_login_history(identity.user_id, session=session)
            snapshot["notification_settings"] = self.db.get_notification_settings(
                identity.user_id, session=session
            )
            snapshot["privacy_settings"] = self.db.get_privacy_settings(
                identity.user_id, session=session
            )
            snapshot["notifications"] = self.db.list_notifications(identity.user_id, session=session)
            snapshot["subscription"] = self.db.get_subscription(identity.user_id, session=session)

        logger.info(f"Data export generated for user {identity.user_id}")
        return redact_export(snapshot)

    def delete_account(self, identity: Identity) -> Dict[str, int]:
        """
        Erase the caller's account and everything it owns.

        All or nothing: any failure rolls back every delete.

        Returns:
            Rows deleted per table.
        """
        with self.db.get_session() as session:
            user = self.db.get_user_by_id(identity.user_id, session=session, for_update=True)
            if user is None:
                raise NotFoundError("User")

            counts = self.db.delete_user_records(
                identity.user_id,
                user["email"],
                [enrollment_identifier(identity.user_id)],
                session=session,
            )

        logger.info(f"Account {identity.user_id} deleted: {counts}")
        return counts
