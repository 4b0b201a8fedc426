"""
MFA enrollment engine.

Per-user state machine:

    NotEnrolled --begin_enrollment--> PendingVerification
    PendingVerification --confirm_enrollment(valid code)--> Enrolled
    Enrolled --begin_enrollment--> Enrolled + pending re-enrollment
    Enrolled --disable(valid code)--> NotEnrolled

The pending secret lives in the verification token store under the purpose
key "mfa-enrollment:<user_id>", so a secret is only accepted at confirmation
if this server handed it to this user and it has not expired.
"""
import os
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from ..auth import mfa
from ..auth.identity import Identity
from ..auth.tokens import ConsumeResult, VerificationTokenManager, utcnow
from ..errors import InputValidationError, MfaInvalidError, NotFoundError
from ..utils.secrets import mask_secret

logger = logging.getLogger(__name__)

DEFAULT_PENDING_TTL_SECONDS = 600


def enrollment_identifier(user_id: str) -> str:
    return f"mfa-enrollment:{user_id}"


def pending_ttl() -> timedelta:
    return timedelta(seconds=int(os.getenv("MFA_PENDING_TTL", str(DEFAULT_PENDING_TTL_SECONDS))))


@dataclass(frozen=True)
class EnrollmentPayload:
    secret: str
    provisioning_uri: str
    qr_code_url: str


class MfaEnrollmentService:
    """
    Begin, confirm and disable TOTP enrollment; consume backup codes.

    Args:
        db: AuthDB instance.
        tokens: VerificationTokenManager sharing the same db and clock.
        clock: Callable returning the current aware UTC datetime.
    """

    def __init__(
        self,
        db,
        tokens: Optional[VerificationTokenManager] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.clock = clock
        self.tokens = tokens or VerificationTokenManager(db, clock=clock)

    def _verify_code(self, secret: str, code: str) -> bool:
        return mfa.verify_totp(secret, code, window=1, for_time=self.clock())

    def begin_enrollment(self, identity: Identity) -> EnrollmentPayload:
        """
        Generate a fresh secret and record it as this user's pending enrollment.

        Replaces any earlier pending secret. Does not touch the current MFA
        state; an enrolled user stays enrolled until a new secret is confirmed.
        """
        secret, uri, qr_code = mfa.setup_mfa(identity.email)
        self.tokens.issue(
            enrollment_identifier(identity.user_id),
            pending_ttl(),
            user_id=identity.user_id,
            token=secret,
        )
        logger.info(f"MFA enrollment started for user {identity.user_id}")
        return EnrollmentPayload(secret=secret, provisioning_uri=uri, qr_code_url=qr_code)

    def confirm_enrollment(self, identity: Identity, code: str, secret: str) -> List[str]:
        """
        Confirm a pending enrollment with a code from the authenticator app.

        Args:
            identity: Authenticated caller.
            code: 6-digit TOTP code.
            secret: The secret returned by begin_enrollment.

        Returns:
            The 10 plain backup codes. They cannot be retrieved again.

        Raises:
            MfaInvalidError: Wrong code, or the secret is not this user's
                live pending enrollment.
            NotFoundError: The user no longer exists.
        """
        with self.db.get_session() as session:
            user = self.db.get_user_by_id(identity.user_id, session=session, for_update=True)
            if user is None:
                raise NotFoundError("User")

            # Wrong code keeps the pending enrollment so the user can retry
            if not self._verify_code(secret, code):
                logger.warning(f"MFA enrollment code rejected for user {identity.user_id}")
                raise MfaInvalidError()

            outcome = self.tokens.consume(
                enrollment_identifier(identity.user_id), secret, session=session
            )
            if outcome.result is not ConsumeResult.VALID:
                logger.warning(
                    f"MFA enrollment for user {identity.user_id} rejected: "
                    f"pending secret {mask_secret(secret)} is {outcome.result.value}"
                )
                raise MfaInvalidError()

            backup_codes = mfa.generate_backup_codes()
            self.db.enable_mfa(
                identity.user_id,
                secret,
                mfa.hash_backup_codes(backup_codes),
                session=session,
            )

        logger.info(f"MFA enabled for user {identity.user_id}")
        return backup_codes

    def consume_backup_code(self, user_id: str, code: str, session=None) -> bool:
        """
        Use up a backup code.

        The matching hash is removed and the remaining list persisted in the
        caller's transaction, so a code works exactly once.

        Returns:
            True if the code matched an unused backup code.
        """
        with self.db._scope(session) as s:
            user = self.db.get_user_by_id(user_id, session=s, for_update=True)
            if user is None or not user["mfa_enabled"]:
                return False

            hashed_codes = self.db.get_backup_codes(user_id, session=s)
            index = mfa.find_matching_backup_code(code, hashed_codes)
            if index is None:
                return False

            remaining = hashed_codes[:index] + hashed_codes[index + 1:]
            self.db.store_backup_codes(user_id, remaining, session=s)

        logger.info(f"Backup code used for user {user_id}, {len(remaining)} remaining")
        if not remaining:
            logger.warning(f"User {user_id} has used their last backup code")
        return True

    def verify_second_factor(
        self,
        user: dict,
        totp_code: Optional[str] = None,
        backup_code: Optional[str] = None,
        session=None,
    ) -> bool:
        """TOTP first, then a backup code."""
        if totp_code and self._verify_code(user["mfa_secret"], totp_code):
            return True
        if backup_code:
            return self.consume_backup_code(user["user_id"], backup_code, session=session)
        return False

    def disable(self, identity: Identity, code: str) -> None:
        """
        Turn MFA off after checking a current TOTP code.

        Raises:
            InputValidationError: MFA is not enabled.
            MfaInvalidError: Wrong code.
        """
        with self.db.get_session() as session:
            user = self.db.get_user_by_id(identity.user_id, session=session, for_update=True)
            if user is None:
                raise NotFoundError("User")
            if not user["mfa_enabled"]:
                raise InputValidationError("MFA is not enabled")

            if not self._verify_code(user["mfa_secret"], code):
                logger.warning(f"MFA disable rejected for user {identity.user_id}: invalid code")
                raise MfaInvalidError()

            self.db.disable_mfa(identity.user_id, session=session)
            self.tokens.revoke(enrollment_identifier(identity.user_id), session=session)
