"""
Verification tokens.

Single-use, time-boxed tokens bound to an identifier (a target email address
or a purpose key such as "mfa-enrollment:<user_id>"). Only the SHA-256 hash
of a token is stored; the raw value goes to the user once and is never
recoverable from the database.

There is at most one live token per identifier. Issuing again replaces the
earlier token (last-issued-wins).
"""
import hmac
import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Optional

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_BYTES = 32


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_token(nbytes: int = DEFAULT_TOKEN_BYTES) -> str:
    """
    Generate a cryptographically secure random token.

    Args:
        nbytes: Random bytes (default 32, i.e. 256 bits).

    Returns:
        Hex-encoded token (2 * nbytes characters).
    """
    return secrets.token_hex(nbytes)


def hash_token(token: str) -> str:
    """SHA-256 hex digest of a token, for at-rest storage."""
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


class ConsumeResult(str, Enum):
    VALID = "valid"
    EXPIRED = "expired"
    NOT_FOUND = "not_found"    # never issued, or already consumed
    MISMATCH = "mismatch"      # a live token exists but this is not it


@dataclass(frozen=True)
class ConsumeOutcome:
    result: ConsumeResult
    user_id: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.result is ConsumeResult.VALID


class VerificationTokenManager:
    """
    Issue and consume single-use verification tokens.

    Args:
        db: AuthDB instance.
        clock: Callable returning the current aware UTC datetime.

    Example:
        tokens = VerificationTokenManager(get_auth_db())
        raw = tokens.issue("new@example.com", timedelta(hours=24), user_id=uid)
        outcome = tokens.consume("new@example.com", raw)
        if outcome.ok:
            ...
    """

    def __init__(self, db, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock

    def issue(
        self,
        identifier: str,
        ttl: timedelta,
        user_id: Optional[str] = None,
        token: Optional[str] = None,
        session=None,
    ) -> str:
        """
        Issue a token for an identifier, replacing any live one.

        Args:
            identifier: Target email or purpose key.
            ttl: Lifetime; the token is unusable at and after now + ttl.
            user_id: Owner of the pending change.
            token: Use this value instead of generating one.

        Returns:
            The raw token.
        """
        token = token or generate_token()
        expires_at = self.clock() + ttl
        self.db.upsert_verification_token(
            identifier,
            hash_token(token),
            expires_at,
            user_id=user_id,
            session=session,
        )
        logger.debug(f"Issued verification token for identifier, expires {expires_at}")
        return token

    def consume(self, identifier: str, token: str, session=None) -> ConsumeOutcome:
        """
        Check a token and, if valid, delete it.

        The row is locked for the check so two concurrent consumers of the
        same token cannot both see VALID. Expired rows are deleted as well;
        a mismatch leaves the live token in place.
        """
        with self.db._scope(session) as s:
            row = self.db.get_verification_token(identifier, session=s, for_update=True)
            if row is None:
                return ConsumeOutcome(ConsumeResult.NOT_FOUND)

            if not hmac.compare_digest(row["token_hash"], hash_token(token or "")):
                return ConsumeOutcome(ConsumeResult.MISMATCH)

            self.db.delete_verification_token(identifier, row["token_hash"], session=s)

            if self.clock() >= row["expires_at"]:
                return ConsumeOutcome(ConsumeResult.EXPIRED)

            return ConsumeOutcome(ConsumeResult.VALID, user_id=row["user_id"])

    def revoke(self, identifier: str, session=None) -> None:
        self.db.delete_verification_token(identifier, session=session)

    def purge_expired(self) -> int:
        """Delete every expired token. Returns the number removed."""
        count = self.db.purge_expired_tokens(self.clock())
        if count:
            logger.info(f"Purged {count} expired verification tokens")
        return count
