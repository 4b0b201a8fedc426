"""
Database Manager for Authentication and Account Data.

This module provides connection management and record operations for:
- User accounts (credentials, MFA state, profile and display preferences)
- Sessions
- Verification tokens
- Privacy and notification settings
- Login history
- Owned account data (notifications, subscription, invoices)

Every method accepts an optional `session`. Pass the session of an open
`get_session()` block to run several operations in one transaction; omit it
and the method opens (and commits) its own.
"""
import os
import json
import uuid
import logging
from typing import Optional, Dict, List, Tuple, Iterator
from datetime import datetime, timedelta, timezone
from contextlib import contextmanager

from sqlalchemy import create_engine, select, insert, update, delete, func, or_, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from .schema import (
    metadata,
    users,
    sessions,
    verification_tokens,
    privacy_settings,
    notification_settings,
    notifications,
    login_history,
    subscriptions,
    invoices,
)
from ..auth.tokens import generate_token, hash_token
from ..utils.secrets import get_required_secret

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _normalize_email(email: str) -> str:
    return email.lower().strip()


def _row_to_dict(row) -> Optional[Dict]:
    return dict(row._mapping) if row is not None else None


class AuthDB:
    """
    Connection manager and record store for account security data.

    Example usage:
        auth_db = AuthDB()

        # Create user
        user_id = auth_db.create_user("user@example.com", hashed_password)

        # Several operations in one transaction
        with auth_db.get_session() as session:
            user = auth_db.get_user_by_id(user_id, session=session, for_update=True)
            auth_db.update_password(user_id, new_hash, session=session)
    """

    def __init__(self, connection_string: Optional[str] = None):
        """
        Initialize database connection.

        Args:
            connection_string: SQLAlchemy URL. Uses DATABASE_URL, then the
                             POSTGRES_* environment variables if not provided.

        Raises:
            ValueError: No URL is configured and POSTGRES_PASSWORD is unset.
        """
        if connection_string is None:
            connection_string = os.getenv("DATABASE_URL")

        if connection_string is None:
            host = os.getenv("POSTGRES_HOST", "localhost")
            port = os.getenv("POSTGRES_PORT", "5432")
            db = os.getenv("POSTGRES_DB", "accountguard")
            user = os.getenv("POSTGRES_USER", "accountguard")
            password = get_required_secret("POSTGRES_PASSWORD")
            connection_string = f"postgresql://{user}:{password}@{host}:{port}/{db}"

        if connection_string.startswith("sqlite"):
            # Single shared connection so in-memory databases survive
            self.engine = create_engine(
                connection_string,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            self.engine = create_engine(
                connection_string,
                poolclass=QueuePool,
                pool_size=10,
                max_overflow=20,
                pool_timeout=30,
                pool_pre_ping=True,  # Test connections before use (detect stale)
                pool_recycle=300,    # Recycle connections every 5 minutes
            )
        self.Session = sessionmaker(bind=self.engine)

    @contextmanager
    def get_session(self) -> Iterator[Session]:
        """
        Get a database session with automatic cleanup.

        The block is one transaction: committed on success, rolled back
        on any exception.

        Usage:
            with auth_db.get_session() as session:
                result = session.execute(query)
        """
        session = self.Session()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    @contextmanager
    def _scope(self, session: Optional[Session] = None) -> Iterator[Session]:
        """Join the caller's transaction, or run in a fresh one."""
        if session is not None:
            yield session
        else:
            with self.get_session() as new_session:
                yield new_session

    # ==========================================
    # User Management
    # ==========================================

    def create_user(
        self,
        email: str,
        password_hash: Optional[str],
        name: Optional[str] = None,
        session: Optional[Session] = None,
    ) -> str:
        """
        Create a new user account.

        Args:
            email: User's email address.
            password_hash: Bcrypt-hashed password (None for passwordless accounts).
            name: Optional display name.

        Returns:
            UUID of created user.

        Raises:
            ValueError: If email already exists.
        """
        user_id = str(uuid.uuid4())
        now = _utcnow()
        email = _normalize_email(email)

        with self._scope(session) as s:
            if self._email_owner(s, email) is not None:
                raise ValueError(f"User with email '{email}' already exists")

            try:
                s.execute(
                    insert(users).values(
                        user_id=user_id,
                        email=email,
                        name=name,
                        password_hash=password_hash,
                        mfa_enabled=False,
                        is_active=True,
                        created_at=now,
                        updated_at=now,
                    )
                )
            except IntegrityError as e:
                raise ValueError(f"User with email '{email}' already exists") from e

        logger.info(f"Created user: {email} (id={user_id})")
        return user_id

    def _email_owner(self, s: Session, email: str) -> Optional[str]:
        return s.execute(
            select(users.c.user_id).where(users.c.email == _normalize_email(email))
        ).scalar_one_or_none()

    def get_user_by_email(self, email: str, session: Optional[Session] = None) -> Optional[Dict]:
        """
        Get user by email address.

        Returns:
            User dict or None if not found.
        """
        with self._scope(session) as s:
            row = s.execute(
                select(users).where(users.c.email == _normalize_email(email))
            ).fetchone()
            return _row_to_dict(row)

    def get_user_by_id(
        self,
        user_id: str,
        session: Optional[Session] = None,
        for_update: bool = False,
    ) -> Optional[Dict]:
        """
        Get user by ID.

        Args:
            user_id: UUID of user.
            for_update: Lock the row until the surrounding transaction ends.

        Returns:
            User dict or None if not found.
        """
        query = select(users).where(users.c.user_id == user_id)
        if for_update:
            query = query.with_for_update()
        with self._scope(session) as s:
            return _row_to_dict(s.execute(query).fetchone())

    def email_taken_by_other(
        self, email: str, user_id: str, session: Optional[Session] = None
    ) -> bool:
        """True if `email` belongs to a user other than `user_id`."""
        with self._scope(session) as s:
            owner = self._email_owner(s, email)
            return owner is not None and owner != user_id

    def update_last_login(self, user_id: str, session: Optional[Session] = None) -> None:
        now = _utcnow()
        with self._scope(session) as s:
            s.execute(
                update(users)
                .where(users.c.user_id == user_id)
                .values(last_login=now, updated_at=now)
            )

    def update_password(
        self, user_id: str, new_password_hash: str, session: Optional[Session] = None
    ) -> None:
        """
        Update user's password hash.

        Args:
            user_id: UUID of user.
            new_password_hash: New bcrypt-hashed password.
        """
        with self._scope(session) as s:
            s.execute(
                update(users)
                .where(users.c.user_id == user_id)
                .values(password_hash=new_password_hash, updated_at=_utcnow())
            )

    def update_email(self, user_id: str, new_email: str, session: Optional[Session] = None) -> None:
        """
        Update user's email address.

        Raises:
            ValueError: If the email belongs to another account.
        """
        new_email = _normalize_email(new_email)
        with self._scope(session) as s:
            try:
                s.execute(
                    update(users)
                    .where(users.c.user_id == user_id)
                    .values(email=new_email, updated_at=_utcnow())
                )
            except IntegrityError as e:
                raise ValueError(f"User with email '{new_email}' already exists") from e
        logger.info(f"Updated email for user {user_id}")

    def update_user_fields(
        self,
        user_id: str,
        values: Dict,
        columns: List[str],
        session: Optional[Session] = None,
    ) -> Optional[Dict]:
        """
        Update profile or preference columns on the user row.

        Args:
            user_id: UUID of user.
            values: Column -> new value; empty leaves the row untouched.
            columns: Columns to return after the update.

        Returns:
            Dict with user_id and the requested columns, or None if the user
            does not exist.
        """
        with self._scope(session) as s:
            if values:
                s.execute(
                    update(users)
                    .where(users.c.user_id == user_id)
                    .values(updated_at=_utcnow(), **values)
                )
            row = s.execute(
                select(users.c.user_id, *[users.c[name] for name in columns])
                .where(users.c.user_id == user_id)
            ).fetchone()
            return _row_to_dict(row)

    # ==========================================
    # MFA State
    # ==========================================

    def enable_mfa(
        self,
        user_id: str,
        totp_secret: str,
        hashed_codes: List[str],
        session: Optional[Session] = None,
    ) -> None:
        """
        Persist a confirmed TOTP secret together with its backup codes.

        Args:
            user_id: UUID of user.
            totp_secret: Base32 TOTP secret.
            hashed_codes: Bcrypt hashes of the freshly issued backup codes.
        """
        with self._scope(session) as s:
            s.execute(
                update(users)
                .where(users.c.user_id == user_id)
                .values(
                    mfa_secret=totp_secret,
                    mfa_enabled=True,
                    mfa_backup_codes=json.dumps(hashed_codes),
                    updated_at=_utcnow(),
                )
            )
        logger.info(f"Enabled MFA for user {user_id} with {len(hashed_codes)} backup codes")

    def disable_mfa(self, user_id: str, session: Optional[Session] = None) -> None:
        with self._scope(session) as s:
            s.execute(
                update(users)
                .where(users.c.user_id == user_id)
                .values(
                    mfa_secret=None,
                    mfa_enabled=False,
                    mfa_backup_codes=None,
                    updated_at=_utcnow(),
                )
            )
        logger.info(f"Disabled MFA for user {user_id}")

    def get_backup_codes(self, user_id: str, session: Optional[Session] = None) -> List[str]:
        """
        Get hashed backup codes for a user.

        Returns:
            List of hashed backup codes.
        """
        with self._scope(session) as s:
            raw = s.execute(
                select(users.c.mfa_backup_codes).where(users.c.user_id == user_id)
            ).scalar_one_or_none()
            if not raw:
                return []
            return json.loads(raw)

    def store_backup_codes(
        self, user_id: str, hashed_codes: List[str], session: Optional[Session] = None
    ) -> None:
        """
        Store hashed backup codes for MFA recovery.

        Args:
            user_id: UUID of user.
            hashed_codes: List of bcrypt-hashed backup codes.
        """
        with self._scope(session) as s:
            s.execute(
                update(users)
                .where(users.c.user_id == user_id)
                .values(
                    mfa_backup_codes=json.dumps(hashed_codes) if hashed_codes else None,
                    updated_at=_utcnow(),
                )
            )
        logger.info(f"Stored {len(hashed_codes)} backup codes for user {user_id}")

    # ==========================================
    # Session Management
    # ==========================================

    def create_session(
        self,
        user_id: str,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
        expires_hours: int = 24,
        session: Optional[Session] = None,
    ) -> Tuple[str, str]:
        """
        Create a new session for a user.

        Only the SHA-256 hash of the bearer token is stored.

        Returns:
            Tuple of (session_id, bearer token). The token is not
            recoverable afterwards.
        """
        session_id = str(uuid.uuid4())
        token = generate_token()
        now = _utcnow()
        expires_at = now + timedelta(hours=expires_hours)

        with self._scope(session) as s:
            s.execute(
                insert(sessions).values(
                    session_id=session_id,
                    user_id=user_id,
                    token_hash=hash_token(token),
                    user_agent=user_agent,
                    ip_address=ip_address,
                    created_at=now,
                    last_active_at=now,
                    expires_at=expires_at,
                )
            )

        logger.debug(f"Created session {session_id} for user {user_id}, expires {expires_at}")
        return session_id, token

    def validate_session(self, token: str, session: Optional[Session] = None) -> Optional[Dict]:
        """
        Validate a bearer token and touch the session's activity time.

        Returns:
            Dict with user_id, email, session_id and expiry if valid,
            None if unknown, expired, or the user is inactive.
        """
        now = _utcnow()
        with self._scope(session) as s:
            row = s.execute(
                select(
                    users.c.user_id,
                    users.c.email,
                    users.c.mfa_enabled,
                    sessions.c.session_id,
                    sessions.c.expires_at,
                )
                .select_from(sessions.join(users, sessions.c.user_id == users.c.user_id))
                .where(
                    sessions.c.token_hash == hash_token(token),
                    sessions.c.expires_at > now,
                    users.c.is_active.is_(True),
                )
            ).fetchone()

            if row is None:
                return None

            s.execute(
                update(sessions)
                .where(sessions.c.session_id == row.session_id)
                .values(last_active_at=now)
            )
            return _row_to_dict(row)

    def get_session_record(
        self,
        session_id: str,
        session: Optional[Session] = None,
        for_update: bool = False,
    ) -> Optional[Dict]:
        """Get a session row (without its token hash) by ID."""
        query = select(
            sessions.c.session_id,
            sessions.c.user_id,
            sessions.c.user_agent,
            sessions.c.ip_address,
            sessions.c.created_at,
            sessions.c.last_active_at,
            sessions.c.expires_at,
        ).where(sessions.c.session_id == session_id)
        if for_update:
            query = query.with_for_update()
        with self._scope(session) as s:
            return _row_to_dict(s.execute(query).fetchone())

    def list_sessions(self, user_id: str, session: Optional[Session] = None) -> List[Dict]:
        """List a user's sessions, most recently active first."""
        with self._scope(session) as s:
            rows = s.execute(
                select(
                    sessions.c.session_id,
                    sessions.c.user_agent,
                    sessions.c.ip_address,
                    sessions.c.created_at,
                    sessions.c.last_active_at,
                    sessions.c.expires_at,
                )
                .where(sessions.c.user_id == user_id)
                .order_by(sessions.c.last_active_at.desc())
            ).fetchall()
            return [_row_to_dict(row) for row in rows]

    def delete_session(self, session_id: str, session: Optional[Session] = None) -> int:
        """Delete one session. Returns the number of rows removed."""
        with self._scope(session) as s:
            result = s.execute(delete(sessions).where(sessions.c.session_id == session_id))
            return result.rowcount

    def delete_user_sessions(
        self,
        user_id: str,
        keep_session_id: Optional[str] = None,
        session: Optional[Session] = None,
    ) -> int:
        """
        Delete all sessions for a user (logout from all devices).

        Args:
            keep_session_id: Session to leave in place, usually the caller's.

        Returns:
            Number of sessions deleted.
        """
        query = delete(sessions).where(sessions.c.user_id == user_id)
        if keep_session_id is not None:
            query = query.where(sessions.c.session_id != keep_session_id)
        with self._scope(session) as s:
            count = s.execute(query).rowcount
        logger.info(f"Deleted {count} sessions for user {user_id}")
        return count

    def purge_expired_sessions(self, now: Optional[datetime] = None) -> int:
        now = now or _utcnow()
        with self.get_session() as s:
            return s.execute(delete(sessions).where(sessions.c.expires_at <= now)).rowcount

    # ==========================================
    # Verification Tokens
    # ==========================================

    def upsert_verification_token(
        self,
        identifier: str,
        token_hash: str,
        expires_at: datetime,
        user_id: Optional[str] = None,
        session: Optional[Session] = None,
    ) -> None:
        """
        Store the live token for an identifier, replacing any earlier one.

        A single INSERT ... ON CONFLICT statement, so concurrent issuers for
        the same identifier cannot leave two live tokens behind.
        """
        values = {
            "identifier": identifier,
            "token_hash": token_hash,
            "user_id": user_id,
            "expires_at": expires_at,
            "created_at": _utcnow(),
        }
        dialect = self.engine.dialect.name

        with self._scope(session) as s:
            if dialect in ("postgresql", "sqlite"):
                if dialect == "postgresql":
                    from sqlalchemy.dialects.postgresql import insert as dialect_insert
                else:
                    from sqlalchemy.dialects.sqlite import insert as dialect_insert
                stmt = dialect_insert(verification_tokens).values(**values)
                stmt = stmt.on_conflict_do_update(
                    index_elements=[verification_tokens.c.identifier],
                    set_={
                        "token_hash": stmt.excluded.token_hash,
                        "user_id": stmt.excluded.user_id,
                        "expires_at": stmt.excluded.expires_at,
                        "created_at": stmt.excluded.created_at,
                    },
                )
                s.execute(stmt)
            else:
                s.execute(
                    delete(verification_tokens).where(
                        verification_tokens.c.identifier == identifier
                    )
                )
                s.execute(insert(verification_tokens).values(**values))

    def get_verification_token(
        self,
        identifier: str,
        session: Optional[Session] = None,
        for_update: bool = False,
    ) -> Optional[Dict]:
        query = select(verification_tokens).where(
            verification_tokens.c.identifier == identifier
        )
        if for_update:
            query = query.with_for_update()
        with self._scope(session) as s:
            return _row_to_dict(s.execute(query).fetchone())

    def delete_verification_token(
        self,
        identifier: str,
        token_hash: Optional[str] = None,
        session: Optional[Session] = None,
    ) -> int:
        """Delete the token for an identifier (only if it still matches `token_hash`)."""
        query = delete(verification_tokens).where(
            verification_tokens.c.identifier == identifier
        )
        if token_hash is not None:
            query = query.where(verification_tokens.c.token_hash == token_hash)
        with self._scope(session) as s:
            return s.execute(query).rowcount

    def purge_expired_tokens(self, now: Optional[datetime] = None) -> int:
        now = now or _utcnow()
        with self.get_session() as s:
            return s.execute(
                delete(verification_tokens).where(verification_tokens.c.expires_at <= now)
            ).rowcount

    # ==========================================
    # Settings
    # ==========================================

    def create_default_settings(self, user_id: str, session: Optional[Session] = None) -> None:
        """Create privacy and notification settings rows with defaults."""
        now = _utcnow()
        with self._scope(session) as s:
            s.execute(insert(privacy_settings).values(user_id=user_id, updated_at=now))
            s.execute(insert(notification_settings).values(user_id=user_id, updated_at=now))

    def get_privacy_settings(self, user_id: str, session: Optional[Session] = None) -> Optional[Dict]:
        with self._scope(session) as s:
            return _row_to_dict(
                s.execute(
                    select(privacy_settings).where(privacy_settings.c.user_id == user_id)
                ).fetchone()
            )

    def update_privacy_settings(
        self, user_id: str, values: Dict, session: Optional[Session] = None
    ) -> Dict:
        """Apply a partial update, creating the row if it is missing."""
        return self._upsert_settings(privacy_settings, user_id, values, session)

    def get_notification_settings(
        self, user_id: str, session: Optional[Session] = None
    ) -> Optional[Dict]:
        with self._scope(session) as s:
            return _row_to_dict(
                s.execute(
                    select(notification_settings).where(
                        notification_settings.c.user_id == user_id
                    )
                ).fetchone()
            )

    def update_notification_settings(
        self, user_id: str, values: Dict, session: Optional[Session] = None
    ) -> Dict:
        return self._upsert_settings(notification_settings, user_id, values, session)

    def _upsert_settings(self, table, user_id: str, values: Dict, session) -> Dict:
        now = _utcnow()
        with self._scope(session) as s:
            exists = s.execute(
                select(table.c.user_id).where(table.c.user_id == user_id).with_for_update()
            ).fetchone()
            if exists is None:
                s.execute(insert(table).values(user_id=user_id, updated_at=now, **values))
            elif values:
                s.execute(
                    update(table)
                    .where(table.c.user_id == user_id)
                    .values(updated_at=now, **values)
                )
            row = s.execute(select(table).where(table.c.user_id == user_id)).fetchone()
            return _row_to_dict(row)

    # ==========================================
    # Login History
    # ==========================================

    def record_login_attempt(
        self,
        user_id: str,
        success: bool,
        failure_reason: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        session: Optional[Session] = None,
    ) -> None:
        with self._scope(session) as s:
            s.execute(
                insert(login_history).values(
                    user_id=user_id,
                    success=success,
                    failure_reason=failure_reason,
                    ip_address=ip_address,
                    user_agent=user_agent,
                    created_at=_utcnow(),
                )
            )

    def get_failed_login_count(
        self,
        user_id: str,
        window_minutes: int = 15,
        session: Optional[Session] = None,
    ) -> int:
        """
        Count failed logins in the lockout window since the last success.

        Args:
            user_id: UUID of user.
            window_minutes: Lockout window in minutes (default 15).
        """
        window_start = _utcnow() - timedelta(minutes=window_minutes)

        with self._scope(session) as s:
            last_success = s.execute(
                select(func.max(login_history.c.created_at)).where(
                    login_history.c.user_id == user_id,
                    login_history.c.success.is_(True),
                    login_history.c.created_at > window_start,
                )
            ).scalar_one_or_none()

            since = window_start
            if last_success is not None:
                if last_success.tzinfo is None:
                    last_success = last_success.replace(tzinfo=timezone.utc)
                since = max(window_start, last_success)

            return s.execute(
                select(func.count()).select_from(login_history).where(
                    login_history.c.user_id == user_id,
                    login_history.c.success.is_(False),
                    login_history.c.created_at > since,
                )
            ).scalar_one()

    def list_login_history(self, user_id: str, session: Optional[Session] = None) -> List[Dict]:
        with self._scope(session) as s:
            rows = s.execute(
                select(login_history)
                .where(login_history.c.user_id == user_id)
                .order_by(login_history.c.created_at.desc())
            ).fetchall()
            return [_row_to_dict(row) for row in rows]

    # ==========================================
    # Owned Account Data
    # ==========================================

    def list_notifications(self, user_id: str, session: Optional[Session] = None) -> List[Dict]:
        with self._scope(session) as s:
            rows = s.execute(
                select(notifications)
                .where(notifications.c.user_id == user_id)
                .order_by(notifications.c.created_at.desc())
            ).fetchall()
            return [_row_to_dict(row) for row in rows]

    def add_notification(
        self,
        user_id: str,
        title: str,
        body: Optional[str] = None,
        session: Optional[Session] = None,
    ) -> str:
        notification_id = str(uuid.uuid4())
        with self._scope(session) as s:
            s.execute(
                insert(notifications).values(
                    notification_id=notification_id,
                    user_id=user_id,
                    title=title,
                    body=body,
                    read=False,
                    created_at=_utcnow(),
                )
            )
        return notification_id

    def get_subscription(self, user_id: str, session: Optional[Session] = None) -> Optional[Dict]:
        """Get the user's subscription with its invoices, or None."""
        with self._scope(session) as s:
            sub = _row_to_dict(
                s.execute(
                    select(subscriptions).where(subscriptions.c.user_id == user_id)
                ).fetchone()
            )
            if sub is None:
                return None
            rows = s.execute(
                select(invoices)
                .where(invoices.c.subscription_id == sub["subscription_id"])
                .order_by(invoices.c.created_at)
            ).fetchall()
            sub["invoices"] = [_row_to_dict(row) for row in rows]
            return sub

    def create_subscription(
        self,
        user_id: str,
        plan: str,
        status: str = "active",
        current_period_end: Optional[datetime] = None,
        session: Optional[Session] = None,
    ) -> str:
        subscription_id = str(uuid.uuid4())
        with self._scope(session) as s:
            s.execute(
                insert(subscriptions).values(
                    subscription_id=subscription_id,
                    user_id=user_id,
                    plan=plan,
                    status=status,
                    current_period_end=current_period_end,
                    created_at=_utcnow(),
                )
            )
        return subscription_id

    def add_invoice(
        self,
        subscription_id: str,
        amount_cents: int,
        currency: str = "USD",
        status: str = "paid",
        session: Optional[Session] = None,
    ) -> str:
        invoice_id = str(uuid.uuid4())
        with self._scope(session) as s:
            s.execute(
                insert(invoices).values(
                    invoice_id=invoice_id,
                    subscription_id=subscription_id,
                    amount_cents=amount_cents,
                    currency=currency,
                    status=status,
                    created_at=_utcnow(),
                )
            )
        return invoice_id

    def delete_user_records(
        self,
        user_id: str,
        email: str,
        token_identifiers: List[str],
        session: Session,
    ) -> Dict[str, int]:
        """
        Delete a user and everything the user owns, children first.

        Must run inside the caller's transaction (with the user row locked),
        so either the whole graph goes or none of it does.

        Args:
            user_id: UUID of user.
            email: Current email; verification tokens keyed by it are owned too.
            token_identifiers: Purpose-key identifiers owned by the user.

        Returns:
            Rows deleted per table.
        """
        subscription_ids = select(subscriptions.c.subscription_id).where(
            subscriptions.c.user_id == user_id
        )

        steps = [
            ("invoices", delete(invoices).where(invoices.c.subscription_id.in_(subscription_ids))),
            ("subscriptions", delete(subscriptions).where(subscriptions.c.user_id == user_id)),
            ("notifications", delete(notifications).where(notifications.c.user_id == user_id)),
            (
                "notification_settings",
                delete(notification_settings).where(notification_settings.c.user_id == user_id),
            ),
            (
                "privacy_settings",
                delete(privacy_settings).where(privacy_settings.c.user_id == user_id),
            ),
            ("login_history", delete(login_history).where(login_history.c.user_id == user_id)),
            (
                "verification_tokens",
                delete(verification_tokens).where(
                    or_(
                        verification_tokens.c.user_id == user_id,
                        verification_tokens.c.identifier.in_(
                            [_normalize_email(email)] + list(token_identifiers)
                        ),
                    )
                ),
            ),
            ("sessions", delete(sessions).where(sessions.c.user_id == user_id)),
            ("users", delete(users).where(users.c.user_id == user_id)),
        ]

        counts = {}
        for table_name, statement in steps:
            counts[table_name] = session.execute(statement).rowcount
        return counts

    def count_user_records(self, user_id: str, session: Optional[Session] = None) -> Dict[str, int]:
        """Count rows referencing a user across owned tables (used after erasure)."""
        owned = {
            "users": users.c.user_id,
            "sessions": sessions.c.user_id,
            "verification_tokens": verification_tokens.c.user_id,
            "privacy_settings": privacy_settings.c.user_id,
            "notification_settings": notification_settings.c.user_id,
            "notifications": notifications.c.user_id,
            "login_history": login_history.c.user_id,
            "subscriptions": subscriptions.c.user_id,
        }
        with self._scope(session) as s:
            return {
                name: s.execute(
                    select(func.count()).select_from(column.table).where(column == user_id)
                ).scalar_one()
                for name, column in owned.items()
            }

    # ==========================================
    # Schema Initialization
    # ==========================================

    def init_schema(self) -> None:
        """
        Initialize database schema (create tables if not exist).

        Call this once during application setup.
        """
        metadata.create_all(self.engine)
        logger.info("Database schema initialized")

    def ping(self) -> None:
        """Round-trip a trivial query; raises if the database is unreachable."""
        with self.get_session() as s:
            s.execute(text("SELECT 1"))


# Singleton instance
_auth_db_instance: Optional[AuthDB] = None


def get_auth_db() -> AuthDB:
    """
    Get singleton AuthDB instance.

    Returns:
        AuthDB instance.
    """
    global _auth_db_instance
    if _auth_db_instance is None:
        _auth_db_instance = AuthDB()
    return _auth_db_instance
