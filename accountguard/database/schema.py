"""
Relational schema for AccountGuard.

Tables are declared with SQLAlchemy Core so the same definitions run on
PostgreSQL (production) and SQLite (tests, local development).

Foreign keys carry no ON DELETE CASCADE: account erasure deletes owned rows
explicitly, children first (see AuthDB.delete_user_records).
"""
from datetime import timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
)
from sqlalchemy.types import TypeDecorator


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime, normalized to UTC on the way in and out."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        # SQLite hands back naive values
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


metadata = MetaData()


users = Table(
    "users",
    metadata,
    Column("user_id", String(36), primary_key=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("name", String(255)),
    Column("phone", String(32)),
    Column("theme", String(16), nullable=False, default="system"),
    Column("language", String(16), nullable=False, default="en"),
    Column("timezone", String(64), nullable=False, default="UTC"),
    Column("password_hash", String(255)),
    Column("mfa_enabled", Boolean, nullable=False, default=False),
    Column("mfa_secret", String(64)),
    Column("mfa_backup_codes", Text),
    Column("is_active", Boolean, nullable=False, default=True),
    Column("last_login", UTCDateTime()),
    Column("created_at", UTCDateTime(), nullable=False),
    Column("updated_at", UTCDateTime(), nullable=False),
)

sessions = Table(
    "sessions",
    metadata,
    Column("session_id", String(36), primary_key=True),
    Column("user_id", String(36), ForeignKey("users.user_id"), nullable=False),
    Column("token_hash", String(64), nullable=False, unique=True),
    Column("user_agent", String(512)),
    Column("ip_address", String(64)),
    Column("created_at", UTCDateTime(), nullable=False),
    Column("last_active_at", UTCDateTime(), nullable=False),
    Column("expires_at", UTCDateTime(), nullable=False),
    Index("idx_sessions_user", "user_id"),
    Index("idx_sessions_expires", "expires_at"),
)

verification_tokens = Table(
    "verification_tokens",
    metadata,
    # One live token per identifier; the upsert on this key is the
    # last-issued-wins rule.
    Column("identifier", String(255), primary_key=True),
    Column("token_hash", String(64), nullable=False),
    Column("user_id", String(36), ForeignKey("users.user_id")),
    Column("expires_at", UTCDateTime(), nullable=False),
    Column("created_at", UTCDateTime(), nullable=False),
    UniqueConstraint("identifier", "token_hash", name="uq_verification_identifier_token"),
    Index("idx_verification_tokens_user", "user_id"),
    Index("idx_verification_tokens_expires", "expires_at"),
)

privacy_settings = Table(
    "privacy_settings",
    metadata,
    Column("user_id", String(36), ForeignKey("users.user_id"), primary_key=True),
    Column("profile_visibility", String(16), nullable=False, default="private"),
    Column("data_sharing", Boolean, nullable=False, default=False),
    Column("analytics_enabled", Boolean, nullable=False, default=True),
    Column("cookies_accepted", Boolean, nullable=False, default=False),
    Column("cookies_accepted_at", UTCDateTime()),
    Column("updated_at", UTCDateTime(), nullable=False),
)

notification_settings = Table(
    "notification_settings",
    metadata,
    Column("user_id", String(36), ForeignKey("users.user_id"), primary_key=True),
    Column("email_marketing", Boolean, nullable=False, default=False),
    Column("email_transactional", Boolean, nullable=False, default=True),
    Column("email_updates", Boolean, nullable=False, default=True),
    Column("push_enabled", Boolean, nullable=False, default=False),
    Column("in_app_enabled", Boolean, nullable=False, default=True),
    Column("updated_at", UTCDateTime(), nullable=False),
)

notifications = Table(
    "notifications",
    metadata,
    Column("notification_id", String(36), primary_key=True),
    Column("user_id", String(36), ForeignKey("users.user_id"), nullable=False),
    Column("title", String(255), nullable=False),
    Column("body", Text),
    Column("read", Boolean, nullable=False, default=False),
    Column("created_at", UTCDateTime(), nullable=False),
    Index("idx_notifications_user", "user_id"),
)

login_history = Table(
    "login_history",
    metadata,
    Column("entry_id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", String(36), ForeignKey("users.user_id"), nullable=False),
    Column("ip_address", String(64)),
    Column("user_agent", String(512)),
    Column("success", Boolean, nullable=False),
    Column("failure_reason", String(255)),
    Column("created_at", UTCDateTime(), nullable=False),
    Index("idx_login_history_user", "user_id", "created_at"),
)

subscriptions = Table(
    "subscriptions",
    metadata,
    Column("subscription_id", String(36), primary_key=True),
    Column("user_id", String(36), ForeignKey("users.user_id"), nullable=False, unique=True),
    Column("plan", String(64), nullable=False),
    Column("status", String(32), nullable=False),
    Column("current_period_end", UTCDateTime()),
    Column("created_at", UTCDateTime(), nullable=False),
)

invoices = Table(
    "invoices",
    metadata,
    Column("invoice_id", String(36), primary_key=True),
    Column(
        "subscription_id",
        String(36),
        ForeignKey("subscriptions.subscription_id"),
        nullable=False,
    ),
    Column("amount_cents", Integer, nullable=False),
    Column("currency", String(3), nullable=False, default="USD"),
    Column("status", String(32), nullable=False),
    Column("created_at", UTCDateTime(), nullable=False),
    Index("idx_invoices_subscription", "subscription_id"),
)
