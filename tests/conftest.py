"""
Pytest configuration and shared fixtures for AccountGuard tests.

This module provides common test fixtures for:
- An in-memory SQLite AuthDB with the full schema
- A controllable clock
- Seeded users and authenticated identities
- A TestClient with dependencies pointed at the test database
"""
import os

# Cheap hashing and no rate limiting unless a test turns it on
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["BACKUP_CODE_BCRYPT_ROUNDS"] = "4"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["APP_ENV"] = "development"
os.environ.pop("REDIS_URL", None)

from datetime import datetime, timedelta, timezone

import pyotp
import pytest
from fastapi.testclient import TestClient

from accountguard.api.main import app
from accountguard.api.deps import get_clock, get_db, get_delivery, get_rate_limiter, RateLimiter
from accountguard.auth.identity import Identity
from accountguard.auth.passwords import hash_password
from accountguard.auth.tokens import VerificationTokenManager
from accountguard.database.auth_db import AuthDB
from accountguard.notifications.delivery import LoggingEmailDelivery


DEFAULT_PASSWORD = "correct horse battery"


class FixedClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def totp_at(secret: str, when: datetime) -> str:
    return pyotp.TOTP(secret).at(when)


# ============================================
# Database Fixtures
# ============================================

@pytest.fixture
def db():
    """Fresh in-memory database per test."""
    auth_db = AuthDB("sqlite://")
    auth_db.init_schema()
    yield auth_db
    auth_db.engine.dispose()


@pytest.fixture
def clock():
    # On a 30-second TOTP step boundary
    return FixedClock(datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def tokens(db, clock):
    return VerificationTokenManager(db, clock=clock)


@pytest.fixture
def make_user(db):
    """Factory: create a user with default settings, return its row plus the plain password."""
    def _make(email: str, password: str = DEFAULT_PASSWORD, name: str = None) -> dict:
        user_id = db.create_user(email, hash_password(password) if password else None, name=name)
        db.create_default_settings(user_id)
        user = db.get_user_by_id(user_id)
        user["password"] = password
        return user
    return _make


@pytest.fixture
def login_as(db):
    """Factory: open a session for a user, return (Identity, bearer token)."""
    def _login(user: dict, **kwargs):
        session_id, token = db.create_session(user["user_id"], **kwargs)
        identity = Identity(user_id=user["user_id"], email=user["email"], session_id=session_id)
        return identity, token
    return _login


@pytest.fixture
def alice(make_user):
    return make_user("alice@example.com", name="Alice")


@pytest.fixture
def bob(make_user):
    return make_user("bob@example.com", name="Bob")


# ============================================
# API Fixtures
# ============================================

@pytest.fixture
def delivery():
    return LoggingEmailDelivery()


@pytest.fixture
def client(db, clock, delivery):
    """TestClient wired to the test database, clock and delivery."""
    limiter = RateLimiter(None)
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_delivery] = lambda: delivery
    app.dependency_overrides[get_rate_limiter] = lambda: limiter

    yield TestClient(app, raise_server_exceptions=False)

    app.dependency_overrides.clear()


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}
