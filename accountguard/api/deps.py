"""
FastAPI Dependencies for the AccountGuard API.

Provides:
- Database connection and service wiring
- The Auth Gate (bearer token -> Identity)
- Rate limiting (Redis-backed with in-memory fallback)
"""
import os
import time
import logging
from datetime import datetime
from typing import Callable, Dict, Optional, Tuple

import redis
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from ..auth.identity import Identity
from ..auth.tokens import VerificationTokenManager, utcnow
from ..database.auth_db import AuthDB, get_auth_db
from ..errors import AuthRequiredError, RateLimitExceededError
from ..notifications.delivery import EmailDelivery, get_email_delivery
from ..services import (
    AccountLifecycleService,
    AuthenticationService,
    MfaEnrollmentService,
    SessionRegistry,
    SettingsService,
)

logger = logging.getLogger(__name__)


# ============================================
# Redis Client
# ============================================

_redis_client: Optional[redis.Redis] = None


def get_redis_client() -> Optional[redis.Redis]:
    """
    Get Redis client singleton.

    Returns None if REDIS_URL is not set or Redis is unreachable.
    """
    global _redis_client

    if _redis_client is not None:
        return _redis_client

    url = os.getenv("REDIS_URL")
    if not url:
        return None

    try:
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
        )
        client.ping()
        logger.info("Redis connected")
        _redis_client = client
        return _redis_client
    except redis.RedisError as e:
        logger.warning(f"Redis connection failed: {e}. Rate limiting will use in-memory fallback.")
        return None


# Security scheme
security = HTTPBearer(auto_error=False)


# ============================================
# Database and Service Dependencies
# ============================================

def get_db() -> AuthDB:
    """Get database connection."""
    return get_auth_db()


def get_clock() -> Callable[[], datetime]:
    return utcnow


def get_delivery() -> EmailDelivery:
    return get_email_delivery()


def get_token_manager(
    db: AuthDB = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> VerificationTokenManager:
    return VerificationTokenManager(db, clock=clock)


def get_mfa_service(
    db: AuthDB = Depends(get_db),
    tokens: VerificationTokenManager = Depends(get_token_manager),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> MfaEnrollmentService:
    return MfaEnrollmentService(db, tokens=tokens, clock=clock)


def get_authentication_service(
    db: AuthDB = Depends(get_db),
    mfa_service: MfaEnrollmentService = Depends(get_mfa_service),
) -> AuthenticationService:
    return AuthenticationService(db, mfa_service=mfa_service)


def get_session_registry(db: AuthDB = Depends(get_db)) -> SessionRegistry:
    return SessionRegistry(db)


def get_account_service(
    db: AuthDB = Depends(get_db),
    delivery: EmailDelivery = Depends(get_delivery),
    tokens: VerificationTokenManager = Depends(get_token_manager),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> AccountLifecycleService:
    return AccountLifecycleService(db, delivery=delivery, tokens=tokens, clock=clock)


def get_settings_service(
    db: AuthDB = Depends(get_db),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> SettingsService:
    return SettingsService(db, clock=clock)


# ============================================
# Auth Gate
# ============================================

def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AuthDB = Depends(get_db),
) -> Identity:
    """
    Resolve the bearer token to the caller's Identity.

    Runs before the request body is validated, so unauthenticated calls
    fail with 401 without touching any state.

    Raises:
        AuthRequiredError: Token missing, unknown or expired.
    """
    if credentials is None:
        raise AuthRequiredError(headers={"WWW-Authenticate": "Bearer"})

    row = db.validate_session(credentials.credentials)
    if row is None:
        raise AuthRequiredError(
            "Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return Identity.from_session_row(row)


def client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def client_user_agent(request: Request) -> Optional[str]:
    return request.headers.get("user-agent")


# ============================================
# Rate Limiting (Redis-backed with in-memory fallback)
# ============================================

class RateLimiter:
    """
    Fixed-budget rate limiter keyed by arbitrary strings.

    Uses Redis INCR with TTL for atomic, distributed counting. Falls back to
    an in-memory sliding window when Redis is not configured or errors.
    """

    KEY_PREFIX = "accountguard:ratelimit"

    def __init__(self, redis_client: Optional[redis.Redis] = None):
        self.redis = redis_client
        # In-memory fallback storage
        self._memory_store: Dict[str, list] = {}

    def _count_memory(self, key: str, window_seconds: int, record: bool) -> int:
        now = time.time()
        entries = [
            ts for ts in self._memory_store.get(key, [])
            if now - ts < window_seconds
        ]
        if record:
            entries.append(now)
        self._memory_store[key] = entries
        return len(entries)

    def _count(self, key: str, window_seconds: int, record: bool) -> int:
        if self.redis is not None:
            full_key = f"{self.KEY_PREFIX}:{key}"
            try:
                if not record:
                    count = self.redis.get(full_key)
                    return int(count) if count else 0
                pipe = self.redis.pipeline()
                pipe.incr(full_key)
                pipe.expire(full_key, window_seconds)
                return pipe.execute()[0]
            except redis.RedisError as e:
                logger.warning(f"Redis error in rate limit check: {e}")
        return self._count_memory(key, window_seconds, record)

    def hit(self, key: str, limit: int, window_seconds: int) -> Tuple[bool, int]:
        """
        Check the budget for `key` and, if allowed, record one request.

        Returns:
            Tuple of (allowed, remaining_requests)
        """
        remaining = limit - self._count(key, window_seconds, record=False)
        if remaining <= 0:
            return False, 0
        self._count(key, window_seconds, record=True)
        return True, remaining - 1

    def reset(self) -> None:
        self._memory_store.clear()


# Singleton rate limiter
_rate_limiter: Optional[RateLimiter] = None


def get_rate_limiter() -> RateLimiter:
    """Get singleton rate limiter (Redis-backed if available)."""
    global _rate_limiter
    if _rate_limiter is None:
        _rate_limiter = RateLimiter(get_redis_client())
    return _rate_limiter


def rate_limit_enabled() -> bool:
    return os.getenv("RATE_LIMIT_ENABLED", "true").lower() == "true"


REGISTER_LIMIT = 5        # per hour
REGISTER_WINDOW = 3600
LOGIN_LIMIT = 10          # per 15 minutes
LOGIN_WINDOW = 900


def _enforce(limiter: RateLimiter, key: str, limit: int, window: int, message: str) -> None:
    allowed, _ = limiter.hit(key, limit, window)
    if not allowed:
        logger.warning(f"Rate limit exceeded for {key.split(':')[0]}")
        raise RateLimitExceededError(
            message,
            headers={"Retry-After": str(window), "X-RateLimit-Remaining": "0"},
        )


def check_register_rate_limit(
    request: Request,
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> None:
    """Registration attempts per IP."""
    if rate_limit_enabled():
        _enforce(
            limiter, f"register:{client_ip(request)}", REGISTER_LIMIT, REGISTER_WINDOW,
            "Too many registration attempts. Try again later.",
        )


def check_login_rate_limit(
    request: Request,
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> None:
    """Login attempts per IP."""
    if rate_limit_enabled():
        _enforce(
            limiter, f"login:{client_ip(request)}", LOGIN_LIMIT, LOGIN_WINDOW,
            "Too many login attempts from this IP. Try again later.",
        )


def check_sensitive_rate_limit(
    identity: Identity = Depends(get_current_identity),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> Identity:
    """
    Reauthentication-gated operations per user.

    SENSITIVE_RATE_LIMIT requests per SENSITIVE_RATE_WINDOW seconds
    (default 3 per 5 minutes).
    """
    if rate_limit_enabled():
        _enforce(
            limiter,
            f"sensitive:{identity.user_id}",
            int(os.getenv("SENSITIVE_RATE_LIMIT", "3")),
            int(os.getenv("SENSITIVE_RATE_WINDOW", "300")),
            "Too many requests. Try again later.",
        )
    return identity
