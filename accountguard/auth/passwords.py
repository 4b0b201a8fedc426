"""
Password hashing utilities.

bcrypt with a tunable cost factor (BCRYPT_ROUNDS, default 12). Verification
always goes through bcrypt.checkpw, never through equality on hashes.
"""
import os
import logging
from typing import Optional

import bcrypt

logger = logging.getLogger(__name__)

DEFAULT_BCRYPT_ROUNDS = 12

# bcrypt only looks at the first 72 bytes of input
MAX_PASSWORD_BYTES = 72


def _rounds() -> int:
    return int(os.getenv("BCRYPT_ROUNDS", str(DEFAULT_BCRYPT_ROUNDS)))


def hash_password(password: str) -> str:
    """
    Hash a password using bcrypt.

    Args:
        password: Plain text password (at most 72 UTF-8 bytes).

    Returns:
        Bcrypt hash string.
    """
    salt = bcrypt.gensalt(rounds=_rounds())
    return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    """
    Verify a password against its hash.

    Args:
        password: Plain text password to verify.
        password_hash: Stored bcrypt hash (None for passwordless accounts).

    Returns:
        True if password matches, False otherwise (including a missing
        or malformed hash).
    """
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(
            password.encode('utf-8'),
            password_hash.encode('utf-8')
        )
    except ValueError as e:
        logger.warning(f"Password verification failed on malformed input: {e}")
        return False


def password_fits_bcrypt(password: str) -> bool:
    """True if the password is within bcrypt's input limit."""
    return len(password.encode('utf-8')) <= MAX_PASSWORD_BYTES
