"""
Multi-Factor Authentication (MFA) primitives.

TOTP (RFC 6238) with 30-second steps, compatible with Google Authenticator,
Authy and other authenticator apps. Also provides backup code generation,
hashing and matching for account recovery.
"""
import base64
import binascii
import io
import logging
import os
import secrets
import string
from datetime import datetime
from typing import Tuple, Optional, List

import bcrypt
import pyotp
import qrcode

logger = logging.getLogger(__name__)

DEFAULT_ISSUER = "CareOS Engine"

BACKUP_CODE_COUNT = 10
BACKUP_CODE_LENGTH = 8
BACKUP_CODE_ALPHABET = string.ascii_uppercase + string.digits


def get_issuer() -> str:
    return os.getenv("MFA_ISSUER", DEFAULT_ISSUER)


def generate_totp_secret() -> str:
    """
    Generate a new TOTP secret for MFA enrollment.

    Returns:
        Base32-encoded secret (32 characters).
    """
    return pyotp.random_base32()


def get_totp_provisioning_uri(
    secret: str,
    email: str,
    issuer: Optional[str] = None
) -> str:
    """
    Generate a provisioning URI for TOTP apps.

    Args:
        secret: Base32-encoded TOTP secret.
        email: User's email address (account name shown in the app).
        issuer: Issuer shown in the app (MFA_ISSUER by default).

    Returns:
        otpauth:// URI string.
    """
    totp = pyotp.TOTP(secret)
    return totp.provisioning_uri(name=email, issuer_name=issuer or get_issuer())


def generate_qr_code(uri: str) -> bytes:
    """
    Render a provisioning URI as a PNG QR code.

    Returns:
        PNG image bytes.
    """
    qr = qrcode.QRCode(
        version=1,
        error_correction=qrcode.constants.ERROR_CORRECT_L,
        box_size=10,
        border=4,
    )
    qr.add_data(uri)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")

    buffer = io.BytesIO()
    img.save(buffer, format='PNG')
    return buffer.getvalue()


def generate_qr_code_data_uri(uri: str) -> str:
    """PNG QR code for `uri` as a data: URI."""
    b64 = base64.b64encode(generate_qr_code(uri)).decode('ascii')
    return f"data:image/png;base64,{b64}"


def verify_totp(
    secret: str,
    code: str,
    window: int = 1,
    for_time: Optional[datetime] = None,
) -> bool:
    """
    Verify a TOTP code against the secret.

    Args:
        secret: Base32-encoded TOTP secret.
        code: 6-digit code entered by user (spaces tolerated).
        window: Steps accepted either side of the current one (1 = +-30s).
        for_time: Time to check against (defaults to now).

    Returns:
        True if code is valid, False otherwise.
    """
    if not secret or not code:
        return False

    code = ''.join(ch for ch in code if not ch.isspace())
    if len(code) != 6 or not code.isdigit():
        return False

    totp = pyotp.TOTP(secret)
    try:
        if for_time is None:
            return totp.verify(code, valid_window=window)
        return totp.verify(code, for_time=for_time, valid_window=window)
    except (binascii.Error, ValueError):
        logger.warning("TOTP check against a malformed secret")
        return False


def setup_mfa(email: str, issuer: Optional[str] = None) -> Tuple[str, str, str]:
    """
    Generate secret, provisioning URI and QR data URI in one go.

    Returns:
        Tuple of (secret, provisioning_uri, qr_code_data_uri).
    """
    secret = generate_totp_secret()
    uri = get_totp_provisioning_uri(secret, email, issuer)
    return secret, uri, generate_qr_code_data_uri(uri)


def generate_backup_codes(
    count: int = BACKUP_CODE_COUNT,
    length: int = BACKUP_CODE_LENGTH,
) -> List[str]:
    """
    Generate unique backup codes for account recovery.

    Each code can be used once. They are shown to the user exactly once.

    Returns:
        List of `count` distinct uppercase alphanumeric codes.
    """
    codes: List[str] = []
    while len(codes) < count:
        code = ''.join(secrets.choice(BACKUP_CODE_ALPHABET) for _ in range(length))
        if code not in codes:
            codes.append(code)
    return codes


def normalize_backup_code(code: str) -> str:
    """Strip spaces and dashes, upper-case."""
    return code.replace("-", "").replace(" ", "").strip().upper()


def _backup_code_rounds() -> int:
    return int(os.getenv("BACKUP_CODE_BCRYPT_ROUNDS", "10"))


def hash_backup_code(code: str) -> str:
    """
    Hash a backup code for storage.

    Returns:
        Bcrypt hash of the normalized code.
    """
    salt = bcrypt.gensalt(rounds=_backup_code_rounds())  # Lower than passwords, there are ten of them
    return bcrypt.hashpw(normalize_backup_code(code).encode('utf-8'), salt).decode('utf-8')


def hash_backup_codes(codes: List[str]) -> List[str]:
    return [hash_backup_code(code) for code in codes]


def verify_backup_code(code: str, hashed_code: str) -> bool:
    normalized = normalize_backup_code(code)
    if not normalized:
        return False
    try:
        return bcrypt.checkpw(normalized.encode('utf-8'), hashed_code.encode('utf-8'))
    except ValueError:
        return False


def find_matching_backup_code(code: str, hashed_codes: List[str]) -> Optional[int]:
    """
    Find the index of a matching backup code.

    Args:
        code: Plain text backup code entered by user.
        hashed_codes: Stored bcrypt hashes.

    Returns:
        Index of the matching code, or None if not found.
    """
    for i, hashed in enumerate(hashed_codes):
        if verify_backup_code(code, hashed):
            return i
    return None
