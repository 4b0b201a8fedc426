"""
Authentication primitives for AccountGuard.

This package provides:
- Password hashing (bcrypt)
- Verification tokens
- TOTP and backup codes
- The caller Identity
"""
from .identity import Identity
from .passwords import hash_password, verify_password
from .tokens import (
    ConsumeOutcome,
    ConsumeResult,
    VerificationTokenManager,
    generate_token,
    hash_token,
)
from .mfa import (
    generate_totp_secret,
    get_totp_provisioning_uri,
    verify_totp,
    setup_mfa,
    generate_backup_codes,
    generate_qr_code_data_uri,
)

__all__ = [
    "Identity",
    "hash_password",
    "verify_password",
    "ConsumeOutcome",
    "ConsumeResult",
    "VerificationTokenManager",
    "generate_token",
    "hash_token",
    "generate_totp_secret",
    "get_totp_provisioning_uri",
    "verify_totp",
    "setup_mfa",
    "generate_backup_codes",
    "generate_qr_code_data_uri",
]
