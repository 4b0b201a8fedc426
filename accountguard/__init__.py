"""
AccountGuard: account security service.

Credentials, TOTP multi-factor authentication, sessions, verification
tokens and account lifecycle (export, erasure) behind a FastAPI boundary.
"""
__version__ = "1.0.0"
