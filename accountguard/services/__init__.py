"""
Account security services.

Each service takes the caller's Identity explicitly and runs its writes in
AuthDB transactions.
"""
from .authentication import AuthenticationService, IssuedSession
from .mfa_enrollment import EnrollmentPayload, MfaEnrollmentService
from .session_registry import SessionRegistry
from .account_lifecycle import AccountLifecycleService, redact_export
from .settings import SettingsService

__all__ = [
    "AuthenticationService",
    "IssuedSession",
    "EnrollmentPayload",
    "MfaEnrollmentService",
    "SessionRegistry",
    "AccountLifecycleService",
    "redact_export",
    "SettingsService",
]
