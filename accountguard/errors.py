"""
Typed failures for AccountGuard.

Services raise these; the API boundary (api/main.py) maps each one to an
HTTP status and a stable, non-revealing JSON body tagged with the request id.

Sensitive distinctions (e.g. "expired token" vs "wrong token") belong in the
log line written where the error is raised, never in the error message.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Canonical error codes returned to clients."""
    AUTH_REQUIRED = "AUTH_REQUIRED"
    AUTH_INVALID_CREDENTIALS = "AUTH_INVALID_CREDENTIALS"
    AUTH_MFA_REQUIRED = "AUTH_MFA_REQUIRED"
    AUTH_MFA_INVALID = "AUTH_MFA_INVALID"
    AUTH_ACCOUNT_LOCKED = "AUTH_ACCOUNT_LOCKED"
    AUTH_TOKEN_INVALID = "AUTH_TOKEN_INVALID"

    VALIDATION_ERROR = "VALIDATION_ERROR"

    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    RESOURCE_ALREADY_EXISTS = "RESOURCE_ALREADY_EXISTS"
    RESOURCE_ACCESS_DENIED = "RESOURCE_ACCESS_DENIED"

    METHOD_NOT_ALLOWED = "METHOD_NOT_ALLOWED"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"

    INTERNAL_ERROR = "INTERNAL_ERROR"


class ErrorCategory(str, Enum):
    AUTHENTICATION = "AUTHENTICATION"
    VALIDATION = "VALIDATION"
    RESOURCE = "RESOURCE"
    PROTOCOL = "PROTOCOL"
    RATE_LIMIT = "RATE_LIMIT"
    SYSTEM = "SYSTEM"


class AccountSecurityError(Exception):
    """
    Base class for every failure a service can signal.

    Subclasses pin the code, category, default HTTP status and default
    message. Callers may override the message, attach field-level details,
    or override the status where the same failure maps differently
    (e.g. an invalid MFA code at login is a 401, at enrollment a 422).
    """

    code: ErrorCode = ErrorCode.INTERNAL_ERROR
    category: ErrorCategory = ErrorCategory.SYSTEM
    status_code: int = 500
    default_message: str = "An internal error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.message = message or self.default_message
        self.details = details
        if status_code is not None:
            self.status_code = status_code
        self.headers = headers
        self.timestamp = datetime.now(timezone.utc)
        super().__init__(self.message)

    def to_dict(self, request_id: Optional[str] = None) -> Dict[str, Any]:
        """Render the client-facing error body."""
        return {
            "error": self.message,
            "code": self.code.value,
            "category": self.category.value,
            "details": self.details,
            "requestId": request_id,
            "timestamp": self.timestamp.isoformat(),
        }


# ============================================
# Authentication
# ============================================

class AuthRequiredError(AccountSecurityError):
    code = ErrorCode.AUTH_REQUIRED
    category = ErrorCategory.AUTHENTICATION
    status_code = 401
    default_message = "Authentication required"


class InvalidCredentialsError(AccountSecurityError):
    code = ErrorCode.AUTH_INVALID_CREDENTIALS
    category = ErrorCategory.AUTHENTICATION
    status_code = 401
    default_message = "Invalid email or password"


class ReauthenticationError(InvalidCredentialsError):
    """The current password did not verify for a sensitive change."""
    status_code = 422
    default_message = "Current password is incorrect"


class MfaRequiredError(AccountSecurityError):
    code = ErrorCode.AUTH_MFA_REQUIRED
    category = ErrorCategory.AUTHENTICATION
    status_code = 401
    default_message = "Multi-factor authentication required"


class MfaInvalidError(AccountSecurityError):
    code = ErrorCode.AUTH_MFA_INVALID
    category = ErrorCategory.AUTHENTICATION
    status_code = 422
    default_message = "Invalid MFA code"


class AccountLockedError(AccountSecurityError):
    code = ErrorCode.AUTH_ACCOUNT_LOCKED
    category = ErrorCategory.AUTHENTICATION
    status_code = 429
    default_message = "Account locked due to too many failed attempts"


class InvalidTokenError(AccountSecurityError):
    """Verification token was never issued, already used, wrong or expired."""
    code = ErrorCode.AUTH_TOKEN_INVALID
    category = ErrorCategory.AUTHENTICATION
    status_code = 400
    default_message = "Invalid or expired verification token"


# ============================================
# Resources
# ============================================

class NotFoundError(AccountSecurityError):
    code = ErrorCode.RESOURCE_NOT_FOUND
    category = ErrorCategory.RESOURCE
    status_code = 404
    default_message = "Resource not found"

    def __init__(self, resource: str = "Resource", **kwargs):
        kwargs.setdefault("message", f"{resource} not found")
        super().__init__(**kwargs)


class AlreadyExistsError(AccountSecurityError):
    code = ErrorCode.RESOURCE_ALREADY_EXISTS
    category = ErrorCategory.RESOURCE
    status_code = 409
    default_message = "Resource already exists"

    def __init__(self, resource: str = "Resource", **kwargs):
        kwargs.setdefault("message", f"{resource} already exists")
        super().__init__(**kwargs)


class AccessDeniedError(AccountSecurityError):
    code = ErrorCode.RESOURCE_ACCESS_DENIED
    category = ErrorCategory.RESOURCE
    status_code = 403
    default_message = "Access denied"


# ============================================
# Input / protocol
# ============================================

class InputValidationError(AccountSecurityError):
    """Malformed input; `details` maps field name to a list of messages."""
    code = ErrorCode.VALIDATION_ERROR
    category = ErrorCategory.VALIDATION
    status_code = 400
    default_message = "Validation failed"


class MethodNotAllowedError(AccountSecurityError):
    code = ErrorCode.METHOD_NOT_ALLOWED
    category = ErrorCategory.PROTOCOL
    status_code = 405
    default_message = "Method not allowed"


class RateLimitExceededError(AccountSecurityError):
    code = ErrorCode.RATE_LIMIT_EXCEEDED
    category = ErrorCategory.RATE_LIMIT
    status_code = 429
    default_message = "Too many requests. Try again later."


class InternalError(AccountSecurityError):
    pass
