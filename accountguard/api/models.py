"""
Pydantic Models for the AccountGuard API.

Request and response models for all API endpoints. JSON field names are
camelCase on the wire; snake_case is accepted on input as well.
"""
from datetime import datetime
from typing import Optional, List, Dict, Any, Literal

from pydantic import BaseModel, EmailStr, Field, ConfigDict, field_validator, ValidationInfo
from pydantic.alias_generators import to_camel

from ..auth.passwords import password_fits_bcrypt, MAX_PASSWORD_BYTES


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _check_password_length(value: str) -> str:
    if not password_fits_bcrypt(value):
        raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
    return value


# ============================================
# Authentication Models
# ============================================

class UserRegister(CamelModel):
    """
    User registration request.

    Password must be at least 8 characters.
    """
    email: EmailStr = Field(..., description="Valid email address")
    password: str = Field(..., min_length=8, description="Password (minimum 8 characters)")
    name: Optional[str] = Field(None, max_length=255)

    @field_validator("password")
    @classmethod
    def password_fits(cls, value: str) -> str:
        return _check_password_length(value)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "email": "jane@example.com",
                "password": "securepassword123",
                "name": "Jane"
            }
        }
    )


class UserLogin(CamelModel):
    """
    User login request.

    If MFA is enabled, provide either totpCode or backupCode.
    """
    email: EmailStr = Field(..., description="Registered email address")
    password: str = Field(..., min_length=1, description="Account password")
    totp_code: Optional[str] = Field(None, description="6-digit TOTP code from authenticator app")
    backup_code: Optional[str] = Field(None, description="One-time backup code")


class TokenResponse(CamelModel):
    """Authentication token response."""
    access_token: str
    token_type: str = "bearer"
    expires_in: int = Field(..., description="Token expiration in seconds")
    user_id: str
    email: str
    mfa_enabled: bool


class MessageResponse(CamelModel):
    message: str


class LogoutAllResponse(CamelModel):
    message: str
    revoked: int


# ============================================
# MFA Models
# ============================================

class MFASetupResponse(CamelModel):
    """MFA setup response with QR code."""
    secret: str
    qr_code_url: str = Field(..., description="PNG QR code as a data: URI")
    provisioning_uri: str


class MFAVerifyRequest(CamelModel):
    """MFA verification request: the code and the secret from /mfa/setup."""
    code: str = Field(..., pattern=r"^\d{6}$", description="6-digit TOTP code")
    secret: str = Field(..., min_length=16, max_length=64, pattern=r"^[A-Za-z2-7]+=*$")


class MFAVerifyResponse(CamelModel):
    """
    MFA verification success response.

    Contains backup codes that should be stored securely.
    Each backup code can only be used once.
    """
    message: str = "MFA enabled successfully"
    backup_codes: List[str] = Field(..., description="One-time backup codes for account recovery")


class MFADisableRequest(CamelModel):
    code: str = Field(..., pattern=r"^\d{6}$")


# ============================================
# Session Models
# ============================================

class SessionInfo(CamelModel):
    session_id: str
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    created_at: datetime
    last_active_at: datetime
    expires_at: datetime
    current: bool = False


class SessionListResponse(CamelModel):
    sessions: List[SessionInfo]


# ============================================
# Security Models
# ============================================

class PasswordChangeRequest(CamelModel):
    """
    Password change request.

    Requires current password verification. All other sessions
    are invalidated after a successful change.
    """
    current_password: str = Field(..., min_length=1, description="Current account password")
    new_password: str = Field(..., min_length=8, description="New password (minimum 8 characters)")
    confirm_password: str = Field(..., description="Repeat of the new password")

    @field_validator("new_password")
    @classmethod
    def new_password_fits(cls, value: str) -> str:
        return _check_password_length(value)

    @field_validator("confirm_password")
    @classmethod
    def passwords_match(cls, value: str, info: ValidationInfo) -> str:
        new_password = info.data.get("new_password")
        if new_password is not None and value != new_password:
            raise ValueError("Passwords don't match")
        return value


class EmailChangeRequest(CamelModel):
    new_email: EmailStr
    password: str = Field(..., min_length=1)


class EmailChangeResponse(CamelModel):
    message: str
    token: Optional[str] = Field(None, description="Only returned outside production")


class EmailConfirmRequest(CamelModel):
    new_email: EmailStr
    token: str = Field(..., min_length=1, max_length=128)


# ============================================
# Settings Models
# ============================================

class PrivacySettingsUpdate(CamelModel):
    """Partial update; omitted fields are left unchanged."""
    profile_visibility: Optional[Literal["private", "public", "friends"]] = None
    data_sharing: Optional[bool] = None
    analytics_enabled: Optional[bool] = None
    cookies_accepted: Optional[bool] = None

    model_config = ConfigDict(extra="forbid")


class NotificationSettingsUpdate(CamelModel):
    email_marketing: Optional[bool] = None
    email_transactional: Optional[bool] = None
    email_updates: Optional[bool] = None
    push_enabled: Optional[bool] = None
    in_app_enabled: Optional[bool] = None

    model_config = ConfigDict(extra="forbid")


class ProfileUpdate(CamelModel):
    """Partial profile update. An explicit null phone clears it."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    phone: Optional[str] = Field(None, max_length=32)

    model_config = ConfigDict(extra="forbid")

    @field_validator("name")
    @classmethod
    def name_not_null(cls, value: Optional[str]) -> str:
        if value is None:
            raise ValueError("Name cannot be empty")
        return value


class PreferencesUpdate(CamelModel):
    theme: Optional[Literal["light", "dark", "system"]] = None
    language: Optional[str] = Field(None, min_length=2, max_length=16)
    timezone: Optional[str] = Field(None, min_length=1, max_length=64)

    model_config = ConfigDict(extra="forbid")

    @field_validator("theme", "language", "timezone")
    @classmethod
    def not_null(cls, value: Optional[str]) -> str:
        if value is None:
            raise ValueError("Cannot be empty")
        return value


class PrivacySettings(CamelModel):
    profile_visibility: str
    data_sharing: bool
    analytics_enabled: bool
    cookies_accepted: bool
    cookies_accepted_at: Optional[datetime] = None
    updated_at: datetime


class NotificationSettings(CamelModel):
    email_marketing: bool
    email_transactional: bool
    email_updates: bool
    push_enabled: bool
    in_app_enabled: bool
    updated_at: datetime


class Profile(CamelModel):
    user_id: str
    name: Optional[str] = None
    email: str
    phone: Optional[str] = None


class Preferences(CamelModel):
    user_id: str
    theme: str
    language: str
    timezone: str


class PrivacySettingsResponse(CamelModel):
    settings: PrivacySettings


class NotificationSettingsResponse(CamelModel):
    settings: NotificationSettings


class ProfileResponse(CamelModel):
    user: Profile


class PreferencesResponse(CamelModel):
    user: Preferences


# ============================================
# Health Models
# ============================================

class HealthStatus(BaseModel):
    """Health check response."""
    status: str = Field(..., description="healthy or unhealthy")
    version: str
    services: Dict[str, str]
    timestamp: datetime


# ============================================
# Error Models
# ============================================

class ErrorResponse(CamelModel):
    """
    Standard error response.

    All API errors return this format: a non-revealing message, a stable
    code for programmatic handling and the request id for support.
    """
    error: str = Field(..., description="Error summary")
    code: str = Field(..., description="Error code for programmatic handling")
    category: Optional[str] = None
    detail: Optional[str] = Field(None, description="Internal detail (development only)")
    details: Optional[Dict[str, Any]] = Field(None, description="Field-level validation messages")
    request_id: Optional[str] = None
    timestamp: datetime

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "error": "Authentication required",
                "code": "AUTH_REQUIRED",
                "category": "AUTHENTICATION",
                "details": None,
                "requestId": "3f2a9c1e",
                "timestamp": "2026-01-01T00:00:00+00:00"
            }
        }
    )
