"""
Authentication Endpoints.

Provides user registration, login and logout.
"""
import logging

from fastapi import APIRouter, Depends, Request, status

from ..models import (
    UserRegister,
    UserLogin,
    TokenResponse,
    LogoutAllResponse,
    ErrorResponse,
)
from ..deps import (
    get_authentication_service,
    get_current_identity,
    get_session_registry,
    check_register_rate_limit,
    check_login_rate_limit,
    client_ip,
    client_user_agent,
)
from ...auth.identity import Identity
from ...services import AuthenticationService, IssuedSession, SessionRegistry

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["Authentication"])


def _token_response(issued: IssuedSession) -> TokenResponse:
    return TokenResponse(
        access_token=issued.access_token,
        token_type="bearer",
        expires_in=issued.expires_in,
        user_id=issued.user_id,
        email=issued.email,
        mfa_enabled=issued.mfa_enabled,
    )


@router.post(
    "/register",
    response_model=TokenResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid input"},
        409: {"model": ErrorResponse, "description": "Email already exists"},
        429: {"model": ErrorResponse, "description": "Too many registration attempts"},
    },
    dependencies=[Depends(check_register_rate_limit)],
)
def register(
    user_data: UserRegister,
    request: Request,
    service: AuthenticationService = Depends(get_authentication_service),
):
    """
    Register a new user account.

    Returns an access token for immediate use.
    """
    issued = service.register(
        user_data.email,
        user_data.password,
        name=user_data.name,
        user_agent=client_user_agent(request),
        ip_address=client_ip(request),
    )
    return _token_response(issued)


@router.post(
    "/login",
    response_model=TokenResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid credentials, MFA required or invalid"},
        403: {"model": ErrorResponse, "description": "Account disabled"},
        429: {"model": ErrorResponse, "description": "Account locked or too many attempts from this IP"},
    },
    dependencies=[Depends(check_login_rate_limit)],
)
def login(
    credentials: UserLogin,
    request: Request,
    service: AuthenticationService = Depends(get_authentication_service),
):
    """
    Authenticate user and return access token.

    If MFA is enabled, provide either:
    - totpCode: 6-digit code from authenticator app
    - backupCode: one-time recovery code

    Backup codes are consumed on use and cannot be reused.

    Account is locked for 15 minutes after 5 failed login attempts.
    """
    issued = service.login(
        credentials.email,
        credentials.password,
        totp_code=credentials.totp_code,
        backup_code=credentials.backup_code,
        user_agent=client_user_agent(request),
        ip_address=client_ip(request),
    )
    return _token_response(issued)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(
    identity: Identity = Depends(get_current_identity),
    service: AuthenticationService = Depends(get_authentication_service),
):
    """Invalidate the current access token."""
    service.logout(identity)
    return None


@router.post("/logout/all", response_model=LogoutAllResponse)
def logout_all(
    identity: Identity = Depends(get_current_identity),
    registry: SessionRegistry = Depends(get_session_registry),
):
    """Sign out every other device. The current session stays valid."""
    count = registry.revoke_others(identity)
    logger.info(f"User {identity.user_id} logged out from {count} other sessions")
    return LogoutAllResponse(message="Other sessions signed out", revoked=count)
