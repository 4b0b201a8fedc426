"""
Credential Rotation Endpoints.

Password and email changes. Both require the current password.
"""
import os
import logging

from fastapi import APIRouter, Depends

from ..models import (
    PasswordChangeRequest,
    EmailChangeRequest,
    EmailChangeResponse,
    EmailConfirmRequest,
    MessageResponse,
    ErrorResponse,
)
from ..deps import get_account_service, get_current_identity, check_sensitive_rate_limit
from ...auth.identity import Identity
from ...services import AccountLifecycleService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/security", tags=["Security"])


def _echo_tokens() -> bool:
    return os.getenv("APP_ENV", "production") != "production"


@router.post(
    "/password",
    response_model=MessageResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid input"},
        404: {"model": ErrorResponse, "description": "Account has no password"},
        422: {"model": ErrorResponse, "description": "Current password incorrect"},
    },
)
def change_password(
    request: PasswordChangeRequest,
    identity: Identity = Depends(check_sensitive_rate_limit),
    service: AccountLifecycleService = Depends(get_account_service),
):
    """
    Change the current user's password.

    Requires the current password. Other sessions are signed out.
    """
    service.change_password(identity, request.current_password, request.new_password)
    return MessageResponse(message="Password updated successfully")


@router.post(
    "/email",
    response_model=EmailChangeResponse,
    response_model_exclude_none=True,
    responses={
        404: {"model": ErrorResponse, "description": "Account has no password"},
        409: {"model": ErrorResponse, "description": "Email already in use"},
        422: {"model": ErrorResponse, "description": "Password incorrect"},
    },
)
def request_email_change(
    request: EmailChangeRequest,
    identity: Identity = Depends(check_sensitive_rate_limit),
    service: AccountLifecycleService = Depends(get_account_service),
):
    """
    Request an email change.

    A verification token is sent to the new address and is valid for 24 hours.
    """
    token = service.request_email_change(identity, request.new_email, request.password)
    return EmailChangeResponse(
        message="Verification email sent to new address",
        token=token if _echo_tokens() else None,
    )


@router.post(
    "/email/confirm",
    response_model=MessageResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid or expired token"},
        409: {"model": ErrorResponse, "description": "Email already in use"},
    },
)
def confirm_email_change(
    request: EmailConfirmRequest,
    identity: Identity = Depends(get_current_identity),
    service: AccountLifecycleService = Depends(get_account_service),
):
    """Finish an email change with the token from the verification email."""
    service.confirm_email_change(identity, request.new_email, request.token)
    return MessageResponse(message="Email updated successfully")
