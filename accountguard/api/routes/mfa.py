"""
MFA Enrollment Endpoints.
"""
import logging

from fastapi import APIRouter, Depends, status

from ..models import (
    MFASetupResponse,
    MFAVerifyRequest,
    MFAVerifyResponse,
    MFADisableRequest,
    ErrorResponse,
)
from ..deps import get_current_identity, get_mfa_service, check_sensitive_rate_limit
from ...auth.identity import Identity
from ...services import MfaEnrollmentService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/mfa", tags=["MFA"])


@router.get("/setup", response_model=MFASetupResponse)
def setup_mfa(
    identity: Identity = Depends(get_current_identity),
    service: MfaEnrollmentService = Depends(get_mfa_service),
):
    """
    Start MFA enrollment.

    Returns a QR code and secret for authenticator app setup. MFA is not
    active until confirmed with POST /mfa/verify, which must happen within
    10 minutes. Calling this again replaces the pending secret.
    """
    payload = service.begin_enrollment(identity)
    return MFASetupResponse(
        secret=payload.secret,
        qr_code_url=payload.qr_code_url,
        provisioning_uri=payload.provisioning_uri,
    )


@router.post(
    "/verify",
    response_model=MFAVerifyResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid input"},
        422: {"model": ErrorResponse, "description": "Invalid MFA code"},
    },
)
def verify_mfa(
    verification: MFAVerifyRequest,
    identity: Identity = Depends(check_sensitive_rate_limit),
    service: MfaEnrollmentService = Depends(get_mfa_service),
):
    """
    Confirm enrollment with a code from the authenticator app.

    Returns backup codes for account recovery. They are shown only once.
    """
    backup_codes = service.confirm_enrollment(identity, verification.code, verification.secret)
    return MFAVerifyResponse(backup_codes=backup_codes)


@router.delete(
    "",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={
        400: {"model": ErrorResponse, "description": "MFA is not enabled"},
        422: {"model": ErrorResponse, "description": "Invalid MFA code"},
    },
)
def disable_mfa(
    request: MFADisableRequest,
    identity: Identity = Depends(check_sensitive_rate_limit),
    service: MfaEnrollmentService = Depends(get_mfa_service),
):
    """Turn MFA off. Requires a current TOTP code."""
    service.disable(identity, request.code)
    logger.info(f"MFA disabled for user {identity.user_id}")
    return None
