"""
Account Data Endpoints: export and erasure.
"""
import time
import logging

from fastapi import APIRouter, Depends
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from ..models import MessageResponse, ErrorResponse
from ..deps import get_account_service, get_current_identity
from ...auth.identity import Identity
from ...services import AccountLifecycleService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/privacy", tags=["Privacy"])


@router.get(
    "/export",
    responses={
        200: {"description": "Account data as a JSON attachment"},
        404: {"model": ErrorResponse, "description": "User not found"},
    },
)
def export_data(
    identity: Identity = Depends(get_current_identity),
    service: AccountLifecycleService = Depends(get_account_service),
):
    """
    Download everything stored about the caller.

    Password hash, MFA secret, backup codes and session token hashes are
    never included.
    """
    data = service.export_data(identity)
    filename = f"accountguard-export-{int(time.time() * 1000)}.json"
    return JSONResponse(
        content=jsonable_encoder(data),
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.delete("/delete", response_model=MessageResponse)
def delete_account(
    identity: Identity = Depends(get_current_identity),
    service: AccountLifecycleService = Depends(get_account_service),
):
    """
    Permanently delete the caller's account and all data it owns.

    The bearer token stops working immediately.
    """
    service.delete_account(identity)
    return MessageResponse(message="Account deleted successfully")
