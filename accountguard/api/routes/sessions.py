"""
Session Management Endpoints.
"""
from fastapi import APIRouter, Depends

from ..models import SessionInfo, SessionListResponse, MessageResponse, ErrorResponse
from ..deps import get_current_identity, get_session_registry
from ...auth.identity import Identity
from ...services import SessionRegistry

router = APIRouter(prefix="/sessions", tags=["Sessions"])


@router.get("", response_model=SessionListResponse)
def list_sessions(
    identity: Identity = Depends(get_current_identity),
    registry: SessionRegistry = Depends(get_session_registry),
):
    """List the caller's sessions, most recently active first."""
    sessions = registry.list_sessions(identity)
    return SessionListResponse(sessions=[SessionInfo.model_validate(s) for s in sessions])


@router.delete(
    "/{session_id}",
    response_model=MessageResponse,
    responses={
        403: {"model": ErrorResponse, "description": "Session belongs to another user"},
        404: {"model": ErrorResponse, "description": "Session not found"},
    },
)
def revoke_session(
    session_id: str,
    identity: Identity = Depends(get_current_identity),
    registry: SessionRegistry = Depends(get_session_registry),
):
    """Revoke one of the caller's sessions."""
    registry.revoke(identity, session_id)
    return MessageResponse(message="Session revoked successfully")
