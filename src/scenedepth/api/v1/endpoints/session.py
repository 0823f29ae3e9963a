from fastapi import APIRouter, Depends

from scenedepth.core.dependencies import get_session_service
from scenedepth.services.session_service import SessionService, SessionSnapshot

router = APIRouter()


@router.get("", response_model=SessionSnapshot)
def get_session(session: SessionService = Depends(get_session_service)):
    """Current processing status, progress and the last result or error."""
    return session.snapshot()


@router.post("/cancel", response_model=SessionSnapshot)
def cancel_session(session: SessionService = Depends(get_session_service)):
    session.cancel()
    return session.snapshot()
