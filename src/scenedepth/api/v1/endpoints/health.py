from fastapi import APIRouter, Depends

from scenedepth.core.dependencies import get_ai_service
from scenedepth.services.ai_service import AIService

router = APIRouter()


@router.get("")
def health_check(ai_service: AIService = Depends(get_ai_service)):
    """
    Checks the health of the application.
    """
    return {"status": "ok", "ai_initialized": ai_service.is_available(), "active_providers": ai_service.get_active_provider()}
