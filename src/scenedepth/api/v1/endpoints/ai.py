from fastapi import APIRouter, Depends

from scenedepth.api.v1.schemas.schemas import ServiceStateResponse
from scenedepth.core.dependencies import get_ai_service
from scenedepth.services.ai_service import AIService

router = APIRouter()


def _state(ai_service: AIService) -> ServiceStateResponse:
    return ServiceStateResponse(paused=ai_service.paused, initialized=ai_service.is_available())


@router.post("/pause", response_model=ServiceStateResponse)
def pause(ai_service: AIService = Depends(get_ai_service)):
    """Pauses the AI service. In-flight requests finish; new uploads are refused."""
    ai_service.pause()
    return _state(ai_service)


@router.post("/resume", response_model=ServiceStateResponse)
def resume(ai_service: AIService = Depends(get_ai_service)):
    ai_service.resume()
    return _state(ai_service)
