from fastapi import APIRouter, Depends

from scenedepth.api.v1.schemas.schemas import CacheResponse
from scenedepth.core.dependencies import get_ai_service
from scenedepth.domain.models import CacheConfigUpdate
from scenedepth.services.ai_service import AIService

router = APIRouter()


def _cache_response(ai_service: AIService) -> CacheResponse:
    return CacheResponse(config=ai_service.get_cache_config(), stats=ai_service.get_cache_stats())


@router.get("", response_model=CacheResponse)
def get_cache(ai_service: AIService = Depends(get_ai_service)):
    return _cache_response(ai_service)


@router.patch("", response_model=CacheResponse)
def update_cache(update: CacheConfigUpdate, ai_service: AIService = Depends(get_ai_service)):
    """Partially updates the cache configuration. Cached entries are kept."""
    ai_service.update_cache_config(update)
    return _cache_response(ai_service)


@router.delete("", response_model=CacheResponse)
def clear_cache(ai_service: AIService = Depends(get_ai_service)):
    ai_service.clear_cache()
    return _cache_response(ai_service)
