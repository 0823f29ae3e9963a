from fastapi import APIRouter, Depends

from scenedepth.api.v1.schemas.schemas import ProviderInfo, ProvidersResponse, ProviderSwitchRequest
from scenedepth.core.dependencies import get_ai_service
from scenedepth.services.ai_service import AIService

router = APIRouter()


def _providers_response(ai_service: AIService) -> ProvidersResponse:
    return ProvidersResponse(
        active=ai_service.get_active_provider(),
        providers=[
            ProviderInfo(
                provider_id=provider_id,
                available=ai_service.is_provider_available(provider_id),
                capabilities=sorted(provider.capabilities),
            )
            for provider_id, provider in ai_service.providers.items()
        ],
    )


@router.get("", response_model=ProvidersResponse)
def list_providers(ai_service: AIService = Depends(get_ai_service)):
    """Lists the registered providers, their availability and the active ones."""
    return _providers_response(ai_service)


@router.post("/switch", response_model=ProvidersResponse)
async def switch_provider(request: ProviderSwitchRequest, ai_service: AIService = Depends(get_ai_service)):
    await ai_service.switch_provider(request.type, request.provider_id)
    return _providers_response(ai_service)
