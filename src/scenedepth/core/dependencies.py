from functools import lru_cache

from fastapi import Depends

from scenedepth.core.container import ServiceContainer
from scenedepth.services.ai_service import AIService
from scenedepth.services.session_service import SessionService


@lru_cache()
def get_container() -> ServiceContainer:
    """Get the application's service container."""
    return ServiceContainer()


def get_ai_service(container: ServiceContainer = Depends(get_container)) -> AIService:
    return container.ai_service


def get_session_service(container: ServiceContainer = Depends(get_container)) -> SessionService:
    return container.session
