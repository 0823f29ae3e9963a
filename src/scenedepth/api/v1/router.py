from fastapi import APIRouter

from scenedepth.api.v1.endpoints import ai, cache, health, providers, session, uploads

api_router = APIRouter()
api_router.include_router(health.router, prefix="/health", tags=["health"])
api_router.include_router(uploads.router, prefix="/uploads", tags=["uploads"])
api_router.include_router(session.router, prefix="/session", tags=["session"])
api_router.include_router(providers.router, prefix="/providers", tags=["providers"])
api_router.include_router(cache.router, prefix="/cache", tags=["cache"])
api_router.include_router(ai.router, prefix="/ai", tags=["ai"])
