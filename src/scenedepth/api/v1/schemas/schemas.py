from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from scenedepth.core.schemas.enums import ProviderType
from scenedepth.domain.models import CacheConfig, CacheStats
from scenedepth.processing.events import RecoveryOption


class UrlUploadRequest(BaseModel):
    """Request to process an image available at a URL (http(s) or data URL)."""
    url: str = Field(..., min_length=1)


class ProviderSwitchRequest(BaseModel):
    type: ProviderType
    provider_id: str


class ProviderInfo(BaseModel):
    provider_id: str
    available: bool
    capabilities: List[str]


class ProvidersResponse(BaseModel):
    active: Dict[str, str] = Field(..., description="Active provider id per provider type.")
    providers: List[ProviderInfo]


class CacheResponse(BaseModel):
    config: CacheConfig
    stats: CacheStats


class ServiceStateResponse(BaseModel):
    paused: bool
    initialized: bool


class StageErrorResponse(BaseModel):
    stage: Optional[str] = None
    message: str
    recovery: List[RecoveryOption] = []
