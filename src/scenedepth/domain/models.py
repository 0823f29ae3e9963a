from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from scenedepth.core.schemas.enums import AssetType, DepthMethod, SceneType, TechPipeline

DEFAULT_DEPTH_SCALE = 1.5
DEFAULT_DEPTH_VARIANCE = 0.5
DEFAULT_FOV = 55.0


class SceneAnalysis(BaseModel):
    """Scene-analysis result produced by a provider."""

    model_config = ConfigDict(populate_by_name=True)

    scene_type: SceneType = Field(SceneType.UNKNOWN, alias="sceneType")
    description: str = ""
    reasoning: str = ""
    estimated_depth_scale: Optional[float] = Field(DEFAULT_DEPTH_SCALE, alias="estimatedDepthScale")
    recommended_fov: float = Field(DEFAULT_FOV, alias="recommendedFov")
    recommended_pipeline: TechPipeline = Field(TechPipeline.DEPTH_MESH, alias="recommendedPipeline")
    suggested_model: str = Field("default", alias="suggestedModel")
    depth_variance: Optional[float] = Field(None, alias="depthVariance")
    keywords: Optional[List[str]] = None


class DepthResult(BaseModel):
    depth_url: str
    method: DepthMethod
    confidence: Optional[float] = None
    provider_id: Optional[str] = None


class CacheConfig(BaseModel):
    enabled: bool = True
    max_size: int = Field(50, gt=0)
    ttl_ms: int = Field(30 * 60 * 1000, ge=0)


class CacheConfigUpdate(BaseModel):
    """Partial cache configuration; unset fields keep their current value."""

    enabled: Optional[bool] = None
    max_size: Optional[int] = Field(None, gt=0)
    ttl_ms: Optional[int] = Field(None, ge=0)


class CacheStats(BaseModel):
    analysis_cache_size: int
    depth_cache_size: int
    total_size: int


class Asset(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    type: AssetType
    source_url: str
    width: int
    height: int
    aspect_ratio: float
    created_at: int
    duration: Optional[float] = None
    thumbnail_url: Optional[str] = None


class ResultAnalysis(SceneAnalysis):
    """Analysis as delivered to the renderer, with every optional field resolved."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    estimated_depth_scale: float = DEFAULT_DEPTH_SCALE
    depth_variance: float = DEFAULT_DEPTH_VARIANCE
    keywords: List[str] = Field(default_factory=list)


class ProcessedResult(BaseModel):
    """The terminal artifact of a successful pipeline run."""

    model_config = ConfigDict(frozen=True)

    asset: Asset
    analysis: ResultAnalysis
    depth_map_url: str
    image_url: str
    background_url: Optional[str] = None
    processing_time: float = Field(..., description="Wall-clock duration of the run in milliseconds.")
