from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

Operation = Literal["analyze_scene", "estimate_depth"]


class AIRequestStartedEvent(BaseModel):
    kind: Literal["request-started"] = "request-started"
    provider: str
    operation: Operation


class AIRequestCompletedEvent(BaseModel):
    kind: Literal["request-completed"] = "request-completed"
    provider: str
    operation: Operation
    duration_ms: float


class AIRequestErrorEvent(BaseModel):
    kind: Literal["request-error"] = "request-error"
    provider: str
    operation: Operation
    error: str


class ProviderChangedEvent(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    kind: Literal["provider-changed"] = "provider-changed"
    type: Optional[Literal["scene", "depth"]] = None
    from_provider: str = Field(..., alias="from")
    to_provider: str = Field(..., alias="to")


class FallbackActivatedEvent(BaseModel):
    kind: Literal["fallback-activated"] = "fallback-activated"
    reason: str


class CacheHitEvent(BaseModel):
    kind: Literal["cache-hit"] = "cache-hit"
    key: str
    type: Literal["analysis", "depth"]


AIEvent = Union[
    AIRequestStartedEvent,
    AIRequestCompletedEvent,
    AIRequestErrorEvent,
    ProviderChangedEvent,
    FallbackActivatedEvent,
    CacheHitEvent,
]
