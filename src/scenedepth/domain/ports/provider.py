from abc import ABC, abstractmethod
from typing import FrozenSet

from scenedepth.core.exceptions import ProviderCapabilityError
from scenedepth.domain.models import DepthResult, SceneAnalysis

ANALYZE_SCENE = "analyze_scene"
ESTIMATE_DEPTH = "estimate_depth"
EDIT_IMAGE = "edit_image"


class AIProvider(ABC):
    """
    Port for a scene-analysis and/or depth-estimation provider.

    Lifecycle is `initialize()` -> operations -> `dispose()`. A provider whose
    initialization fails reports `is_available = False` and must never be
    selected by the AI service. Operations a provider does not list in
    `capabilities` raise `ProviderCapabilityError`.
    """

    capabilities: FrozenSet[str] = frozenset()

    @property
    @abstractmethod
    def provider_id(self) -> str:
        """Stable identifier of the provider."""
        pass

    @property
    @abstractmethod
    def is_available(self) -> bool:
        pass

    @abstractmethod
    async def initialize(self) -> None:
        pass

    async def dispose(self) -> None:
        return None

    def supports(self, operation: str) -> bool:
        return operation in self.capabilities

    async def analyze_scene(self, image_base64: str) -> SceneAnalysis:
        raise ProviderCapabilityError(self.provider_id, "Scene analysis is not supported")

    async def estimate_depth(self, image_url: str) -> DepthResult:
        raise ProviderCapabilityError(self.provider_id, "Depth estimation is not supported")

    async def edit_image(self, image_base64: str, prompt: str) -> str:
        raise ProviderCapabilityError(self.provider_id, "Image editing is not supported")
