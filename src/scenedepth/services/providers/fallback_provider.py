import asyncio

from scenedepth.core.config import Settings
from scenedepth.core.logging import LoggerRegistry
from scenedepth.core.schemas.enums import DepthMethod, SceneType, TechPipeline
from scenedepth.domain.models import DepthResult, SceneAnalysis
from scenedepth.domain.ports.provider import ANALYZE_SCENE, ESTIMATE_DEPTH, AIProvider
from scenedepth.infrastructure.image_resolver import ImageResolver
from scenedepth.processing.images import generate_pseudo_depth_map

FALLBACK_REASONING = "offline mode"
WORKER_CONFIDENCE = 0.6
INLINE_CONFIDENCE = 0.5


def fallback_analysis() -> SceneAnalysis:
    return SceneAnalysis(
        scene_type=SceneType.UNKNOWN,
        estimated_depth_scale=1.5,
        description="Unable to reach the AI service; using default settings",
        recommended_fov=55,
        recommended_pipeline=TechPipeline.DEPTH_MESH,
        reasoning=FALLBACK_REASONING,
        suggested_model="default",
    )


class FallbackProvider(AIProvider):
    """
    Always-available provider that needs neither network nor model.

    Analysis is a canned default. Depth comes from the pseudo-depth
    algorithm, run in a worker thread and retried inline if the worker
    path fails. Only a failure of the inline path (for example an image
    that cannot be decoded) propagates.
    """

    capabilities = frozenset({ANALYZE_SCENE, ESTIMATE_DEPTH})

    def __init__(self, settings: Settings, resolver: ImageResolver):
        self.settings = settings
        self.resolver = resolver
        self.logger = LoggerRegistry.get_provider_logger(self.provider_id)

    @property
    def provider_id(self) -> str:
        return "fallback"

    @property
    def is_available(self) -> bool:
        return True

    async def initialize(self) -> None:
        self.logger.info("fallback.initialized")

    async def dispose(self) -> None:
        self.logger.info("fallback.disposed")

    async def analyze_scene(self, image_base64: str) -> SceneAnalysis:
        self.logger.info("fallback.analyze")
        return fallback_analysis()

    async def estimate_depth(self, image_url: str) -> DepthResult:
        self.logger.info("fallback.depth.start", method=DepthMethod.WORKER.value)
        data = await self.resolver.resolve(image_url)

        try:
            depth_url = await asyncio.to_thread(self._generate, data)
            return DepthResult(
                depth_url=depth_url,
                method=DepthMethod.WORKER,
                confidence=WORKER_CONFIDENCE,
                provider_id=self.provider_id,
            )
        except Exception as e:
            self.logger.error("fallback.depth.worker_failed", error=str(e))

        depth_url = self._generate(data)
        return DepthResult(
            depth_url=depth_url,
            method=DepthMethod.CANVAS_FALLBACK,
            confidence=INLINE_CONFIDENCE,
            provider_id=self.provider_id,
        )

    def _generate(self, data: bytes) -> str:
        return generate_pseudo_depth_map(data, self.settings.DEPTH_MAX_SIZE, self.settings.DEPTH_SOFT_BLUR)
