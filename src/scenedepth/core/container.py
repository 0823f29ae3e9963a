from typing import List, Optional

from scenedepth.core.config import Settings, get_settings
from scenedepth.core.logging import LoggerRegistry, configure_logging
from scenedepth.domain.models import CacheConfig
from scenedepth.domain.ports.provider import AIProvider
from scenedepth.infrastructure.image_resolver import ImageResolver
from scenedepth.infrastructure.storage.blob_store import BlobStore
from scenedepth.processing.stages.analyze import AnalyzeStage
from scenedepth.processing.stages.depth import DepthStage
from scenedepth.processing.stages.prepare import PrepareStage
from scenedepth.processing.stages.read import ReadStage
from scenedepth.services.ai_service import AIService
from scenedepth.services.providers.fallback_provider import FallbackProvider
from scenedepth.services.providers.gemini_provider import GeminiProvider
from scenedepth.services.providers.local_depth_provider import LocalDepthProvider
from scenedepth.services.session_service import SessionService
from scenedepth.services.upload_pipeline import UploadPipeline


class ServiceContainer:
    """
    Owns every long-lived service of the application.

    Nothing here is a module-level singleton; tests build a fresh container
    (optionally with their own providers) per case.
    """

    def __init__(self, settings: Optional[Settings] = None, providers: Optional[List[AIProvider]] = None):
        self.settings = settings or get_settings()
        configure_logging(self.settings.LOG_LEVEL)
        self.logger = LoggerRegistry.get_service_logger("container")

        self.blob_store = BlobStore()
        self.resolver = ImageResolver(self.blob_store, fetch_timeout=self.settings.FETCH_TIMEOUT)

        self.providers = providers if providers is not None else self._default_providers()
        self.ai_service = AIService(
            self.providers,
            cache_config=CacheConfig(
                enabled=self.settings.CACHE_ENABLED,
                max_size=self.settings.CACHE_MAX_SIZE,
                ttl_ms=self.settings.CACHE_TTL_MS,
            ),
        )

        self.pipeline = UploadPipeline(
            [
                ReadStage(self.blob_store, self.resolver, analysis_max_size=self.settings.ANALYSIS_MAX_SIZE),
                AnalyzeStage(self.ai_service),
                DepthStage(self.ai_service),
                PrepareStage(self.resolver),
            ],
            self.blob_store,
        )
        self.session = SessionService(self.pipeline, self.ai_service)

    def _default_providers(self) -> List[AIProvider]:
        return [
            GeminiProvider(self.settings),
            LocalDepthProvider(self.settings, self.resolver),
            FallbackProvider(self.settings, self.resolver),
        ]

    async def startup(self) -> None:
        self.logger.info("container.startup", environment=self.settings.ENVIRONMENT)
        await self.ai_service.initialize()

    async def shutdown(self) -> None:
        self.session.dispose()
        self.pipeline.dispose()
        await self.ai_service.dispose()
        self.blob_store.clear()
        self.logger.info("container.shutdown")
