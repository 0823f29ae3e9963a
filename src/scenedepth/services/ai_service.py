import asyncio
import time
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

from scenedepth.core.events import EventEmitter, Unsubscribe
from scenedepth.core.exceptions import ProviderNotFoundError, ProviderUnavailableError
from scenedepth.core.logging import LoggerRegistry
from scenedepth.core.schemas.enums import ProviderType
from scenedepth.domain.models import CacheConfig, CacheConfigUpdate, CacheStats, DepthResult, SceneAnalysis
from scenedepth.domain.ports.provider import ANALYZE_SCENE, ESTIMATE_DEPTH, AIProvider
from scenedepth.services.ai_events import (
    AIEvent,
    AIRequestCompletedEvent,
    AIRequestErrorEvent,
    AIRequestStartedEvent,
    CacheHitEvent,
    FallbackActivatedEvent,
    ProviderChangedEvent,
)
from scenedepth.services.cache import TTLCache, content_hash

FALLBACK_PROVIDER_ID = "fallback"
SCENE_PRIORITY = ("gemini", FALLBACK_PROVIDER_ID)
DEPTH_PRIORITY = ("local-depth", FALLBACK_PROVIDER_ID)

PROGRESS_START = 0
PROGRESS_MIDPOINT = 50
PROGRESS_COMPLETE = 100

ProgressCallback = Callable[[float, str], None]


class AIService:
    """
    Multi-provider scene analysis and depth estimation.

    Each operation is served from the TTL cache when possible, otherwise
    concurrent identical requests share one in-flight call to the active
    provider. A failing provider is demoted to the fallback provider and the
    request is retried once against it.
    """

    def __init__(
        self,
        providers: Sequence[AIProvider],
        cache_config: Optional[CacheConfig] = None,
        scene_priority: Sequence[str] = SCENE_PRIORITY,
        depth_priority: Sequence[str] = DEPTH_PRIORITY,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.providers: Dict[str, AIProvider] = {p.provider_id: p for p in providers}
        if FALLBACK_PROVIDER_ID not in self.providers:
            raise ValueError("AIService requires a provider with id 'fallback'")
        self.fallback = self.providers[FALLBACK_PROVIDER_ID]

        self.scene_priority = list(scene_priority)
        self.depth_priority = list(depth_priority)
        self.cache_config = cache_config or CacheConfig()

        self._analysis_cache: TTLCache[SceneAnalysis] = TTLCache(
            self.cache_config.max_size, self.cache_config.ttl_ms, clock
        )
        self._depth_cache: TTLCache[DepthResult] = TTLCache(
            self.cache_config.max_size, self.cache_config.ttl_ms, clock
        )
        self._pending_analysis: Dict[str, asyncio.Task] = {}
        self._pending_depth: Dict[str, asyncio.Task] = {}

        self._active: Dict[ProviderType, AIProvider] = {
            ProviderType.SCENE: self.fallback,
            ProviderType.DEPTH: self.fallback,
        }
        self._failed_init: set = set()
        self._initialized = False
        self._init_task: Optional[asyncio.Task] = None
        self._paused = False

        self._progress_callbacks: List[ProgressCallback] = []
        self.events: EventEmitter[AIEvent] = EventEmitter("ai")
        self.logger = LoggerRegistry.get_service_logger("ai")

    # Lifecycle

    async def initialize(self) -> None:
        """Initializes every provider concurrently and selects the active ones. Idempotent."""
        if self._initialized:
            return
        if self._init_task is None:
            self._init_task = asyncio.ensure_future(self._initialize_providers())
        await asyncio.shield(self._init_task)

    async def _initialize_providers(self) -> None:
        providers = list(self.providers.values())
        results = await asyncio.gather(*(p.initialize() for p in providers), return_exceptions=True)

        for provider, result in zip(providers, results):
            if isinstance(result, BaseException):
                self._failed_init.add(provider.provider_id)
                self.logger.warning("ai.provider.init_failed", provider=provider.provider_id, error=str(result))

        self._active[ProviderType.SCENE] = self._select(self.scene_priority, ANALYZE_SCENE)
        self._active[ProviderType.DEPTH] = self._select(self.depth_priority, ESTIMATE_DEPTH)
        self._initialized = True

        self.logger.info(
            "ai.initialized",
            scene=self._active[ProviderType.SCENE].provider_id,
            depth=self._active[ProviderType.DEPTH].provider_id,
        )

    def _select(self, priority: Sequence[str], operation: str) -> AIProvider:
        for provider_id in priority:
            provider = self.providers.get(provider_id)
            if provider is not None and provider.supports(operation) and self.is_provider_available(provider_id):
                return provider
        return self.fallback

    async def dispose(self) -> None:
        results = await asyncio.gather(*(p.dispose() for p in self.providers.values()), return_exceptions=True)
        for provider, result in zip(self.providers.values(), results):
            if isinstance(result, BaseException):
                self.logger.warning("ai.provider.dispose_failed", provider=provider.provider_id, error=str(result))

        self._active[ProviderType.SCENE] = self.fallback
        self._active[ProviderType.DEPTH] = self.fallback
        self._initialized = False
        self._init_task = None
        self._failed_init.clear()
        self.clear_cache()
        self._progress_callbacks.clear()
        self.events.clear()
        self.logger.info("ai.disposed")

    def is_available(self) -> bool:
        return self._initialized

    # Operations

    async def analyze_scene(self, image_base64: str) -> SceneAnalysis:
        key = content_hash(image_base64)
        return await self._single_flight(
            key,
            self._analysis_cache,
            self._pending_analysis,
            "analysis",
            "analyzing",
            lambda: self._invoke(
                ProviderType.SCENE,
                "analyze_scene",
                "analyzing",
                key,
                self._analysis_cache,
                lambda provider: provider.analyze_scene(image_base64),
            ),
        )

    async def estimate_depth(self, image_url: str) -> DepthResult:
        key = content_hash(image_url)
        return await self._single_flight(
            key,
            self._depth_cache,
            self._pending_depth,
            "depth",
            "depth_estimation",
            lambda: self._invoke(
                ProviderType.DEPTH,
                "estimate_depth",
                "depth_estimation",
                key,
                self._depth_cache,
                lambda provider: provider.estimate_depth(image_url),
            ),
        )

    async def edit_image(self, image_base64: str, prompt: str) -> str:
        self.logger.warning("ai.edit_image.not_implemented", prompt_length=len(prompt))
        return image_base64

    async def _single_flight(
        self, key, cache: TTLCache, pending: Dict[str, asyncio.Task], cache_type, progress_tag, start
    ):
        cached = self._get_cached(cache, key, cache_type)
        if cached is not None:
            self._emit_progress(PROGRESS_START, progress_tag)
            self._emit_progress(PROGRESS_COMPLETE, progress_tag)
            return cached

        task = pending.get(key)
        if task is None:
            # Registered before the first await so a concurrent caller finds it.
            task = asyncio.ensure_future(start())
            pending[key] = task
            task.add_done_callback(lambda t: pending.pop(key) if pending.get(key) is t else None)
        else:
            # The owner ticks inside _invoke; joiners tick around the shared task.
            self.logger.info("ai.request.deduplicated", key=key, type=cache_type)
            self._emit_progress(PROGRESS_START, progress_tag)
            result = await asyncio.shield(task)
            self._emit_progress(PROGRESS_COMPLETE, progress_tag)
            return result

        return await asyncio.shield(task)

    async def _invoke(
        self,
        provider_type: ProviderType,
        operation: str,
        progress_tag: str,
        key: str,
        cache: TTLCache,
        call: Callable[[AIProvider], Awaitable],
    ):
        self._emit_progress(PROGRESS_START, progress_tag)
        provider = self._active[provider_type]
        start = time.perf_counter()
        self.events.emit(AIRequestStartedEvent(provider=provider.provider_id, operation=operation))

        try:
            self._emit_progress(PROGRESS_MIDPOINT, progress_tag)
            result = await call(provider)
        except Exception as e:
            self.logger.warning(f"ai.{operation}.provider_failed", provider=provider.provider_id, error=str(e))
            self.events.emit(AIRequestErrorEvent(provider=provider.provider_id, operation=operation, error=str(e)))
            self._demote(provider_type, provider)
            provider = self.fallback
            result = await call(provider)

        self._set_cache(cache, key, result)
        self._emit_progress(PROGRESS_COMPLETE, progress_tag)
        duration_ms = round((time.perf_counter() - start) * 1000, 2)
        self.events.emit(
            AIRequestCompletedEvent(provider=provider.provider_id, operation=operation, duration_ms=duration_ms)
        )
        self.logger.info(f"ai.{operation}.completed", provider=provider.provider_id, duration_ms=duration_ms)
        return result

    def _demote(self, provider_type: ProviderType, provider: AIProvider) -> None:
        if provider is self.fallback:
            return
        self._active[provider_type] = self.fallback
        self.events.emit(ProviderChangedEvent(
            type=provider_type.value, from_provider=provider.provider_id, to_provider=FALLBACK_PROVIDER_ID
        ))
        self.events.emit(FallbackActivatedEvent(reason=f"{provider_type.value}-provider-failed"))
        self.logger.warning("ai.fallback.activated", type=provider_type.value, from_provider=provider.provider_id)

    # Cache

    def _get_cached(self, cache: TTLCache, key: str, cache_type: str):
        if not self.cache_config.enabled:
            return None
        value = cache.get(key)
        if value is not None:
            self.events.emit(CacheHitEvent(key=key, type=cache_type))
            self.logger.info(f"ai.{cache_type}.cache_hit", key=key)
        return value

    def _set_cache(self, cache: TTLCache, key: str, value) -> None:
        if not self.cache_config.enabled:
            return
        for evicted in cache.set(key, value):
            self.logger.debug("ai.cache.evicted", key=evicted)

    def configure_caching(self, update: CacheConfigUpdate) -> CacheConfig:
        return self.update_cache_config(update)

    def update_cache_config(self, update: CacheConfigUpdate) -> CacheConfig:
        # Entries already cached are not re-validated against the new limits.
        merged = self.cache_config.model_dump()
        merged.update(update.model_dump(exclude_none=True))
        self.cache_config = CacheConfig(**merged)
        for cache in (self._analysis_cache, self._depth_cache):
            cache.reconfigure(max_size=self.cache_config.max_size, ttl_ms=self.cache_config.ttl_ms)
        self.logger.info("ai.cache.config_updated", config=self.cache_config.model_dump())
        return self.get_cache_config()

    def get_cache_config(self) -> CacheConfig:
        return self.cache_config.model_copy()

    def clear_cache(self) -> None:
        self._analysis_cache.clear()
        self._depth_cache.clear()
        self.logger.info("ai.cache.cleared")

    def get_cache_stats(self) -> CacheStats:
        return CacheStats(
            analysis_cache_size=len(self._analysis_cache),
            depth_cache_size=len(self._depth_cache),
            total_size=self._analysis_cache.serialized_size() + self._depth_cache.serialized_size(),
        )

    # Providers

    async def switch_provider(self, provider_type: ProviderType, provider_id: str) -> None:
        provider = self.providers.get(provider_id)
        if provider is None:
            raise ProviderNotFoundError(provider_id)
        if not self.is_provider_available(provider_id):
            raise ProviderUnavailableError(provider_id)

        provider_type = ProviderType(provider_type)
        previous = self._active[provider_type].provider_id
        self._active[provider_type] = provider
        self.events.emit(ProviderChangedEvent(type=provider_type.value, from_provider=previous, to_provider=provider_id))
        self.logger.info("ai.provider.switched", type=provider_type.value, from_provider=previous, to_provider=provider_id)

    def is_provider_available(self, provider_id: str) -> bool:
        provider = self.providers.get(provider_id)
        if provider is None or provider_id in self._failed_init:
            return False
        return provider.is_available

    def get_active_provider_id(self, provider_type: ProviderType) -> str:
        return self._active[ProviderType(provider_type)].provider_id

    def get_active_provider(self) -> Dict[str, str]:
        return {t.value: p.provider_id for t, p in self._active.items()}

    # Progress and pause

    def on_progress(self, callback: ProgressCallback) -> Unsubscribe:
        self._progress_callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._progress_callbacks:
                self._progress_callbacks.remove(callback)

        return unsubscribe

    def subscribe(self, handler: Callable[[AIEvent], None]) -> Unsubscribe:
        return self.events.subscribe(handler)

    def _emit_progress(self, progress: float, stage: str) -> None:
        for callback in list(self._progress_callbacks):
            try:
                callback(progress, stage)
            except Exception as e:
                self.logger.error("ai.progress.callback_failed", error=str(e), exc_info=True)

    @property
    def paused(self) -> bool:
        return self._paused

    def pause(self) -> None:
        if self._paused:
            return
        self._paused = True
        self.events.emit(ProviderChangedEvent(from_provider="active", to_provider="paused"))
        self.logger.info("ai.paused")

    def resume(self) -> None:
        if not self._paused:
            return
        self._paused = False
        self.events.emit(ProviderChangedEvent(from_provider="paused", to_provider="active"))
        self.logger.info("ai.resumed")
