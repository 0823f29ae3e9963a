import asyncio
from typing import Any, Callable, Optional

import numpy as np
from PIL import Image

from scenedepth.core.config import Settings
from scenedepth.core.exceptions import ModelLoadError, ProviderError
from scenedepth.core.logging import LoggerRegistry
from scenedepth.core.schemas.enums import DepthMethod
from scenedepth.domain.models import DepthResult
from scenedepth.domain.ports.provider import ESTIMATE_DEPTH, AIProvider
from scenedepth.infrastructure.image_resolver import ImageResolver
from scenedepth.processing.images import constrain_dimensions, open_image, pixels_to_data_url
from scenedepth.services.loader import ModelLoader, RetryPolicy

# A depth model maps a PIL image to a 2D array of relative depth (any scale).
DepthModel = Callable[[Image.Image], Any]


def load_transformers_depth_model(model_id: str) -> DepthModel:
    """Builds a Hugging Face `depth-estimation` pipeline. Requires the `local` extra."""
    from transformers import pipeline

    estimator = pipeline("depth-estimation", model=model_id)

    def predict(image: Image.Image) -> Any:
        return estimator(image)["predicted_depth"]

    return predict


def depth_to_pixels(depth: Any, width: int, height: int) -> np.ndarray:
    """Normalizes a raw depth prediction to an HxWx3 uint8 buffer at the given size."""
    if hasattr(depth, "detach"):
        depth = depth.detach().cpu().numpy()
    values = np.squeeze(np.asarray(depth, dtype=np.float32))
    if values.ndim != 2:
        raise ValueError(f"Expected a 2D depth prediction, got shape {values.shape}")

    low, high = float(values.min()), float(values.max())
    span = high - low if high > low else 1.0
    normalized = ((values - low) / span * 255.0).astype(np.uint8)

    scaled = Image.fromarray(normalized).resize((width, height), Image.Resampling.BILINEAR)
    gray = np.asarray(scaled, dtype=np.uint8)
    return np.repeat(gray[:, :, np.newaxis], 3, axis=2)


class LocalDepthProvider(AIProvider):
    """On-device depth estimation with a lazily loaded model."""

    capabilities = frozenset({ESTIMATE_DEPTH})

    def __init__(
        self,
        settings: Settings,
        resolver: ImageResolver,
        loader: Optional[ModelLoader] = None,
    ):
        self.settings = settings
        self.resolver = resolver
        self.loader = loader or ModelLoader(
            settings.LOCAL_DEPTH_MODEL,
            lambda: load_transformers_depth_model(settings.LOCAL_DEPTH_MODEL),
            RetryPolicy(
                max_attempts=settings.MODEL_LOAD_ATTEMPTS,
                base_delay=settings.MODEL_LOAD_BASE_DELAY,
                max_delay=settings.MODEL_LOAD_MAX_DELAY,
                timeout=settings.MODEL_LOAD_TIMEOUT,
            ),
        )
        self._available = False
        self.logger = LoggerRegistry.get_provider_logger(self.provider_id)

    @property
    def provider_id(self) -> str:
        return "local-depth"

    @property
    def is_available(self) -> bool:
        return self._available

    async def initialize(self) -> None:
        if not self.settings.LOCAL_DEPTH_ENABLED:
            self.logger.info("local_depth.disabled")
            self._available = False
            return

        try:
            await self.loader.load()
        except ModelLoadError as e:
            self.logger.warning("local_depth.unavailable", error=str(e))
            self._available = False
            return

        self._available = True
        self.logger.info("local_depth.initialized", model=self.loader.name)

    async def dispose(self) -> None:
        self.loader.unload()
        self._available = False
        self.logger.info("local_depth.disposed")

    async def estimate_depth(self, image_url: str) -> DepthResult:
        model = self.loader.model
        if model is None:
            raise ProviderError(self.provider_id, "Depth model not initialized")

        data = await self.resolver.resolve(image_url)
        depth_url = await asyncio.to_thread(self._predict, model, data)
        return DepthResult(depth_url=depth_url, method=DepthMethod.MODEL, provider_id=self.provider_id)

    def _predict(self, model: DepthModel, data: bytes) -> str:
        image = open_image(data)
        width, height = constrain_dimensions(image.width, image.height, self.settings.DEPTH_MAX_SIZE)
        if (width, height) != image.size:
            image = image.resize((width, height), Image.Resampling.LANCZOS)
        prediction = model(image)
        return pixels_to_data_url(depth_to_pixels(prediction, width, height))
