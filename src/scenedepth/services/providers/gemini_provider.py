import json
import re
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError

from scenedepth.core.config import Settings
from scenedepth.core.exceptions import ProviderError
from scenedepth.core.logging import LoggerRegistry
from scenedepth.domain.models import SceneAnalysis
from scenedepth.domain.ports.provider import ANALYZE_SCENE, AIProvider

ANALYSIS_PROMPT = """Analyze this image and provide a JSON response with the following structure:
{
  "sceneType": "INDOOR" | "OUTDOOR" | "OBJECT" | "UNKNOWN",
  "description": "Brief description of the scene",
  "reasoning": "Why you chose this scene type",
  "estimatedDepthScale": number between 0.5 and 5,
  "recommendedFov": number between 30 and 90,
  "recommendedPipeline": "DEPTH_MESH" | "GAUSSIAN_SPLAT" | "GENERATIVE_MESH",
  "suggestedModel": "default" | "portrait" | "landscape"
}

Consider:
- Scene depth and complexity
- Whether it's a close-up object or wide scene
- Lighting conditions
- Best projection mode for 3D effect"""

_FENCE_RE = re.compile(r"```json\s*|\s*```")


class GeminiProvider(AIProvider):
    """Cloud scene analysis through the Gemini `generateContent` REST endpoint."""

    capabilities = frozenset({ANALYZE_SCENE})

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None):
        self.settings = settings
        self._client = client
        self._owns_client = client is None
        self._available = False
        self.logger = LoggerRegistry.get_provider_logger(self.provider_id)

    @property
    def provider_id(self) -> str:
        return "gemini"

    @property
    def is_available(self) -> bool:
        return self._available

    @property
    def endpoint(self) -> str:
        base = self.settings.GEMINI_BASE_URL.rstrip("/")
        return f"{base}/{self.settings.GEMINI_API_VERSION}/models/{self.settings.GEMINI_MODEL}:generateContent"

    async def initialize(self) -> None:
        if self.settings.USE_LOCAL_AI:
            self.logger.info("gemini.disabled", reason="use_local_ai")
            self._available = False
            return

        if self.settings.is_production and not self.settings.GEMINI_ENABLE_IN_PROD:
            self.logger.warning("gemini.disabled", reason="production")
            self._available = False
            return

        if not self.settings.GEMINI_API_KEY:
            self.logger.warning("gemini.disabled", reason="missing_api_key")
            self._available = False
            return

        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.settings.GEMINI_TIMEOUT)
            self._owns_client = True
        self._available = True
        self.logger.info("gemini.initialized", model=self.settings.GEMINI_MODEL)

    async def dispose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None
        self._available = False
        self.logger.info("gemini.disposed")

    async def analyze_scene(self, image_base64: str) -> SceneAnalysis:
        if self._client is None or not self._available:
            raise ProviderError(self.provider_id, "Gemini client not initialized")

        # Accept data URLs as well as bare base64.
        data = image_base64.split(",", 1)[1] if "," in image_base64 else image_base64
        body = {
            "contents": [
                {
                    "parts": [
                        {"text": ANALYSIS_PROMPT},
                        {"inline_data": {"mime_type": "image/jpeg", "data": data}},
                    ]
                }
            ]
        }

        try:
            response = await self._client.post(
                self.endpoint,
                params={"key": self.settings.GEMINI_API_KEY},
                json=body,
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            self.logger.error("gemini.analyze.request_failed", error=str(e))
            raise ProviderError(self.provider_id, f"Gemini request failed: {e}") from e

        text = self._extract_text(response.json())
        analysis = self._parse_analysis(text)
        self.logger.info("gemini.analyze.finished", scene_type=analysis.scene_type.value)
        return analysis

    def _extract_text(self, payload: Dict[str, Any]) -> str:
        try:
            text = payload["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError(self.provider_id, "Gemini returned no response text") from e
        if not text:
            raise ProviderError(self.provider_id, "Gemini returned no response text")
        return text

    def _parse_analysis(self, text: str) -> SceneAnalysis:
        cleaned = _FENCE_RE.sub("", text).strip()
        try:
            return SceneAnalysis.model_validate(json.loads(cleaned))
        except (json.JSONDecodeError, ValidationError) as e:
            self.logger.error("gemini.analyze.parse_failed", error=str(e))
            raise ProviderError(self.provider_id, f"Unparseable analysis: {e}") from e
