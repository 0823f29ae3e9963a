from scenedepth.core.schemas.enums import SceneType, TechPipeline
from scenedepth.domain.models import SceneAnalysis
from scenedepth.processing.decorators import instrument_stage
from scenedepth.processing.payloads import StageInput
from scenedepth.processing.stages.base import BaseStage
from scenedepth.services.ai_service import AIService

UNAVAILABLE_MESSAGE = "Analysis service is temporarily unavailable; using default settings"

# Substring of a provider error -> message shown to the user.
FRIENDLY_ERRORS = (
    (("does not support image input",), "The configured AI model does not accept images. Check the API configuration or choose a model with image support."),
    (("400", "Bad Request"), "This image format is not supported. Try a JPG or PNG image."),
    (("401", "API key"), "AI service authentication failed. Check the API key configuration."),
    (("429", "rate limit"), "The AI service rate limit was reached. Please try again later."),
    (("503", "unavailable"), "The AI service is temporarily unavailable. Local processing will be used."),
)


def default_analysis(description: str = UNAVAILABLE_MESSAGE, reasoning: str = UNAVAILABLE_MESSAGE) -> SceneAnalysis:
    return SceneAnalysis(
        scene_type=SceneType.UNKNOWN,
        description=description,
        reasoning=reasoning,
        estimated_depth_scale=1.5,
        recommended_fov=55,
        recommended_pipeline=TechPipeline.DEPTH_MESH,
        suggested_model="default",
    )


def friendly_error_message(error: str) -> str:
    for needles, message in FRIENDLY_ERRORS:
        if any(needle in error for needle in needles):
            return message
    return UNAVAILABLE_MESSAGE


class AnalyzeStage(BaseStage):
    """Scene analysis. Never fails the run: errors map to a default analysis."""

    def __init__(self, ai_service: AIService, **kwargs):
        super().__init__(**kwargs)
        self.ai_service = ai_service

    @property
    def name(self) -> str:
        return "analyze"

    @property
    def order(self) -> int:
        return 1

    def can_skip(self, record: StageInput) -> bool:
        return record.analysis is not None

    @instrument_stage
    async def execute(self, record: StageInput) -> StageInput:
        self.check_cancelled(record)

        if not record.image_base64:
            self.logger.warning("analyze.no_image_data")
            return record.extend(analysis=default_analysis())

        try:
            if not self.ai_service.is_available():
                await self.ai_service.initialize()
            analysis = await self.ai_service.analyze_scene(record.image_base64)
        except Exception as e:
            error = str(e)
            self.logger.warning("analyze.failed_using_defaults", error=error)
            return record.extend(analysis=default_analysis(friendly_error_message(error), error))

        self.check_cancelled(record)
        self.logger.info("analyze.completed", scene_type=analysis.scene_type.value)
        return record.extend(analysis=analysis)
