from scenedepth.core.exceptions import InputError
from scenedepth.processing.decorators import instrument_stage
from scenedepth.processing.payloads import StageInput
from scenedepth.processing.stages.base import BaseStage
from scenedepth.services.ai_service import AIService


class DepthStage(BaseStage):
    """Depth estimation through the AI service."""

    def __init__(self, ai_service: AIService, **kwargs):
        super().__init__(**kwargs)
        self.ai_service = ai_service

    @property
    def name(self) -> str:
        return "depth"

    @property
    def order(self) -> int:
        return 2

    def can_skip(self, record: StageInput) -> bool:
        return record.depth_url is not None

    @instrument_stage
    async def execute(self, record: StageInput) -> StageInput:
        self.check_cancelled(record)

        if not record.image_url:
            raise InputError("No image URL available for depth estimation")

        if not self.ai_service.is_available():
            await self.ai_service.initialize()
        self.check_cancelled(record)

        result = await self.ai_service.estimate_depth(record.image_url)
        self.check_cancelled(record)

        return record.extend(
            depth_url=result.depth_url,
            metadata={
                "depth_method": result.method.value,
                "depth_provider": result.provider_id,
                "depth_confidence": result.confidence,
            },
        )
