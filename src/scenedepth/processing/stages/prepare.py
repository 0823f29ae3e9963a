import asyncio

from scenedepth.infrastructure.image_resolver import ImageResolver
from scenedepth.processing.decorators import instrument_stage
from scenedepth.processing.images import generate_blurred_background
from scenedepth.processing.payloads import StageInput
from scenedepth.processing.stages.base import BaseStage


class PrepareStage(BaseStage):
    """Renders the blurred, darkened backdrop shown behind the scene."""

    def __init__(self, resolver: ImageResolver, **kwargs):
        super().__init__(**kwargs)
        self.resolver = resolver

    @property
    def name(self) -> str:
        return "prepare"

    @property
    def order(self) -> int:
        return 3

    def can_skip(self, record: StageInput) -> bool:
        return record.background_url is not None

    @instrument_stage
    async def execute(self, record: StageInput) -> StageInput:
        self.check_cancelled(record)

        if not record.image_url:
            self.logger.warning("prepare.no_image")
            return record

        data = await self.resolver.resolve(record.image_url)
        background_url = await asyncio.to_thread(generate_blurred_background, data)
        self.check_cancelled(record)
        return record.extend(background_url=background_url)
