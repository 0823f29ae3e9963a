from typing import Optional, Union

from pydantic import BaseModel

from scenedepth.core.exceptions import (
    InvalidStatusTransitionError,
    PipelineAbortedError,
    ScenedepthError,
    ServicePausedError,
)
from scenedepth.core.logging import LoggerRegistry
from scenedepth.core.schemas.enums import ProcessingStatus
from scenedepth.domain.models import ProcessedResult
from scenedepth.processing.events import PipelineProgress
from scenedepth.processing.payloads import UploadedFile
from scenedepth.services.ai_service import AIService
from scenedepth.services.status import StatusMachine
from scenedepth.services.upload_pipeline import UploadPipeline

ACTIVE_STATUSES = frozenset({
    ProcessingStatus.UPLOADING,
    ProcessingStatus.ANALYZING,
    ProcessingStatus.PROCESSING_DEPTH,
})


class SessionSnapshot(BaseModel):
    status: ProcessingStatus
    progress: PipelineProgress
    message: str = ""
    result: Optional[ProcessedResult] = None
    error: Optional[str] = None
    error_stage: Optional[str] = None


class SessionService:
    """
    Drives one upload at a time and reports it as a `ProcessingStatus`.

    Pipeline progress is mapped onto the status machine: the read stage
    reports `uploading`, analyze reports `analyzing`, depth and prepare
    report `processing_depth`.
    """

    def __init__(self, pipeline: UploadPipeline, ai_service: AIService):
        self.pipeline = pipeline
        self.ai_service = ai_service
        self.status = StatusMachine()
        self.result: Optional[ProcessedResult] = None
        self.error: Optional[str] = None
        self.error_stage: Optional[str] = None
        self.message = ""
        self.logger = LoggerRegistry.get_service_logger("session")
        self._generation = 0
        self._unsubscribe = pipeline.on_progress(self._on_progress)
        self._unsubscribe_error = pipeline.on_error(self._on_error)

    async def start_upload(self, source: Union[UploadedFile, str]) -> ProcessedResult:
        generation = self._begin()
        return await self._track(self.pipeline.process(source), generation)

    async def retry(self) -> ProcessedResult:
        """Resumes the last failed run from its partial record."""
        generation = self._begin()
        return await self._track(self.pipeline.retry(), generation)

    def _begin(self) -> int:
        if self.ai_service.paused:
            raise ServicePausedError("AI service is paused")
        if self.status.status in ACTIVE_STATUSES:
            self.logger.info("session.superseded", status=self.status.status.value)
            self.pipeline.cancel()
            self.status.reset()
        self.status.transition(ProcessingStatus.UPLOADING)
        self.result = None
        self.error = None
        self.error_stage = None
        self.message = "Uploading..."
        self._generation += 1
        return self._generation

    async def _track(self, run, generation: int) -> ProcessedResult:
        try:
            result = await run
        except PipelineAbortedError:
            if generation == self._generation:
                self.status.reset()
                self.message = "Cancelled"
            raise
        except ScenedepthError as e:
            if generation != self._generation:
                raise
            self.error = str(e)
            self.message = "Processing failed"
            if self.status.status != ProcessingStatus.IDLE:
                self.status.transition(ProcessingStatus.ERROR)
            raise

        if generation != self._generation:
            return result
        if self.status.status == ProcessingStatus.UPLOADING:
            # Every stage after read was skipped on a resumed run.
            self.status.transition(ProcessingStatus.PROCESSING_DEPTH)
        self.status.transition(ProcessingStatus.READY)
        self.result = result
        self.message = "Ready"
        return result

    def cancel(self) -> None:
        self.pipeline.cancel()
        self.status.reset()
        self.message = "Cancelled"

    def reset(self) -> None:
        self.status.reset()
        self.result = None
        self.error = None
        self.error_stage = None
        self.message = ""

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            status=self.status.status,
            progress=self.pipeline.get_progress(),
            message=self.message,
            result=self.result,
            error=self.error,
            error_stage=self.error_stage,
        )

    def dispose(self) -> None:
        self._unsubscribe()
        self._unsubscribe_error()

    def _on_progress(self, progress: PipelineProgress) -> None:
        target = self.status.for_stage(progress.stage)
        if target is None or self.status.status == ProcessingStatus.IDLE:
            return
        self.message = progress.message
        if target == self.status.status:
            return
        try:
            self.status.transition(target)
        except InvalidStatusTransitionError:
            self.logger.warning("session.progress.out_of_order", stage=progress.stage)

    def _on_error(self, error: BaseException, stage: str, options) -> None:
        self.error_stage = stage
