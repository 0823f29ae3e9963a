import time
import uuid
from typing import Callable, Dict, List, Optional, Sequence, Union

from scenedepth.core.context import set_run_id
from scenedepth.core.events import EventEmitter, Unsubscribe
from scenedepth.core.exceptions import PipelineAbortedError, PipelineIncompleteError, StageExecutionError
from scenedepth.core.logging import LoggerRegistry
from scenedepth.core.schemas.enums import AssetType
from scenedepth.domain.models import (
    DEFAULT_DEPTH_SCALE,
    DEFAULT_DEPTH_VARIANCE,
    Asset,
    ProcessedResult,
    ResultAnalysis,
    SceneAnalysis,
)
from scenedepth.infrastructure.storage.blob_store import BlobStore, is_blob_url
from scenedepth.processing.events import (
    PipelineAbortedEvent,
    PipelineCompletedEvent,
    PipelineErrorEvent,
    PipelineEvent,
    PipelineProgress,
    PipelineStartedEvent,
    RecoveryOption,
    StageCompletedEvent,
    StageStartedEvent,
)
from scenedepth.processing.payloads import CancellationToken, StageInput, UploadedFile
from scenedepth.processing.pipeline import PipelineEngine, StageDefinition
from scenedepth.processing.stages.base import BaseStage

DEFAULT_WIDTH = 1920
DEFAULT_HEIGHT = 1080
DEFAULT_ASPECT_RATIO = 16 / 9
DEFAULT_DURATION = 0.0

RETRY_STAGE = "Retry Stage"
SELECT_DIFFERENT_FILE = "Select Different File"

ProgressCallback = Callable[[PipelineProgress], None]
CompleteCallback = Callable[[ProcessedResult], None]
ErrorCallback = Callable[[BaseException, str, List[RecoveryOption]], None]


def build_analysis(analysis: SceneAnalysis) -> ResultAnalysis:
    data = analysis.model_dump()
    if data.get("estimated_depth_scale") is None:
        data["estimated_depth_scale"] = DEFAULT_DEPTH_SCALE
    if data.get("depth_variance") is None:
        data["depth_variance"] = DEFAULT_DEPTH_VARIANCE
    if data.get("keywords") is None:
        data["keywords"] = []
    return ResultAnalysis(**data)


def build_asset(record: StageInput, image_url: str) -> Asset:
    metadata = record.metadata
    asset = {
        "id": str(uuid.uuid4()),
        "type": AssetType.IMAGE,
        "source_url": image_url,
        "width": metadata.get("width") or DEFAULT_WIDTH,
        "height": metadata.get("height") or DEFAULT_HEIGHT,
        "aspect_ratio": metadata.get("aspect_ratio") or DEFAULT_ASPECT_RATIO,
        "created_at": int(time.time() * 1000),
    }
    if record.video_url:
        asset.update(
            type=AssetType.VIDEO,
            source_url=record.video_url,
            thumbnail_url=image_url,
            duration=metadata.get("duration") or DEFAULT_DURATION,
        )
    return Asset(**asset)


def recovery_options(stage: Optional[str]) -> List[RecoveryOption]:
    options = [RecoveryOption(label=RETRY_STAGE, action="retry")]
    if stage == "read":
        options.append(RecoveryOption(label=SELECT_DIFFERENT_FILE, action=None))
    return options


class UploadPipeline:
    """
    Binds the read, analyze, depth and prepare stages into the engine and
    manages a run's lifecycle.

    Every `blob:` URL produced by a run is tracked under that run's id and
    revoked when the next run starts or the pipeline is disposed. An aborted
    run only revokes its own URLs. Starting a run cancels the one in flight.
    """

    def __init__(self, stages: Sequence[BaseStage], blob_store: BlobStore):
        ordered = sorted(stages, key=lambda s: s.order)
        definitions = [
            StageDefinition(stage=stage, depends_on=[ordered[i - 1].name] if i > 0 else [])
            for i, stage in enumerate(ordered)
        ]
        self.events: EventEmitter[PipelineEvent] = EventEmitter("pipeline")
        self.engine = PipelineEngine(definitions, events=self.events)
        self.blob_store = blob_store
        self.logger = LoggerRegistry.get_pipeline_logger("upload")

        self._blob_urls: Dict[str, List[str]] = {}
        self._token: Optional[CancellationToken] = None
        self._start_time = 0.0
        self._run_id: Optional[str] = None
        self.last_partial: Optional[StageInput] = None
        self._progress = PipelineProgress(stage="", stage_index=0, total_stages=0, progress=0, message="")

        self._progress_callbacks: List[ProgressCallback] = []
        self._complete_callbacks: List[CompleteCallback] = []
        self._error_callbacks: List[ErrorCallback] = []
        self._unsubscribe = self.events.subscribe(self._on_engine_event)

    @property
    def stage_names(self) -> List[str]:
        return list(self.engine.execution_order)

    @property
    def run_id(self) -> Optional[str]:
        return self._run_id

    # Subscriptions

    def subscribe(self, handler: Callable[[PipelineEvent], None]) -> Unsubscribe:
        return self.events.subscribe(handler)

    def on_progress(self, callback: ProgressCallback) -> Unsubscribe:
        return _register(self._progress_callbacks, callback)

    def on_complete(self, callback: CompleteCallback) -> Unsubscribe:
        return _register(self._complete_callbacks, callback)

    def on_error(self, callback: ErrorCallback) -> Unsubscribe:
        return _register(self._error_callbacks, callback)

    def get_progress(self) -> PipelineProgress:
        return self._progress.model_copy()

    # Runs

    async def process(self, source: Union[UploadedFile, str]) -> ProcessedResult:
        """Runs every stage on a file or a URL and returns the processed result."""
        self.cancel()
        self.release_blob_urls()
        self.last_partial = None
        run_id = str(uuid.uuid4())
        if isinstance(source, UploadedFile):
            record = StageInput(file=source, run_id=run_id)
        else:
            record = StageInput(url=source, run_id=run_id)
        return await self._run(record)

    async def resume(self, partial: StageInput) -> ProcessedResult:
        """Re-runs the engine on a partial record so completed stages are skipped."""
        self.cancel()
        run_id = str(uuid.uuid4())
        record = partial.model_copy(update={
            "run_id": run_id,
            "success": True,
            "error": None,
            "exception": None,
        })
        # Blobs produced by the partial run now belong to the resumed one.
        if partial.run_id in self._blob_urls:
            self._blob_urls[run_id] = self._blob_urls.pop(partial.run_id)
        return await self._run(record)

    async def retry(self) -> ProcessedResult:
        if self.last_partial is None:
            raise PipelineIncompleteError("No failed run to retry")
        return await self.resume(self.last_partial)

    async def _run(self, record: StageInput) -> ProcessedResult:
        token = CancellationToken()
        run_id = record.run_id
        self._token = token
        self._run_id = run_id
        self._start_time = time.perf_counter()
        record = record.model_copy(update={"cancellation": token})
        set_run_id(run_id)

        self.logger.info("upload.started", input_type=record.input_type)
        self.events.emit(PipelineStartedEvent(run_id=run_id, input_type=record.input_type))

        try:
            output = await self.engine.run(record)
        except PipelineAbortedError as e:
            self._abort(run_id, e.stage)
            raise
        except StageExecutionError as e:
            if token.cancelled:
                # A stage that fails after cancellation is reported as an abort.
                self._abort(run_id, e.stage)
                raise PipelineAbortedError(stage=e.stage, partial=e.partial) from e
            self.last_partial = e.partial
            self._report_error(e.cause, e.stage)
            raise
        finally:
            set_run_id(None)
            if self._token is token:
                self._token = None

        if token.cancelled:
            self._abort(run_id, None)
            raise PipelineAbortedError(stage=None, partial=output)

        self._track_blob_urls(output)

        try:
            result = self._build_result(output)
        except PipelineIncompleteError as e:
            self.last_partial = output
            self._report_error(e, None)
            raise

        self._update_progress(PipelineProgress(
            stage="complete",
            stage_index=len(self.stage_names),
            total_stages=len(self.stage_names),
            progress=100,
            message="Processing complete",
        ))
        for callback in list(self._complete_callbacks):
            callback(result)
        self.events.emit(PipelineCompletedEvent(result=result))
        self.logger.info("upload.completed", processing_time_ms=result.processing_time)
        return result

    def cancel(self) -> None:
        if self._token is not None and not self._token.cancelled:
            self._token.cancel()
            self.logger.info("upload.cancel_requested", run_id=self._run_id)

    def dispose(self) -> None:
        self._unsubscribe()
        self._progress_callbacks.clear()
        self._complete_callbacks.clear()
        self._error_callbacks.clear()
        self.cancel()
        self.release_blob_urls()
        self.events.clear()

    # Internals

    def _build_result(self, record: StageInput) -> ProcessedResult:
        if not record.image_url or not record.depth_url or record.analysis is None:
            raise PipelineIncompleteError("Pipeline incomplete: missing required output data")

        processing_time = round((time.perf_counter() - self._start_time) * 1000, 2)
        return ProcessedResult(
            asset=build_asset(record, record.image_url),
            analysis=build_analysis(record.analysis),
            depth_map_url=record.depth_url,
            image_url=record.image_url,
            background_url=record.background_url,
            processing_time=processing_time,
        )

    def _report_error(self, error: BaseException, stage: Optional[str]) -> None:
        options = recovery_options(stage)
        self.logger.error("upload.failed", stage=stage, error=str(error))
        for callback in list(self._error_callbacks):
            callback(error, stage or "pipeline", options)
        self.events.emit(PipelineErrorEvent(stage=stage, error=str(error), recovery_options=options))

    def _on_engine_event(self, event: PipelineEvent) -> None:
        if isinstance(event, StageStartedEvent):
            index = self.stage_names.index(event.stage)
            self._update_progress(PipelineProgress(
                stage=event.stage,
                stage_index=index,
                total_stages=len(self.stage_names),
                progress=event.progress,
                message=f"Processing {event.stage}...",
            ))
        elif isinstance(event, StageCompletedEvent):
            self._track_blob_urls(event.output)

    def _abort(self, run_id: str, stage: Optional[str]) -> None:
        self.logger.info("upload.aborted", stage=stage, run_id=run_id)
        self.release_blob_urls(run_id)
        self.events.emit(PipelineAbortedEvent(stage=stage))

    def _track_blob_urls(self, record: StageInput) -> None:
        urls = self._blob_urls.setdefault(record.run_id, [])
        for url in (record.image_url, record.video_url, record.depth_url, record.background_url):
            # A caller-supplied source URL stays owned by the caller.
            if url and url != record.url and is_blob_url(url) and url not in urls:
                urls.append(url)

    def release_blob_urls(self, run_id: Optional[str] = None) -> None:
        """Revokes the blob URLs of one run, or of every run when no id is given."""
        run_ids = list(self._blob_urls) if run_id is None else [run_id]
        for key in run_ids:
            for url in self._blob_urls.pop(key, []):
                if self.blob_store.revoke(url):
                    self.logger.debug("upload.blob_revoked", url=url)

    def _update_progress(self, progress: PipelineProgress) -> None:
        self._progress = progress
        for callback in list(self._progress_callbacks):
            callback(progress)


def _register(callbacks: list, callback) -> Unsubscribe:
    callbacks.append(callback)

    def unsubscribe() -> None:
        if callback in callbacks:
            callbacks.remove(callback)

    return unsubscribe
