import asyncio

import pytest

from scenedepth.core.config import Settings
from scenedepth.core.container import ServiceContainer
from scenedepth.core.exceptions import PipelineAbortedError, ServicePausedError, StageExecutionError
from scenedepth.core.schemas.enums import ProcessingStatus
from scenedepth.processing.events import StageCompletedEvent
from scenedepth.processing.payloads import UploadedFile
from tests.mocks.mock_images import make_image_bytes
from tests.mocks.mock_providers import MockProvider, SceneOnlyProvider


def _upload(color=(120, 80, 40)) -> UploadedFile:
    return UploadedFile(content=make_image_bytes(color=color), filename="scene.png", content_type="image/png")


@pytest.fixture
def fallback() -> MockProvider:
    return MockProvider("fallback")


@pytest.fixture
async def container(fallback):
    container = ServiceContainer(
        settings=Settings(ANALYSIS_MAX_SIZE=16),
        providers=[SceneOnlyProvider("gemini"), MockProvider("local-depth"), fallback],
    )
    await container.startup()
    yield container
    await container.shutdown()


async def test_successful_upload_walks_the_status_machine(container: ServiceContainer):
    session = container.session

    result = await session.start_upload(_upload())

    snapshot = session.snapshot()
    assert snapshot.status == ProcessingStatus.READY
    assert snapshot.result == result
    assert snapshot.message == "Ready"
    assert session.status.history == [
        ProcessingStatus.IDLE,
        ProcessingStatus.UPLOADING,
        ProcessingStatus.ANALYZING,
        ProcessingStatus.PROCESSING_DEPTH,
        ProcessingStatus.READY,
    ]


async def test_paused_service_refuses_uploads(container: ServiceContainer):
    container.ai_service.pause()

    with pytest.raises(ServicePausedError):
        await container.session.start_upload(_upload())

    assert container.session.status.status == ProcessingStatus.IDLE


async def test_failure_moves_to_error_and_retry_recovers(container: ServiceContainer):
    """A depth failure sets the error status; retry resumes to ready."""
    # Arrange
    depth = container.ai_service.providers["local-depth"]
    fallback = container.ai_service.providers["fallback"]
    depth.fail = True
    fallback.fail = True
    session = container.session

    # Act
    with pytest.raises(StageExecutionError):
        await session.start_upload(_upload())

    # Assert
    snapshot = session.snapshot()
    assert snapshot.status == ProcessingStatus.ERROR
    assert snapshot.error_stage == "depth"
    assert "depth failed" in snapshot.error

    fallback.fail = False
    await session.retry()
    assert session.snapshot().status == ProcessingStatus.READY
    assert session.snapshot().error is None


async def test_cancel_returns_to_idle(container: ServiceContainer):
    session = container.session

    def cancel_after_read(event):
        if isinstance(event, StageCompletedEvent) and event.stage == "read":
            session.cancel()

    container.pipeline.subscribe(cancel_after_read)

    with pytest.raises(PipelineAbortedError):
        await session.start_upload(_upload())

    assert session.snapshot().status == ProcessingStatus.IDLE
    assert session.snapshot().message == "Cancelled"
    assert len(container.blob_store) == 0


async def test_reset_clears_result(container: ServiceContainer):
    session = container.session
    await session.start_upload(_upload())

    session.reset()

    snapshot = session.snapshot()
    assert snapshot.status == ProcessingStatus.IDLE
    assert snapshot.result is None


async def _start_and_wait_for_read(container: ServiceContainer) -> asyncio.Task:
    """Starts an upload with a slow analyze and returns once its read stage is done."""
    container.ai_service.providers["gemini"].delay = 0.2
    read_done = asyncio.Event()

    def on_read(event):
        if isinstance(event, StageCompletedEvent) and event.stage == "read":
            read_done.set()

    unsubscribe = container.pipeline.subscribe(on_read)
    task = asyncio.create_task(container.session.start_upload(_upload()))
    await read_done.wait()
    unsubscribe()
    return task


async def test_cancel_then_reupload_completes_the_new_run(container: ServiceContainer):
    """Cancelling and re-uploading right away leaves the new run intact."""
    # Arrange
    session = container.session
    first = await _start_and_wait_for_read(container)

    # Act
    session.cancel()
    result = await session.start_upload(_upload(color=(10, 200, 90)))

    # Assert
    with pytest.raises(PipelineAbortedError):
        await first
    snapshot = session.snapshot()
    assert snapshot.status == ProcessingStatus.READY
    assert snapshot.result == result
    assert snapshot.error is None
    assert result.image_url in container.blob_store
    assert len(container.blob_store) == 1


async def test_new_upload_supersedes_the_active_one(container: ServiceContainer):
    session = container.session
    first = await _start_and_wait_for_read(container)

    result = await session.start_upload(_upload(color=(10, 200, 90)))

    with pytest.raises(PipelineAbortedError):
        await first
    assert session.snapshot().status == ProcessingStatus.READY
    assert session.snapshot().result == result
    assert session.snapshot().message == "Ready"
