from typing import List, Optional

import pytest

from scenedepth.core.events import EventEmitter
from scenedepth.core.exceptions import PipelineAbortedError, StageExecutionError
from scenedepth.processing.events import StageCompletedEvent, StageStartedEvent
from scenedepth.processing.payloads import CancellationToken, StageInput
from scenedepth.processing.pipeline import PipelineEngine, StageDefinition
from scenedepth.processing.stages.base import BaseStage


class RecordingStage(BaseStage):
    """Appends its name to a shared call log and marks the record's metadata."""

    def __init__(self, name: str, order: int, calls: List[str], skip: bool = False,
                 fail: Optional[str] = None, raises: Optional[Exception] = None,
                 on_execute=None):
        self._name = name
        self._order = order
        self.calls = calls
        self.skip = skip
        self.fail = fail
        self.raises = raises
        self.on_execute = on_execute
        super().__init__()

    @property
    def name(self) -> str:
        return self._name

    @property
    def order(self) -> int:
        return self._order

    def can_skip(self, record: StageInput) -> bool:
        return self.skip

    async def execute(self, record: StageInput) -> StageInput:
        self.calls.append(self.name)
        if self.on_execute is not None:
            self.on_execute()
        if self.raises is not None:
            raise self.raises
        if self.fail is not None:
            return record.fail(self.fail)
        return record.extend(metadata={self.name: True})


@pytest.fixture
def calls() -> List[str]:
    return []


def _chain(*stages: BaseStage) -> List[StageDefinition]:
    return [
        StageDefinition(stage=stage, depends_on=[stages[i - 1].name] if i else [])
        for i, stage in enumerate(stages)
    ]


async def test_stages_run_in_dependency_order(calls):
    """Stages run in topological order regardless of definition order."""
    # Arrange
    read = RecordingStage("read", 0, calls)
    analyze = RecordingStage("analyze", 1, calls)
    depth = RecordingStage("depth", 2, calls)
    definitions = [
        StageDefinition(stage=depth, depends_on=["analyze"]),
        StageDefinition(stage=analyze, depends_on=["read"]),
        StageDefinition(stage=read),
    ]
    engine = PipelineEngine(definitions)

    # Act
    result = await engine.run(StageInput(run_id="run-1"))

    # Assert
    assert engine.execution_order == ["read", "analyze", "depth"]
    assert calls == ["read", "analyze", "depth"]
    assert result.metadata == {"read": True, "analyze": True, "depth": True}


def test_independent_stages_are_ordered_by_order(calls):
    engine = PipelineEngine([
        StageDefinition(stage=RecordingStage("b", 2, calls)),
        StageDefinition(stage=RecordingStage("a", 1, calls)),
        StageDefinition(stage=RecordingStage("c", 3, calls), depends_on=["b"]),
    ])

    assert engine.execution_order == ["a", "b", "c"]


async def test_skippable_stage_is_never_executed(calls):
    """A stage whose output is present emits a skipped completion and does not run."""
    events = []
    emitter = EventEmitter("test")
    emitter.subscribe(events.append)
    engine = PipelineEngine(_chain(
        RecordingStage("read", 0, calls, skip=True),
        RecordingStage("analyze", 1, calls),
    ), events=emitter)

    await engine.run(StageInput())

    assert calls == ["analyze"]
    completed = [e for e in events if isinstance(e, StageCompletedEvent)]
    assert [(e.stage, e.skipped) for e in completed] == [("read", True), ("analyze", False)]
    assert [e.stage for e in events if isinstance(e, StageStartedEvent)] == ["analyze"]


async def test_progress_is_reported_per_stage(calls):
    events = []
    emitter = EventEmitter("test")
    emitter.subscribe(events.append)
    engine = PipelineEngine(_chain(
        RecordingStage("read", 0, calls),
        RecordingStage("analyze", 1, calls),
        RecordingStage("depth", 2, calls),
        RecordingStage("prepare", 3, calls),
    ), events=emitter)

    await engine.run(StageInput())

    assert [e.progress for e in events if isinstance(e, StageStartedEvent)] == [0.0, 25.0, 50.0, 75.0]
    assert [e.progress for e in events if isinstance(e, StageCompletedEvent)] == [25.0, 50.0, 75.0, 100.0]


async def test_failed_record_raises_with_partial(calls):
    """A stage returning success=False stops the run; the partial holds prior outputs."""
    engine = PipelineEngine(_chain(
        RecordingStage("read", 0, calls),
        RecordingStage("depth", 1, calls, fail="model exploded"),
        RecordingStage("prepare", 2, calls),
    ))

    with pytest.raises(StageExecutionError) as exc_info:
        await engine.run(StageInput())

    assert exc_info.value.stage == "depth"
    assert "model exploded" in str(exc_info.value.cause)
    assert exc_info.value.partial.metadata == {"read": True}
    assert calls == ["read", "depth"]


async def test_raising_stage_keeps_cause(calls):
    boom = KeyError("missing")
    engine = PipelineEngine(_chain(RecordingStage("read", 0, calls, raises=boom)))

    with pytest.raises(StageExecutionError) as exc_info:
        await engine.run(StageInput())

    assert exc_info.value.cause is boom


async def test_cancellation_aborts_before_next_stage(calls):
    """Cancelling during one stage aborts the run before the next one starts."""
    token = CancellationToken()
    engine = PipelineEngine(_chain(
        RecordingStage("read", 0, calls),
        RecordingStage("analyze", 1, calls, on_execute=token.cancel),
        RecordingStage("depth", 2, calls),
    ))

    with pytest.raises(PipelineAbortedError) as exc_info:
        await engine.run(StageInput(cancellation=token))

    assert exc_info.value.stage == "depth"
    assert exc_info.value.partial.metadata == {"read": True, "analyze": True}
    assert calls == ["read", "analyze"]


async def test_abort_raised_inside_stage_is_reported_for_that_stage(calls):
    engine = PipelineEngine(_chain(
        RecordingStage("read", 0, calls),
        RecordingStage("analyze", 1, calls, raises=PipelineAbortedError()),
    ))

    with pytest.raises(PipelineAbortedError) as exc_info:
        await engine.run(StageInput())

    assert exc_info.value.stage == "analyze"


def test_disabled_stage_is_excluded(calls):
    read = RecordingStage("read", 0, calls)
    prepare = RecordingStage("prepare", 1, calls)
    engine = PipelineEngine([
        StageDefinition(stage=read),
        StageDefinition(stage=prepare, depends_on=["read"], enabled=False),
    ])

    assert engine.execution_order == ["read"]
    assert engine.stages == [read]


def test_cycle_is_rejected(calls):
    with pytest.raises(ValueError, match="cycle"):
        PipelineEngine([
            StageDefinition(stage=RecordingStage("a", 0, calls), depends_on=["b"]),
            StageDefinition(stage=RecordingStage("b", 1, calls), depends_on=["a"]),
        ])


def test_unknown_dependency_is_rejected(calls):
    with pytest.raises(ValueError, match="unknown stage"):
        PipelineEngine([StageDefinition(stage=RecordingStage("a", 0, calls), depends_on=["ghost"])])


def test_duplicate_stage_names_are_rejected(calls):
    with pytest.raises(ValueError):
        PipelineEngine([
            StageDefinition(stage=RecordingStage("a", 0, calls)),
            StageDefinition(stage=RecordingStage("a", 1, calls)),
        ])


def test_extend_refuses_to_clear_populated_field():
    record = StageInput(image_url="blob:scenedepth/1", metadata={"width": 10})

    extended = record.extend(depth_url="data:image/jpeg;base64,AA", metadata={"height": 5})

    assert extended.metadata == {"width": 10, "height": 5}
    assert record.depth_url is None
    with pytest.raises(ValueError):
        extended.extend(image_url=None)
