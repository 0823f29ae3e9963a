import time
from typing import Dict, List, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field

from scenedepth.core.events import EventEmitter
from scenedepth.core.exceptions import PipelineAbortedError, StageExecutionError
from scenedepth.core.logging import LoggerRegistry
from scenedepth.processing.events import PipelineEvent, StageCompletedEvent, StageStartedEvent
from scenedepth.processing.payloads import StageInput
from scenedepth.processing.stages.base import BaseStage


class StageDefinition(BaseModel):
    """Binds a stage into the engine's DAG."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    stage: BaseStage
    depends_on: List[str] = Field(default_factory=list)
    enabled: bool = True

    @property
    def name(self) -> str:
        return self.stage.name

    @property
    def order(self) -> int:
        return self.stage.order


class PipelineEngine:
    """
    Generic stage scheduler.

    Stages run one after another in topological order of `depends_on`, ties
    broken by each stage's `order`. One evolving `StageInput` record is
    threaded through; the cancellation token is checked before each stage.
    """

    def __init__(
        self,
        definitions: List[StageDefinition],
        events: Optional[EventEmitter[PipelineEvent]] = None,
        logger: Optional[structlog.stdlib.BoundLogger] = None,
    ):
        self.definitions = {d.name: d for d in definitions}
        if len(self.definitions) != len(definitions):
            raise ValueError("Stage names must be unique")
        self.events = events
        self.logger = logger or LoggerRegistry.get_pipeline_logger("engine")
        self.execution_order = self._get_execution_order()

    @property
    def stages(self) -> List[BaseStage]:
        return [self.definitions[name].stage for name in self.execution_order]

    def _get_execution_order(self) -> List[str]:
        """
        Performs a topological sort of the enabled stages.

        Stages that become ready together are ordered by `order`.
        Raises a ValueError on an unknown dependency or a cycle.
        """
        for definition in self.definitions.values():
            for dep in definition.depends_on:
                if dep not in self.definitions:
                    raise ValueError(f"Stage '{definition.name}' depends on unknown stage '{dep}'")

        graph = {name: set(d.depends_on) for name, d in self.definitions.items()}
        levels: List[List[str]] = []

        while True:
            ready = {name for name, deps in graph.items() if not deps}

            if not ready:
                break

            levels.append(sorted(ready, key=lambda n: (self.definitions[n].order, n)))

            for name in ready:
                del graph[name]

            for deps in graph.values():
                deps.difference_update(ready)

        if graph:
            raise ValueError(f"A cycle was detected involving stages: {sorted(graph.keys())}")

        return [name for level in levels for name in level if self.definitions[name].enabled]

    def _emit(self, event: PipelineEvent) -> None:
        if self.events is not None:
            self.events.emit(event)

    async def run(self, record: StageInput) -> StageInput:
        """
        Executes every enabled stage against the record.

        Raises:
            PipelineAbortedError: the cancellation token fired; carries the
                record as it stood before the stage that was about to run.
            StageExecutionError: a stage raised or returned `success=False`;
                carries the last successful record.
        """
        log = self.logger.bind(run_id=record.run_id)
        token = record.cancellation
        current = record
        total = len(self.execution_order)
        start_time = time.perf_counter()
        timings: Dict[str, int] = {}

        log.info("pipeline.start", stages=self.execution_order)

        for index, name in enumerate(self.execution_order):
            stage = self.definitions[name].stage

            if token is not None and token.cancelled:
                log.info("pipeline.aborted", stage=name)
                raise PipelineAbortedError(stage=name, partial=current)

            if stage.can_skip(current):
                log.info("pipeline.stage.skipped", stage=name)
                self._emit(StageCompletedEvent(stage=name, progress=_percent(index + 1, total), skipped=True, output=current))
                continue

            self._emit(StageStartedEvent(stage=name, progress=_percent(index, total)))
            stage_start = time.perf_counter()

            try:
                output = await stage.execute(current)
            except PipelineAbortedError as e:
                log.info("pipeline.aborted", stage=name)
                raise PipelineAbortedError(str(e), stage=name, partial=current) from e
            except Exception as e:
                log.error("pipeline.stage.failed", stage=name, error=str(e), exc_info=True)
                raise StageExecutionError(name, e, current) from e

            timings[name] = round((time.perf_counter() - stage_start) * 1000)

            if not output.success:
                cause = output.exception or RuntimeError(output.error or f"Stage '{name}' reported failure")
                log.error("pipeline.stage.failed", stage=name, error=str(cause))
                raise StageExecutionError(name, cause, current)

            current = output
            self._emit(StageCompletedEvent(stage=name, progress=_percent(index + 1, total), output=current))

        duration_ms = round((time.perf_counter() - start_time) * 1000)
        log.info("pipeline.finished", duration_ms=duration_ms, stage_durations_ms=timings)
        return current


def _percent(done: int, total: int) -> float:
    return round(done / total * 100, 2) if total else 100.0
