from typing import List, Literal, Optional, Union

from pydantic import BaseModel, Field

from scenedepth.domain.models import ProcessedResult
from scenedepth.processing.payloads import StageInput


class RecoveryOption(BaseModel):
    label: str
    action: Optional[Literal["retry"]] = Field(
        None, description="'retry' resumes the run from its partial record; None means user action is needed."
    )


class PipelineStartedEvent(BaseModel):
    kind: Literal["started"] = "started"
    run_id: str
    input_type: str


class StageStartedEvent(BaseModel):
    kind: Literal["stage-started"] = "stage-started"
    stage: str
    progress: float


class StageCompletedEvent(BaseModel):
    kind: Literal["stage-completed"] = "stage-completed"
    stage: str
    progress: float
    skipped: bool = False
    output: StageInput


class PipelineCompletedEvent(BaseModel):
    kind: Literal["completed"] = "completed"
    result: ProcessedResult


class PipelineErrorEvent(BaseModel):
    kind: Literal["error"] = "error"
    stage: Optional[str] = None
    error: str
    recovery_options: List[RecoveryOption] = Field(default_factory=list)


class PipelineAbortedEvent(BaseModel):
    kind: Literal["aborted"] = "aborted"
    stage: Optional[str] = None


PipelineEvent = Union[
    PipelineStartedEvent,
    StageStartedEvent,
    StageCompletedEvent,
    PipelineCompletedEvent,
    PipelineErrorEvent,
    PipelineAbortedEvent,
]


class PipelineProgress(BaseModel):
    stage: str
    stage_index: int
    total_stages: int
    progress: float
    message: str
