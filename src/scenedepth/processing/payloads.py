from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from scenedepth.core.exceptions import PipelineAbortedError
from scenedepth.domain.models import SceneAnalysis


class CancellationToken:
    """Cooperative cancellation signal shared by every stage of one run."""

    def __init__(self):
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def raise_if_cancelled(self, stage: Optional[str] = None) -> None:
        if self._cancelled:
            raise PipelineAbortedError(stage=stage)


class UploadedFile(BaseModel):
    """A user-supplied file held in memory."""

    content: bytes
    filename: str
    content_type: str = "application/octet-stream"

    @property
    def is_video(self) -> bool:
        return self.content_type.startswith("video/")

    @property
    def is_image(self) -> bool:
        return self.content_type.startswith("image/")


class StageInput(BaseModel):
    """
    The record threaded through every pipeline stage.

    Stages never mutate a record in place; they return an extended copy
    through `extend`. Once a field is populated a later stage may not clear it.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    file: Optional[UploadedFile] = None
    url: Optional[str] = None
    image_url: Optional[str] = None
    image_base64: Optional[str] = Field(None, description="Bare base64 JPEG used for scene analysis.")
    video_url: Optional[str] = None
    analysis: Optional[SceneAnalysis] = None
    depth_url: Optional[str] = None
    background_url: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    cancellation: Optional[CancellationToken] = Field(None, exclude=True)
    run_id: Optional[str] = None
    success: bool = True
    error: Optional[str] = None
    exception: Optional[BaseException] = Field(None, exclude=True)

    def extend(self, metadata: Optional[Dict[str, Any]] = None, **updates: Any) -> "StageInput":
        """Returns a copy with additional fields set and metadata merged."""
        for key, value in updates.items():
            if key not in type(self).model_fields:
                raise AttributeError(f"StageInput has no field '{key}'")
            if value is None and getattr(self, key) is not None and key != "error":
                raise ValueError(f"Field '{key}' is already populated and cannot be cleared")
        if metadata:
            updates["metadata"] = {**self.metadata, **metadata}
        return self.model_copy(update=updates)

    def fail(self, error: str, exception: Optional[BaseException] = None) -> "StageInput":
        return self.model_copy(update={"success": False, "error": error, "exception": exception})

    @property
    def input_type(self) -> str:
        if self.file is not None:
            return "file"
        if self.url:
            return "url"
        return "unknown"
