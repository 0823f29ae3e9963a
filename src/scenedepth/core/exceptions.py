from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from scenedepth.processing.payloads import StageInput


class ScenedepthError(Exception):
    """Base class for all errors raised by the service."""


class InputError(ScenedepthError):
    """The upload source is missing, unreadable or of an unsupported type."""


class ProviderError(ScenedepthError):
    """A provider failed to produce a result."""

    def __init__(self, provider_id: str, message: str):
        super().__init__(f"[{provider_id}] {message}")
        self.provider_id = provider_id


class ProviderCapabilityError(ProviderError):
    """The provider does not implement the requested operation."""


class ModelLoadError(ScenedepthError):
    """An on-device model could not be loaded after all retry attempts."""


class ProviderSwitchError(ScenedepthError):
    """Base class for rejected provider switches."""

    def __init__(self, provider_id: str, message: str):
        super().__init__(message)
        self.provider_id = provider_id


class ProviderNotFoundError(ProviderSwitchError):
    def __init__(self, provider_id: str):
        super().__init__(provider_id, f"Provider not found: {provider_id}")


class ProviderUnavailableError(ProviderSwitchError):
    def __init__(self, provider_id: str):
        super().__init__(provider_id, f"Provider {provider_id} is not available")


class PipelineAbortedError(ScenedepthError):
    """A pipeline run was cancelled through its cancellation token."""

    def __init__(self, message: str = "Pipeline aborted", *, stage: Optional[str] = None,
                 partial: Optional["StageInput"] = None):
        super().__init__(message)
        self.stage = stage
        self.partial = partial


class StageExecutionError(ScenedepthError):
    """A pipeline stage failed; carries the stage name and the partial record."""

    def __init__(self, stage: str, cause: BaseException, partial: Optional["StageInput"] = None):
        super().__init__(f"Stage '{stage}' failed: {cause}")
        self.stage = stage
        self.cause = cause
        self.partial = partial


class PipelineIncompleteError(ScenedepthError):
    """The pipeline finished without producing every field a result needs."""


class InvalidStatusTransitionError(ScenedepthError):
    def __init__(self, current: Any, requested: Any):
        super().__init__(f"Invalid status transition: {current} -> {requested}")
        self.current = current
        self.requested = requested


class ServicePausedError(ScenedepthError):
    """New work was requested while the AI service is paused."""
