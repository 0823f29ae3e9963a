import asyncio
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from pydantic import BaseModel, Field

from scenedepth.core.exceptions import ModelLoadError
from scenedepth.core.logging import LoggerRegistry

M = TypeVar("M")


class RetryPolicy(BaseModel):
    """Exponential backoff policy for loading on-device models."""

    max_attempts: int = Field(3, gt=0)
    base_delay: float = Field(1.0, ge=0)
    max_delay: float = Field(10.0, ge=0)
    timeout: Optional[float] = Field(15.0, gt=0, description="Per-attempt timeout in seconds.")

    def delay_for(self, attempt: int) -> float:
        """Backoff before retrying after the given 1-based attempt."""
        return min(self.base_delay * 2 ** (attempt - 1), self.max_delay)


class ModelLoader(Generic[M]):
    """
    Loads a model once, with retries, sharing one load among concurrent callers.

    `load_fn` is a blocking callable run in a worker thread. A failed load
    is not memoized, so a later `load()` starts over.
    """

    def __init__(
        self,
        name: str,
        load_fn: Callable[[], M],
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.name = name
        self.load_fn = load_fn
        self.policy = policy or RetryPolicy()
        self._sleep = sleep
        self._model: Optional[M] = None
        self._task: Optional[asyncio.Task] = None
        self.logger = LoggerRegistry.get_service_logger("model_loader").bind(model=name)

    @property
    def loaded(self) -> bool:
        return self._model is not None

    @property
    def model(self) -> Optional[M]:
        return self._model

    async def load(self) -> M:
        if self._model is not None:
            return self._model
        if self._task is None:
            self._task = asyncio.ensure_future(self._load_with_retry())
            self._task.add_done_callback(self._on_load_done)
        return await asyncio.shield(self._task)

    def _on_load_done(self, task: asyncio.Task) -> None:
        if self._task is task:
            self._task = None

    async def _load_with_retry(self) -> M:
        last_error: Optional[BaseException] = None

        for attempt in range(1, self.policy.max_attempts + 1):
            self.logger.info("model.load.attempt", attempt=attempt, max_attempts=self.policy.max_attempts)
            try:
                call = asyncio.to_thread(self.load_fn)
                if self.policy.timeout is not None:
                    model = await asyncio.wait_for(call, timeout=self.policy.timeout)
                else:
                    model = await call
            except asyncio.TimeoutError as e:
                last_error = e
                self.logger.warning("model.load.timeout", attempt=attempt, timeout=self.policy.timeout)
            except Exception as e:
                last_error = e
                self.logger.warning("model.load.failed", attempt=attempt, error=str(e))
            else:
                self._model = model
                self.logger.info("model.load.succeeded", attempt=attempt)
                return model

            if attempt < self.policy.max_attempts:
                await self._sleep(self.policy.delay_for(attempt))

        self.logger.error("model.load.exhausted", attempts=self.policy.max_attempts, error=str(last_error))
        raise ModelLoadError(
            f"Failed to load model '{self.name}' after {self.policy.max_attempts} attempts: {last_error}"
        ) from last_error

    def unload(self) -> None:
        self._model = None
