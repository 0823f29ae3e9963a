import functools
import time
from typing import Any, Callable, Coroutine

from scenedepth.core.exceptions import PipelineAbortedError
from scenedepth.processing.payloads import StageInput


def instrument_stage(
    func: Callable[..., Coroutine[Any, Any, StageInput]]
) -> Callable[..., Coroutine[Any, Any, StageInput]]:
    """
    A decorator for instrumenting a stage's `execute` method.

    This decorator standardizes cross-cutting concerns for all stages:
    - Measures and logs the execution time of the stage and records it
      under `metadata["stage_timings"]`.
    - Catches and logs any exception, turning it into a `success=False`
      record so the engine can report the failing stage.
    - Lets cancellation (`PipelineAbortedError`) propagate untouched.
    """

    @functools.wraps(func)
    async def wrapper(self, record: StageInput, *args, **kwargs: Any) -> StageInput:
        log = self.logger.bind(stage=self.name, run_id=record.run_id)
        log.info(f"{self.name}.start")
        start_time = time.perf_counter()

        try:
            result = await func(self, record, *args, **kwargs)

            if not isinstance(result, StageInput):
                raise TypeError(f"Stage '{self.name}' did not return a StageInput instance.")

        except PipelineAbortedError:
            log.info(f"{self.name}.aborted")
            raise

        except Exception as e:
            duration_ms = round((time.perf_counter() - start_time) * 1000)
            log.error(f"{self.name}.failed", error=str(e), exc_info=True, duration_ms=duration_ms)
            errors = {**record.metadata.get("stage_errors", {}), self.name: type(e).__name__}
            return record.fail(str(e), e).model_copy(update={"metadata": {**record.metadata, "stage_errors": errors}})

        duration_ms = round((time.perf_counter() - start_time) * 1000)
        timings = {**result.metadata.get("stage_timings", {}), self.name: duration_ms}
        log.info(f"{self.name}.finished", duration_ms=duration_ms, success=result.success)
        return result.model_copy(update={"metadata": {**result.metadata, "stage_timings": timings}})

    return wrapper
