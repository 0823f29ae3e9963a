from contextvars import ContextVar
from typing import Optional

# The run id of the pipeline execution active in the current async task.
_run_id_var: ContextVar[Optional[str]] = ContextVar("run_id", default=None)


def set_run_id(run_id: Optional[str]) -> None:
    """Sets the pipeline run id for the current async task."""
    _run_id_var.set(run_id)


def get_run_id() -> Optional[str]:
    """Gets the pipeline run id for the current async task, if any."""
    return _run_id_var.get()
