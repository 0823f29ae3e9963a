from abc import ABC, abstractmethod
from typing import Optional

import structlog

from scenedepth.core.logging import LoggerRegistry
from scenedepth.processing.payloads import StageInput


class BaseStage(ABC):
    """
    Abstract base class defining the contract for all pipeline stages.

    A stage is one ordered, skippable unit of work over the shared
    `StageInput` record. The engine calls `can_skip` first and only runs
    `execute` when it returns False. `execute` returns an extended copy of
    the record; it must never clear a field an earlier stage populated.
    """

    def __init__(self, logger: Optional[structlog.stdlib.BoundLogger] = None):
        self.logger = logger or LoggerRegistry.get_stage_logger(self.name)

    @property
    @abstractmethod
    def name(self) -> str:
        """The unique name of the stage."""
        pass

    @property
    @abstractmethod
    def order(self) -> int:
        """Position of the stage in the pipeline's total order."""
        pass

    def can_skip(self, record: StageInput) -> bool:
        """Pure predicate; True when the stage's output is already present."""
        return False

    def check_cancelled(self, record: StageInput) -> None:
        if record.cancellation is not None:
            record.cancellation.raise_if_cancelled(self.name)

    @abstractmethod
    async def execute(self, record: StageInput) -> StageInput:
        """
        Runs the stage.

        Args:
            record: The record produced by the previous stage.

        Returns:
            The record extended with this stage's outputs, or a copy with
            `success=False` and `error` set.
        """
        pass
