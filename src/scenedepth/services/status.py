from typing import Dict, FrozenSet, List, Optional

from scenedepth.core.exceptions import InvalidStatusTransitionError
from scenedepth.core.logging import LoggerRegistry
from scenedepth.core.schemas.enums import ProcessingStatus

S = ProcessingStatus

ALLOWED_TRANSITIONS: Dict[ProcessingStatus, FrozenSet[ProcessingStatus]] = {
    S.IDLE: frozenset({S.UPLOADING}),
    S.UPLOADING: frozenset({S.ANALYZING, S.PROCESSING_DEPTH, S.ERROR}),
    S.ANALYZING: frozenset({S.PROCESSING_DEPTH, S.READY, S.ERROR}),
    S.PROCESSING_DEPTH: frozenset({S.READY, S.ERROR}),
    S.READY: frozenset({S.UPLOADING}),
    S.ERROR: frozenset({S.UPLOADING}),
}

# Stage name -> status reported while that stage runs.
STAGE_STATUS: Dict[str, ProcessingStatus] = {
    "read": S.UPLOADING,
    "analyze": S.ANALYZING,
    "depth": S.PROCESSING_DEPTH,
    "prepare": S.PROCESSING_DEPTH,
}


class StatusMachine:
    """Validates `ProcessingStatus` transitions against a fixed whitelist."""

    def __init__(self, initial: ProcessingStatus = S.IDLE):
        self._status = initial
        self.history: List[ProcessingStatus] = [initial]
        self.logger = LoggerRegistry.get_service_logger("status")

    @property
    def status(self) -> ProcessingStatus:
        return self._status

    def can_transition(self, target: ProcessingStatus) -> bool:
        # Resetting to idle is always accepted.
        if target == S.IDLE:
            return True
        return target in ALLOWED_TRANSITIONS[self._status]

    def transition(self, target: ProcessingStatus) -> ProcessingStatus:
        target = ProcessingStatus(target)
        if not self.can_transition(target):
            self.logger.warning("status.transition.rejected", current=self._status.value, requested=target.value)
            raise InvalidStatusTransitionError(self._status, target)
        if target != self._status:
            self.logger.info("status.transition", current=self._status.value, requested=target.value)
            self._status = target
            self.history.append(target)
        return target

    def for_stage(self, stage: str) -> Optional[ProcessingStatus]:
        return STAGE_STATUS.get(stage)

    def reset(self) -> None:
        self.transition(S.IDLE)
