import pytest

from scenedepth.core.exceptions import InvalidStatusTransitionError
from scenedepth.core.schemas.enums import ProcessingStatus as S
from scenedepth.services.status import StatusMachine


def _machine(*path: S) -> StatusMachine:
    machine = StatusMachine()
    for status in path:
        machine.transition(status)
    return machine


def test_happy_path():
    machine = _machine(S.UPLOADING, S.ANALYZING, S.PROCESSING_DEPTH, S.READY)

    assert machine.status == S.READY
    assert machine.history == [S.IDLE, S.UPLOADING, S.ANALYZING, S.PROCESSING_DEPTH, S.READY]


def test_ready_can_start_a_new_upload():
    machine = _machine(S.UPLOADING, S.PROCESSING_DEPTH, S.READY)

    assert machine.transition(S.UPLOADING) == S.UPLOADING


@pytest.mark.parametrize(
    "path,target",
    [
        ((S.UPLOADING, S.ERROR), S.READY),
        ((), S.READY),
        ((S.UPLOADING, S.ANALYZING), S.UPLOADING),
        ((S.UPLOADING, S.PROCESSING_DEPTH), S.ANALYZING),
        ((S.UPLOADING,), S.UPLOADING),
        ((S.UPLOADING, S.ANALYZING), S.ANALYZING),
    ],
)
def test_rejected_transitions(path, target):
    """Transitions outside the whitelist raise and leave the status unchanged."""
    machine = _machine(*path)
    before = machine.status

    with pytest.raises(InvalidStatusTransitionError):
        machine.transition(target)

    assert machine.status == before


@pytest.mark.parametrize("status", [S.UPLOADING, S.ANALYZING, S.PROCESSING_DEPTH, S.READY, S.ERROR])
def test_reset_to_idle_is_always_accepted(status):
    machine = StatusMachine(initial=status)

    machine.reset()

    assert machine.status == S.IDLE


def test_stage_status_mapping():
    machine = StatusMachine()

    assert machine.for_stage("read") == S.UPLOADING
    assert machine.for_stage("analyze") == S.ANALYZING
    assert machine.for_stage("depth") == S.PROCESSING_DEPTH
    assert machine.for_stage("prepare") == S.PROCESSING_DEPTH
    assert machine.for_stage("complete") is None
