from __future__ import annotations

import pytest

from leadflow.core.exceptions import InvalidTransitionError
from leadflow.orchestration.state_machine import (
    IMPORT_JOB_STATE_MACHINE,
    UPLOAD_STATE_MACHINE,
    StateMachine,
)


def test_state_machine_allows_valid_transition():
    sm = StateMachine({"pending": {"processing"}, "processing": {"completed"}})
    assert sm.can_transition("pending", "processing") is True
    sm.assert_transition("pending", "processing")


def test_state_machine_rejects_invalid_transition():
    sm = StateMachine({"pending": {"processing"}})
    with pytest.raises(InvalidTransitionError):
        sm.assert_transition("pending", "completed")


def test_import_job_lifecycle():
    assert IMPORT_JOB_STATE_MACHINE.can_transition("pending", "processing")
    assert IMPORT_JOB_STATE_MACHINE.can_transition("pending", "failed")
    assert IMPORT_JOB_STATE_MACHINE.can_transition("processing", "completed")
    assert not IMPORT_JOB_STATE_MACHINE.can_transition("pending", "completed")
    assert not IMPORT_JOB_STATE_MACHINE.can_transition("completed", "processing")
    assert not IMPORT_JOB_STATE_MACHINE.can_transition("failed", "processing")


def test_upload_cannot_be_confirmed_twice():
    assert UPLOAD_STATE_MACHINE.can_transition("previewed", "confirmed")
    assert not UPLOAD_STATE_MACHINE.can_transition("confirmed", "confirmed")
    assert not UPLOAD_STATE_MACHINE.can_transition("cancelled", "confirmed")
