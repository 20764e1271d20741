"""Status transition tables for import uploads and jobs."""

from __future__ import annotations

from leadflow.core.enums import ImportJobStatus, UploadStatus
from leadflow.core.exceptions import InvalidTransitionError


class StateMachine:
    """Whitelist of allowed `current -> target` status changes."""

    def __init__(self, transitions: dict[str, set[str]]) -> None:
        self._transitions = transitions

    def can_transition(self, current: str, target: str) -> bool:
        return target in self._transitions.get(current, set())

    def assert_transition(self, current: str, target: str) -> None:
        if not self.can_transition(current=current, target=target):
            raise InvalidTransitionError(f"Transition not allowed: {current} -> {target}")


UPLOAD_STATE_MACHINE = StateMachine(
    {
        UploadStatus.UPLOADED.value: {UploadStatus.PREVIEWED.value, UploadStatus.CANCELLED.value},
        UploadStatus.PREVIEWED.value: {UploadStatus.CONFIRMED.value, UploadStatus.CANCELLED.value},
    }
)

IMPORT_JOB_STATE_MACHINE = StateMachine(
    {
        ImportJobStatus.PENDING.value: {ImportJobStatus.PROCESSING.value, ImportJobStatus.FAILED.value},
        ImportJobStatus.PROCESSING.value: {ImportJobStatus.COMPLETED.value, ImportJobStatus.FAILED.value},
    }
)
