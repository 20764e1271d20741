"""Enums for the leadflow application."""

from __future__ import annotations

import enum


class Stage(str, enum.Enum):
    """Canonical pipeline stages, in board column order."""

    PENDING = "pending"
    ASSIGNED = "assigned"
    CONTACTED = "contacted"
    IN_PROGRESS = "in_progress"
    CALL_BACK = "call_back"
    APPOINTMENT_PENDING = "appointment_pending"
    APPOINTMENT_DONE = "appointment_done"
    NO_ANSWER = "no_answer"
    FOLLOW_UP = "follow_up"
    WON = "won"
    OTHER_PRODUCT = "other_product"
    LOST = "lost"
    NOT_INTERESTED = "not_interested"
    DISQUALIFIED = "disqualified"
    UNCATEGORIZED = "uncategorized"


class ImportJobStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ImportJobStatus.COMPLETED, ImportJobStatus.FAILED)


class UploadStatus(str, enum.Enum):
    UPLOADED = "uploaded"
    PREVIEWED = "previewed"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class BulkAction(str, enum.Enum):
    REASSIGN = "reassign"
    CHANGE_STAGE = "change_stage"


class MutationStatus(str, enum.Enum):
    """Outcome of a single dispatched (or skipped) lead mutation."""

    SUCCEEDED = "succeeded"
    NOOP = "noop"
    BLOCKED = "blocked"
    FAILED = "failed"
