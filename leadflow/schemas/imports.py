"""Import pipeline schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from leadflow.core.enums import ImportJobStatus
from leadflow.utils.validators import (
    is_valid_document_id,
    is_valid_email,
    is_valid_phone,
    sanitize_text,
)


class ImportPreview(BaseModel):
    import_id: str
    filename: str | None = None
    headers: list[str]
    sample_rows: list[dict[str, str]] = Field(default_factory=list)
    suggested_mapping: dict[str, str] = Field(default_factory=dict)
    total_rows: int = 0


class ImportRowError(BaseModel):
    row: int
    issues: list[str]


class ImportJobSnapshot(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    job_id: str
    import_id: str
    campaign_id: int
    status: ImportJobStatus
    total: int = 0
    processed: int = 0
    created: int = 0
    failed: int = 0
    errors: list[ImportRowError] = Field(default_factory=list)
    actor_label: str | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def progress_percent(self) -> int:
        if not self.total:
            return 0
        return min(100, round(self.processed / self.total * 100))


class ConfirmImportRequest(BaseModel):
    import_id: str = Field(min_length=1)
    mapping: dict[str, str]
    campaign_id: int = Field(gt=0)
    actor_label: str | None = Field(default=None, max_length=120)


def _blank_to_none(value):
    if value is None:
        return None
    cleaned = sanitize_text(value)
    return cleaned or None


class LeadImportRow(BaseModel):
    """One spreadsheet row after column mapping."""

    first_name: str = Field(min_length=1, max_length=255)
    phone: str = Field(min_length=1, max_length=40)
    last_name: str | None = Field(default=None, max_length=255)
    email: str | None = Field(default=None, max_length=320)
    document_id: str | None = Field(default=None, max_length=20)
    city: str | None = Field(default=None, max_length=120)
    occupation: str | None = Field(default=None, max_length=120)
    notes: str | None = Field(default=None, max_length=4000)

    @field_validator("*", mode="before")
    @classmethod
    def _clean(cls, value):
        return _blank_to_none(value)

    @field_validator("phone")
    @classmethod
    def _check_phone(cls, value: str) -> str:
        if not is_valid_phone(value):
            raise ValueError("invalid phone format")
        return value

    @field_validator("email")
    @classmethod
    def _check_email(cls, value: str | None) -> str | None:
        if value is not None and not is_valid_email(value):
            raise ValueError("invalid email format")
        return value

    @field_validator("document_id")
    @classmethod
    def _check_document_id(cls, value: str | None) -> str | None:
        if value is not None and not is_valid_document_id(value):
            raise ValueError("document id must have 8 digits")
        return value
