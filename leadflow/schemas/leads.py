"""Lead request/response schemas for the store contract."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, model_validator


class StageCatalogEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int = Field(gt=0)
    label: str = Field(min_length=1, max_length=120)


class AssignmentRecord(BaseModel):
    """Ownership link between a lead and an agent; inactive rows are history."""

    model_config = ConfigDict(from_attributes=True)

    id: int | None = None
    lead_id: int
    owner_id: int
    actor_id: int | None = None
    assigned_at: datetime | None = None
    active: bool = True


class LeadRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None
    email: str | None = None
    document_id: str | None = None
    city: str | None = None
    occupation: str | None = None
    notes: str | None = None
    origin: str | None = None
    campaign_id: int | None = None
    stage_id: int | None = None
    stage_label: str | None = None
    created_at: datetime | None = None
    assignments: list[AssignmentRecord] = Field(default_factory=list)

    @model_validator(mode="after")
    def _single_active_assignment(self) -> "LeadRecord":
        active = [assignment for assignment in self.assignments if assignment.active]
        if len(active) > 1:
            raise ValueError(f"lead {self.id} has {len(active)} active assignments")
        return self

    @property
    def active_assignment(self) -> AssignmentRecord | None:
        return next((assignment for assignment in self.assignments if assignment.active), None)

    @property
    def owner_id(self) -> int | None:
        assignment = self.active_assignment
        return assignment.owner_id if assignment else None

    @property
    def has_owner(self) -> bool:
        return self.active_assignment is not None

    @property
    def display_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part) or f"Lead {self.id}"


class LeadCreateRequest(BaseModel):
    first_name: str = Field(min_length=1, max_length=255)
    last_name: str | None = Field(default=None, max_length=255)
    phone: str | None = Field(default=None, max_length=40)
    email: str | None = Field(default=None, max_length=320)
    document_id: str | None = Field(default=None, max_length=20)
    city: str | None = Field(default=None, max_length=120)
    occupation: str | None = Field(default=None, max_length=120)
    notes: str | None = Field(default=None, max_length=4000)
    origin: str | None = Field(default=None, max_length=60)
    campaign_id: int | None = None


class LeadFilters(BaseModel):
    campaign_id: int | None = None
    owner_id: int | None = None
    only_unassigned: bool = False
    search: str | None = None
    limit: int = Field(default=200, ge=1, le=1000)
    offset: int = Field(default=0, ge=0)
