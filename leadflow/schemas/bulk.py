"""Bulk mutation schemas."""

from __future__ import annotations

from pydantic import BaseModel, Field

from leadflow.core.enums import BulkAction, MutationStatus


class BulkPlan(BaseModel):
    """Partition of a selection computed before any request is dispatched."""

    action: BulkAction
    dispatchable: list[int] = Field(default_factory=list)
    blocked_unowned: list[int] = Field(default_factory=list)
    blocked_terminal: list[int] = Field(default_factory=list)
    unknown: list[int] = Field(default_factory=list)

    @property
    def has_blocked(self) -> bool:
        return bool(self.blocked_unowned or self.blocked_terminal or self.unknown)


class BulkItemResult(BaseModel):
    lead_id: int
    status: MutationStatus
    reason: str | None = None
    warning: str | None = None
    retryable: bool = False


class BulkResult(BaseModel):
    action: BulkAction
    plan: BulkPlan
    items: list[BulkItemResult] = Field(default_factory=list)

    @property
    def succeeded(self) -> list[int]:
        return [item.lead_id for item in self.items if item.status == MutationStatus.SUCCEEDED]

    @property
    def failed(self) -> list[int]:
        return [item.lead_id for item in self.items if item.status == MutationStatus.FAILED]

    @property
    def blocked(self) -> list[int]:
        return [item.lead_id for item in self.items if item.status == MutationStatus.BLOCKED]

    @property
    def warnings(self) -> dict[int, str]:
        return {item.lead_id: item.warning for item in self.items if item.warning}

    @property
    def ok(self) -> bool:
        return not self.failed and not self.blocked
