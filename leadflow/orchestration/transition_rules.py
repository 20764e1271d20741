"""Ownership and stage transition rules.

Rules, highest priority first:

1. A lead in a terminal stage (Won, Lost) cannot change owner.
2. A lead without an active assignment cannot change stage manually.
3. Assigning an owner to an unowned lead in Pending auto-advances it to
   Assigned; that step is issued by the mutation layer, not by callers.
4. An owned, non-terminal lead may be reassigned; reassignment alone does
   not change its stage.

All checks are synchronous and run before any request is dispatched.
"""

from __future__ import annotations

from dataclasses import dataclass

from leadflow.core.enums import Stage
from leadflow.core.exceptions import PreconditionError
from leadflow.schemas.leads import LeadRecord
from leadflow.services.status_catalog import (
    ASSIGNED_STAGE,
    INITIAL_STAGE,
    StatusCatalog,
    is_terminal,
)

NO_OWNER = "no_owner"
TERMINAL_STAGE = "terminal_stage"
PENDING_RESERVED = "pending_reserved"

_REASONS = {
    NO_OWNER: "Assign an owner before changing the stage.",
    TERMINAL_STAGE: "Leads in a closed stage (Won or Lost) cannot be reassigned.",
    PENDING_RESERVED: "Owned leads cannot be moved back to Pending.",
}


@dataclass(frozen=True)
class TransitionDecision:
    allowed: bool
    code: str | None = None
    reason: str | None = None

    @classmethod
    def allow(cls) -> "TransitionDecision":
        return cls(allowed=True)

    @classmethod
    def block(cls, code: str) -> "TransitionDecision":
        return cls(allowed=False, code=code, reason=_REASONS[code])

    def __bool__(self) -> bool:
        return self.allowed

    def raise_if_blocked(self) -> None:
        if not self.allowed:
            raise PreconditionError(self.reason or "Transition blocked.", code=self.code)


class TransitionRuleEngine:
    def __init__(self, catalog: StatusCatalog | None = None) -> None:
        self.catalog = catalog or StatusCatalog.fallback()

    def _current(self, lead: LeadRecord, current: Stage | None) -> Stage:
        return current if current is not None else self.catalog.lead_stage(lead)

    def can_change_owner(self, lead: LeadRecord, current: Stage | None = None) -> TransitionDecision:
        if is_terminal(self._current(lead, current)):
            return TransitionDecision.block(TERMINAL_STAGE)
        return TransitionDecision.allow()

    def can_change_stage(
        self,
        lead: LeadRecord,
        target: Stage,
        current: Stage | None = None,
    ) -> TransitionDecision:
        if not lead.has_owner:
            return TransitionDecision.block(NO_OWNER)
        if target == INITIAL_STAGE and self._current(lead, current) != INITIAL_STAGE:
            return TransitionDecision.block(PENDING_RESERVED)
        return TransitionDecision.allow()

    def requires_auto_advance(self, previous_stage: Stage, had_owner: bool) -> bool:
        """True when an ownership change must be followed by a move to Assigned."""
        return previous_stage == INITIAL_STAGE and not had_owner

    @property
    def auto_advance_target(self) -> Stage:
        return ASSIGNED_STAGE
