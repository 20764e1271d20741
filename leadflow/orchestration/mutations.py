"""Stage and owner mutations with optimistic overrides.

Each mutation holds the lead's serializer slot for its whole duration, reads
the lead after acquiring it, checks the transition rules, proposes the
override, calls the gateway and then confirms or rolls back.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from leadflow.core.enums import MutationStatus, Stage
from leadflow.core.exceptions import LeadflowError, NotFoundError
from leadflow.core.logging import LogContext, build_log_event
from leadflow.orchestration.override_store import OverrideStore
from leadflow.orchestration.serializer import LeadMutationSerializer
from leadflow.orchestration.transition_rules import TransitionDecision, TransitionRuleEngine
from leadflow.schemas.leads import LeadRecord
from leadflow.services.lead_gateway import LeadGateway
from leadflow.services.status_catalog import StatusCatalog

logger = logging.getLogger(__name__)


@dataclass
class MutationResult:
    lead_id: int
    status: MutationStatus
    lead: LeadRecord | None = None
    code: str | None = None
    reason: str | None = None
    error: LeadflowError | None = None
    warning: str | None = None

    @property
    def ok(self) -> bool:
        return self.status in (MutationStatus.SUCCEEDED, MutationStatus.NOOP)

    @property
    def retryable(self) -> bool:
        return bool(getattr(self.error, "retryable", False))

    @classmethod
    def blocked(cls, lead: LeadRecord, decision: TransitionDecision) -> "MutationResult":
        return cls(
            lead_id=lead.id,
            status=MutationStatus.BLOCKED,
            lead=lead,
            code=decision.code,
            reason=decision.reason,
        )


class LeadIndex:
    """Latest authoritative record per lead id."""

    def __init__(self) -> None:
        self._leads: dict[int, LeadRecord] = {}

    def replace(self, leads: list[LeadRecord]) -> None:
        self._leads = {lead.id: lead for lead in leads}

    def put(self, lead: LeadRecord) -> None:
        self._leads[lead.id] = lead

    def get(self, lead_id: int) -> LeadRecord | None:
        return self._leads.get(lead_id)

    def values(self) -> list[LeadRecord]:
        return list(self._leads.values())

    def __contains__(self, lead_id: object) -> bool:
        return lead_id in self._leads

    def __len__(self) -> int:
        return len(self._leads)


class LeadMutator:
    def __init__(
        self,
        gateway: LeadGateway,
        catalog: StatusCatalog,
        index: LeadIndex,
        overrides: OverrideStore,
        rules: TransitionRuleEngine | None = None,
        serializer: LeadMutationSerializer | None = None,
        actor_id: int | None = None,
    ) -> None:
        self.gateway = gateway
        self.catalog = catalog
        self.index = index
        self.overrides = overrides
        self.rules = rules or TransitionRuleEngine(catalog)
        self.serializer = serializer or LeadMutationSerializer()
        self.actor_id = actor_id

    def effective_stage(self, lead: LeadRecord) -> Stage:
        """Override if one is pending, else the authoritative stage."""
        proposed = self.overrides.get(lead.id)
        if proposed is not None:
            return self.catalog.resolve(proposed)
        return self.catalog.lead_stage(lead)

    def _missing(self, lead_id: int) -> MutationResult:
        return MutationResult(
            lead_id=lead_id,
            status=MutationStatus.FAILED,
            reason=f"Lead {lead_id} is not on the board.",
            error=NotFoundError(f"Lead {lead_id} is not on the board."),
        )

    def _log(self, level: int, event: str, lead_id: int, actor_id: int | None, **fields) -> None:
        logger.log(
            level,
            event,
            extra=build_log_event(event, LogContext(actor_id=actor_id, lead_id=lead_id), **fields),
        )

    async def change_stage(
        self,
        lead_id: int,
        target: str | Stage,
        actor_id: int | None = None,
    ) -> MutationResult:
        actor_id = actor_id if actor_id is not None else self.actor_id
        async with self.serializer.hold(lead_id):
            lead = self.index.get(lead_id)
            if lead is None:
                return self._missing(lead_id)

            target_stage = self.catalog.resolve(target)
            current = self.effective_stage(lead)
            if current == target_stage:
                return MutationResult(lead_id=lead_id, status=MutationStatus.NOOP, lead=lead)

            decision = self.rules.can_change_stage(lead, target_stage, current)
            if not decision:
                self._log(
                    logging.INFO,
                    "board.stage_change.blocked",
                    lead_id,
                    actor_id,
                    code=decision.code,
                    target=target_stage.value,
                )
                return MutationResult.blocked(lead, decision)

            error = await self._dispatch_stage(lead, current, target_stage, actor_id)
            if error is not None:
                return MutationResult(
                    lead_id=lead_id,
                    status=MutationStatus.FAILED,
                    lead=self.index.get(lead_id),
                    reason=str(error),
                    error=error,
                )
            return MutationResult(lead_id=lead_id, status=MutationStatus.SUCCEEDED, lead=self.index.get(lead_id))

    async def _dispatch_stage(
        self,
        lead: LeadRecord,
        current: Stage,
        target: Stage,
        actor_id: int | None,
    ) -> LeadflowError | None:
        """Propose, send and settle one stage change. Caller holds the lead slot."""
        previous_label = self.overrides.get(lead.id) or self.catalog.label_for(current)
        self.overrides.propose(lead.id, self.catalog.label_for(target))
        try:
            record = await self.gateway.set_lead_stage(lead.id, self.catalog.stage_id(target), actor_id)
        except LeadflowError as exc:
            self.overrides.rollback(lead.id, previous_label)
            self._log(
                logging.WARNING,
                "board.stage_change.rolled_back",
                lead.id,
                actor_id,
                target=target.value,
                restored=previous_label,
                error_type=exc.__class__.__name__,
                error=str(exc),
            )
            return exc

        self.index.put(record)
        self.overrides.confirm(lead.id)
        self._log(logging.INFO, "board.stage_change.confirmed", lead.id, actor_id, target=target.value)
        return None

    async def assign_owner(
        self,
        lead_id: int,
        owner_id: int,
        actor_id: int | None = None,
    ) -> MutationResult:
        """Change the owner; an unowned Pending lead is then advanced to Assigned.

        A failed advance leaves the new owner in place and is reported as a
        warning on an otherwise successful result.
        """
        actor_id = actor_id if actor_id is not None else self.actor_id
        async with self.serializer.hold(lead_id):
            lead = self.index.get(lead_id)
            if lead is None:
                return self._missing(lead_id)

            current = self.effective_stage(lead)
            decision = self.rules.can_change_owner(lead, current)
            if not decision:
                self._log(logging.INFO, "board.owner_change.blocked", lead_id, actor_id, code=decision.code)
                return MutationResult.blocked(lead, decision)
            if lead.owner_id == owner_id:
                return MutationResult(lead_id=lead_id, status=MutationStatus.NOOP, lead=lead)

            had_owner = lead.has_owner
            try:
                record = await self.gateway.set_lead_owner(lead_id, owner_id, actor_id)
            except LeadflowError as exc:
                self._log(
                    logging.WARNING,
                    "board.owner_change.failed",
                    lead_id,
                    actor_id,
                    owner_id=owner_id,
                    error_type=exc.__class__.__name__,
                    error=str(exc),
                )
                return MutationResult(
                    lead_id=lead_id,
                    status=MutationStatus.FAILED,
                    lead=lead,
                    reason=str(exc),
                    error=exc,
                )
            self.index.put(record)
            self._log(logging.INFO, "board.owner_change.confirmed", lead_id, actor_id, owner_id=owner_id)

            warning = None
            if self.rules.requires_auto_advance(current, had_owner):
                target = self.rules.auto_advance_target
                error = await self._dispatch_stage(record, current, target, actor_id)
                if error is not None:
                    warning = f"Owner assigned, but the stage could not be moved to {self.catalog.label_for(target)}: {error}"
                    self._log(
                        logging.WARNING,
                        "board.auto_advance.failed",
                        lead_id,
                        actor_id,
                        error_type=error.__class__.__name__,
                    )

            return MutationResult(
                lead_id=lead_id,
                status=MutationStatus.SUCCEEDED,
                lead=self.index.get(lead_id),
                warning=warning,
            )
