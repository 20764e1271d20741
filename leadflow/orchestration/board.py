"""Board state: authoritative leads merged with optimistic overrides."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from leadflow.core.enums import MutationStatus, Stage
from leadflow.core.logging import LogContext, build_log_event
from leadflow.orchestration.mutations import LeadIndex, LeadMutator, MutationResult
from leadflow.orchestration.override_store import OverrideStore
from leadflow.orchestration.serializer import LeadMutationSerializer
from leadflow.orchestration.transition_rules import TransitionRuleEngine
from leadflow.schemas.leads import LeadFilters, LeadRecord
from leadflow.services.lead_gateway import LeadGateway
from leadflow.services.status_catalog import StatusCatalog, load_catalog

logger = logging.getLogger(__name__)

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def _created_key(lead: LeadRecord) -> tuple[datetime, int]:
    created = lead.created_at or _OLDEST
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    return created, lead.id


@dataclass
class BoardColumn:
    stage: Stage
    label: str
    leads: list[LeadRecord] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.leads)

    @property
    def lead_ids(self) -> list[int]:
        return [lead.id for lead in self.leads]


class BoardReconciler:
    """Groups leads into stage columns and routes board gestures.

    A lead's column is its pending override when one exists, otherwise its
    authoritative stage. Every refresh retires overrides the store has
    caught up with.
    """

    def __init__(
        self,
        gateway: LeadGateway,
        catalog: StatusCatalog | None = None,
        rules: TransitionRuleEngine | None = None,
        overrides: OverrideStore | None = None,
        serializer: LeadMutationSerializer | None = None,
        actor_id: int | None = None,
    ) -> None:
        self.gateway = gateway
        self.catalog = catalog or StatusCatalog.fallback()
        self.rules = rules or TransitionRuleEngine(self.catalog)
        self.overrides = overrides or OverrideStore()
        self.index = LeadIndex()
        self.mutator = LeadMutator(
            gateway,
            self.catalog,
            self.index,
            self.overrides,
            rules=self.rules,
            serializer=serializer,
            actor_id=actor_id,
        )

    @classmethod
    async def create(cls, gateway: LeadGateway, actor_id: int | None = None) -> "BoardReconciler":
        """Build a board with the store's catalog, or the built-in one if unreachable."""
        catalog = await load_catalog(gateway)
        return cls(gateway, catalog=catalog, actor_id=actor_id)

    async def refresh(self, filters: LeadFilters | None = None) -> list[BoardColumn]:
        leads = await self.gateway.fetch_leads(filters)
        self.apply_refresh(leads)
        return self.columns()

    def apply_refresh(self, leads: list[LeadRecord]) -> list[int]:
        self.index.replace(leads)
        retired = self.overrides.reconcile(leads, self.catalog)
        if retired:
            logger.info(
                "board.overrides.retired",
                extra=build_log_event(
                    "board.overrides.retired",
                    LogContext(),
                    lead_ids=retired,
                    remaining=len(self.overrides),
                ),
            )
        return retired

    def lead(self, lead_id: int) -> LeadRecord | None:
        return self.index.get(lead_id)

    def effective_stage(self, lead: LeadRecord | int) -> Stage:
        if isinstance(lead, int):
            record = self.index.get(lead)
            if record is None:
                raise KeyError(lead)
            lead = record
        return self.mutator.effective_stage(lead)

    def columns(self) -> list[BoardColumn]:
        """One column per stage in board order; newest leads first."""
        columns = {stage: BoardColumn(stage=stage, label=self.catalog.label_for(stage)) for stage in self.catalog.stages}
        for lead in self.index.values():
            columns[self.effective_stage(lead)].leads.append(lead)
        for column in columns.values():
            column.leads.sort(key=_created_key, reverse=True)
        return list(columns.values())

    def column_of(self, lead_id: int) -> Stage | None:
        lead = self.index.get(lead_id)
        return self.effective_stage(lead) if lead is not None else None

    async def drop(self, lead_id: int, target: str | Stage | None) -> MutationResult:
        """Handle a card dropped on a column.

        `target` is None when the card was released outside any column. A
        target that names no column is treated the same way.
        """
        if target is None or not self.catalog.is_known(target):
            return MutationResult(lead_id=lead_id, status=MutationStatus.NOOP, lead=self.index.get(lead_id))
        return await self.mutator.change_stage(lead_id, target)

    async def change_stage(
        self,
        lead_id: int,
        target: str | Stage,
        actor_id: int | None = None,
    ) -> MutationResult:
        return await self.mutator.change_stage(lead_id, target, actor_id=actor_id)

    async def assign_owner(
        self,
        lead_id: int,
        owner_id: int,
        actor_id: int | None = None,
    ) -> MutationResult:
        return await self.mutator.assign_owner(lead_id, owner_id, actor_id=actor_id)
