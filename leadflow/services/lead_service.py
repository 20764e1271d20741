"""Authoritative lead store backed by SQLAlchemy.

Implements the store side of the lead contract: reads, ownership and stage
changes with the server-side guards, and the stage catalog.
"""

from __future__ import annotations

import logging

from sqlalchemy import exists, or_, select

from leadflow.core.enums import Stage
from leadflow.core.exceptions import (
    ConfigurationError,
    ConflictError,
    NotFoundError,
    PreconditionError,
    ValidationError,
)
from leadflow.core.logging import LogContext, build_log_event
from leadflow.models.campaign import Campaign
from leadflow.models.lead import Lead, LeadAssignment
from leadflow.models.stage import LeadStage
from leadflow.schemas.leads import LeadCreateRequest, LeadFilters, LeadRecord, StageCatalogEntry
from leadflow.services.base_service import BaseService
from leadflow.services.status_catalog import (
    INITIAL_STAGE,
    STAGE_DEFINITIONS,
    definition_for,
    is_terminal,
    resolve,
)

logger = logging.getLogger(__name__)


class LeadService(BaseService):
    """Service for lead reads, ownership and stage transitions."""

    def seed_stage_catalog(self) -> int:
        existing = set(self.db.scalars(select(LeadStage.id)))
        added = 0
        for position, definition in enumerate(STAGE_DEFINITIONS):
            if definition.catalog_id in existing:
                continue
            self.db.add(LeadStage(id=definition.catalog_id, label=definition.label, position=position))
            added += 1
        if added:
            self.commit()
        return added

    def list_stages(self) -> list[StageCatalogEntry]:
        rows = self.db.scalars(select(LeadStage).order_by(LeadStage.position, LeadStage.id))
        return [StageCatalogEntry.model_validate(row) for row in rows]

    def stage_row(self, stage: Stage) -> LeadStage:
        """Catalog row for a canonical stage; missing rows are a catalog failure."""
        row = self.db.get(LeadStage, definition_for(stage).catalog_id)
        if row is None:
            for candidate in self.db.scalars(select(LeadStage)):
                if resolve(candidate.label) == stage:
                    return candidate
            raise ConfigurationError(f"Stage catalog has no entry for '{stage.value}'.")
        return row

    def create_campaign(self, name: str) -> Campaign:
        campaign = Campaign(name=name)
        self.db.add(campaign)
        self.commit()
        return campaign

    def get_campaign(self, campaign_id: int) -> Campaign | None:
        return self.db.get(Campaign, campaign_id)

    def get_lead(self, lead_id: int) -> Lead | None:
        return self.db.get(Lead, lead_id)

    def _require_lead(self, lead_id: int) -> Lead:
        lead = self.get_lead(lead_id)
        if lead is None:
            raise NotFoundError(f"Lead {lead_id} not found.")
        return lead

    def get_record(self, lead_id: int) -> LeadRecord:
        return self._to_record(self._require_lead(lead_id))

    def list_leads(self, filters: LeadFilters | None = None) -> list[LeadRecord]:
        filters = filters or LeadFilters()
        query = select(Lead)
        active_assignment = exists().where(
            LeadAssignment.lead_id == Lead.id,
            LeadAssignment.active.is_(True),
        )
        if filters.campaign_id is not None:
            query = query.where(Lead.campaign_id == filters.campaign_id)
        if filters.owner_id is not None:
            query = query.where(
                exists().where(
                    LeadAssignment.lead_id == Lead.id,
                    LeadAssignment.active.is_(True),
                    LeadAssignment.owner_id == filters.owner_id,
                )
            )
        if filters.only_unassigned:
            query = query.where(~active_assignment)
        if filters.search:
            pattern = f"%{filters.search.strip()}%"
            query = query.where(
                or_(
                    Lead.first_name.ilike(pattern),
                    Lead.last_name.ilike(pattern),
                    Lead.phone.ilike(pattern),
                    Lead.email.ilike(pattern),
                    Lead.document_id.ilike(pattern),
                )
            )
        query = query.order_by(Lead.created_at.desc(), Lead.id.desc()).limit(filters.limit).offset(filters.offset)
        return [self._to_record(lead) for lead in self.db.scalars(query).unique()]

    def create_lead(self, data: LeadCreateRequest, stage: Stage = INITIAL_STAGE, commit: bool = True) -> LeadRecord:
        stage_row = self.stage_row(stage)
        lead = Lead(**data.model_dump(), stage=stage_row)
        self.db.add(lead)
        if commit:
            self.commit()
        else:
            self.db.flush()
        return self._to_record(lead)

    def set_owner(self, lead_id: int, owner_id: int, actor_id: int | None) -> LeadRecord:
        lead = self._require_lead(lead_id)
        if is_terminal(self._stage_of(lead)):
            raise ConflictError(f"Lead {lead_id} is in a closed stage and cannot be reassigned.")

        current = lead.active_assignment
        if current is not None and current.owner_id == owner_id:
            return self._to_record(lead)
        if current is not None:
            current.active = False
        lead.assignments.append(LeadAssignment(owner_id=owner_id, actor_id=actor_id, active=True))
        self.commit()
        logger.info(
            "store.lead.owner_set",
            extra=build_log_event(
                "store.lead.owner_set",
                LogContext(actor_id=actor_id, lead_id=lead_id),
                owner_id=owner_id,
                previous_owner_id=current.owner_id if current is not None else None,
            ),
        )
        return self._to_record(lead)

    def set_stage(self, lead_id: int, stage_id: int, actor_id: int | None) -> LeadRecord:
        lead = self._require_lead(lead_id)
        stage_row = self.db.get(LeadStage, stage_id)
        if stage_row is None:
            raise ValidationError(f"Unknown stage id {stage_id}.")
        if lead.active_assignment is None:
            raise PreconditionError(f"Lead {lead_id} has no owner.", code="no_owner")
        lead.stage_id = stage_row.id
        lead.stage = stage_row
        self.commit()
        logger.info(
            "store.lead.stage_set",
            extra=build_log_event(
                "store.lead.stage_set",
                LogContext(actor_id=actor_id, lead_id=lead_id),
                stage_id=stage_id,
            ),
        )
        return self._to_record(lead)

    def _stage_of(self, lead: Lead) -> Stage:
        return resolve(lead.stage_label) if lead.stage_label else INITIAL_STAGE

    @staticmethod
    def _to_record(lead: Lead) -> LeadRecord:
        return LeadRecord.model_validate(lead)
