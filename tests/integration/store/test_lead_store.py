from __future__ import annotations

import pytest

from leadflow.core.enums import Stage
from leadflow.core.exceptions import ConflictError, NotFoundError, PreconditionError, ValidationError
from leadflow.schemas.leads import LeadCreateRequest, LeadFilters
from leadflow.services.lead_service import LeadService
from leadflow.services.status_catalog import definition_for


def test_seed_is_idempotent(db_session):
    service = LeadService(db=db_session)
    assert service.seed_stage_catalog() == 0
    labels = [entry.label for entry in service.list_stages()]
    assert labels[0] == "Pending"
    assert labels[-1] == "Uncategorized"
    assert len(labels) == 15


def test_new_lead_starts_pending_without_owner(db_session):
    lead = LeadService(db=db_session).create_lead(LeadCreateRequest(first_name="Ana", phone="987654321"))
    assert lead.stage_label == "Pending"
    assert lead.stage_id == 1
    assert lead.owner_id is None
    assert lead.created_at is not None


def test_reassignment_keeps_history_with_one_active_assignment(db_session, make_lead):
    lead = make_lead(owner_id=10)
    service = LeadService(db=db_session)

    updated = service.set_owner(lead.id, 11, actor_id=2)

    assert updated.owner_id == 11
    assert [(a.owner_id, a.active) for a in updated.assignments] == [(10, False), (11, True)]
    assert updated.assignments[1].actor_id == 2


def test_same_owner_is_a_noop(db_session, make_lead):
    lead = make_lead(owner_id=10)
    updated = LeadService(db=db_session).set_owner(lead.id, 10, actor_id=2)
    assert len(updated.assignments) == 1


def test_terminal_lead_rejects_owner_change(db_session, make_lead):
    lead = make_lead(owner_id=10, stage=Stage.WON)
    with pytest.raises(ConflictError):
        LeadService(db=db_session).set_owner(lead.id, 11, actor_id=2)


def test_unowned_lead_rejects_stage_change(db_session, make_lead):
    lead = make_lead()
    with pytest.raises(PreconditionError) as excinfo:
        LeadService(db=db_session).set_stage(lead.id, definition_for(Stage.CONTACTED).catalog_id, actor_id=1)
    assert excinfo.value.code == "no_owner"


def test_unknown_stage_and_lead(db_session, make_lead):
    service = LeadService(db=db_session)
    lead = make_lead(owner_id=3)
    with pytest.raises(ValidationError):
        service.set_stage(lead.id, 999, actor_id=1)
    with pytest.raises(NotFoundError):
        service.set_owner(12345, 3, actor_id=1)


def test_list_leads_filters(db_session, make_lead, campaign_id):
    owned = make_lead("Owned", owner_id=4, campaign_id=campaign_id)
    free = make_lead("Free", campaign_id=campaign_id)
    make_lead("Elsewhere")
    service = LeadService(db=db_session)

    assert {lead.id for lead in service.list_leads(LeadFilters(campaign_id=campaign_id))} == {owned.id, free.id}
    assert [lead.id for lead in service.list_leads(LeadFilters(owner_id=4))] == [owned.id]
    assert [lead.id for lead in service.list_leads(LeadFilters(campaign_id=campaign_id, only_unassigned=True))] == [
        free.id
    ]
    assert [lead.first_name for lead in service.list_leads(LeadFilters(search="free"))] == ["Free"]
