from __future__ import annotations

from leadflow.orchestration.override_store import OverrideStore
from leadflow.schemas.leads import LeadRecord
from leadflow.services.status_catalog import StatusCatalog


def test_propose_confirm_rollback():
    store = OverrideStore()
    store.propose(1, "Contacted")
    assert store.get(1) == "Contacted"
    assert 1 in store

    store.rollback(1, "Assigned")
    assert store.get(1) == "Assigned"

    assert store.confirm(1) == "Assigned"
    assert store.get(1) is None
    assert store.confirm(1) is None
    assert len(store) == 0


def test_reconcile_retires_matching_and_missing_leads():
    store = OverrideStore()
    store.propose(1, "Contactado")
    store.propose(2, "Won")
    store.propose(3, "Follow Up")
    leads = [
        LeadRecord(id=1, stage_label="Contacted"),
        LeadRecord(id=2, stage_label="Assigned"),
    ]

    retired = store.reconcile(leads, StatusCatalog.fallback())

    assert sorted(retired) == [1, 3]
    assert store.snapshot() == {2: "Won"}


def test_reconcile_leaves_no_override_equal_to_authoritative_stage():
    store = OverrideStore()
    catalog = StatusCatalog.fallback()
    leads = [LeadRecord(id=i, stage_label=label) for i, label in enumerate(["Pending", "Lost", "No contesta"], start=1)]
    for lead in leads:
        store.propose(lead.id, lead.stage_label.upper())
    store.propose(99, "Assigned")

    store.reconcile(leads, catalog)

    for lead in leads:
        proposed = store.get(lead.id)
        assert proposed is None or catalog.resolve(proposed) != catalog.lead_stage(lead)
    assert len(store) == 0
