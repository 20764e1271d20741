from __future__ import annotations

import asyncio

import pytest

from leadflow.core.enums import BulkAction, MutationStatus, Stage
from leadflow.core.exceptions import ValidationError
from leadflow.orchestration.board import BoardReconciler
from leadflow.services.bulk_service import BulkMutationCoordinator


def _coordinator(gateway) -> BulkMutationCoordinator:
    board = asyncio.run(BoardReconciler.create(gateway, actor_id=1))
    asyncio.run(board.refresh())
    return BulkMutationCoordinator(board)


def test_reassign_failure_is_isolated_per_lead(flaky_gateway, make_lead, transient_error):
    leads = [make_lead(f"Lead {i}", owner_id=3, stage=Stage.CONTACTED) for i in range(4)]
    coordinator = _coordinator(flaky_gateway)
    broken = leads[2].id
    flaky_gateway.owner_failures[broken] = transient_error

    result = asyncio.run(coordinator.apply([lead.id for lead in leads], BulkAction.REASSIGN, owner_id=8))

    assert result.failed == [broken]
    assert sorted(result.succeeded) == sorted(lead.id for lead in leads if lead.id != broken)
    failed_item = next(item for item in result.items if item.lead_id == broken)
    assert failed_item.retryable is True
    for lead in leads:
        expected_owner = 3 if lead.id == broken else 8
        assert coordinator.board.lead(lead.id).owner_id == expected_owner


def test_reassign_of_pending_leads_auto_advances_each(flaky_gateway, make_lead):
    pending = [make_lead(f"New {i}") for i in range(3)]
    coordinator = _coordinator(flaky_gateway)

    result = asyncio.run(coordinator.apply([lead.id for lead in pending], "reassign", owner_id=5))

    assert result.ok
    assert result.warnings == {}
    for lead in pending:
        assert coordinator.board.effective_stage(lead.id) == Stage.ASSIGNED


def test_auto_advance_failure_is_a_soft_warning(flaky_gateway, make_lead, transient_error):
    first, second = make_lead("First"), make_lead("Second")
    coordinator = _coordinator(flaky_gateway)
    flaky_gateway.stage_failures[second.id] = transient_error

    result = asyncio.run(coordinator.apply([first.id, second.id], BulkAction.REASSIGN, owner_id=5))

    assert sorted(result.succeeded) == sorted([first.id, second.id])
    assert list(result.warnings) == [second.id]
    assert coordinator.board.lead(second.id).owner_id == 5
    assert coordinator.board.effective_stage(second.id) == Stage.PENDING
    assert coordinator.board.effective_stage(first.id) == Stage.ASSIGNED


def test_change_stage_plan_reports_unowned_before_dispatch(flaky_gateway, make_lead):
    owned = make_lead("Owned", owner_id=3, stage=Stage.CONTACTED)
    unowned = make_lead("Unowned")
    coordinator = _coordinator(flaky_gateway)

    plan = coordinator.plan([owned.id, unowned.id, 999], BulkAction.CHANGE_STAGE)

    assert plan.dispatchable == [owned.id]
    assert plan.blocked_unowned == [unowned.id]
    assert plan.unknown == [999]
    assert flaky_gateway.mutation_calls() == []


def test_change_stage_excludes_unowned_leads_from_requests(flaky_gateway, make_lead):
    owned = make_lead("Owned", owner_id=3, stage=Stage.CONTACTED)
    unowned = make_lead("Unowned")
    coordinator = _coordinator(flaky_gateway)

    result = asyncio.run(coordinator.apply([owned.id, unowned.id], BulkAction.CHANGE_STAGE, stage="No contesta"))

    assert result.succeeded == [owned.id]
    assert result.blocked == [unowned.id]
    assert result.plan.blocked_unowned == [unowned.id]
    assert flaky_gateway.mutation_calls() == [("set_lead_stage", owned.id, 10)]
    assert coordinator.board.effective_stage(owned.id) == Stage.NO_ANSWER


def test_reassign_plan_blocks_terminal_leads(flaky_gateway, make_lead):
    won = make_lead("Won", owner_id=3, stage=Stage.WON)
    open_lead = make_lead("Open", owner_id=3, stage=Stage.FOLLOW_UP)
    coordinator = _coordinator(flaky_gateway)

    result = asyncio.run(coordinator.apply([won.id, open_lead.id], BulkAction.REASSIGN, owner_id=4))

    assert result.plan.blocked_terminal == [won.id]
    assert result.blocked == [won.id]
    assert result.succeeded == [open_lead.id]


def test_missing_action_parameters_raise_before_any_request(flaky_gateway, make_lead):
    lead = make_lead(owner_id=3, stage=Stage.CONTACTED)
    coordinator = _coordinator(flaky_gateway)

    with pytest.raises(ValidationError):
        asyncio.run(coordinator.apply([lead.id], BulkAction.REASSIGN))
    with pytest.raises(ValidationError):
        asyncio.run(coordinator.apply([lead.id], BulkAction.CHANGE_STAGE, stage="  "))
    assert flaky_gateway.mutation_calls() == []


def test_unknown_stage_is_rejected_before_any_request(flaky_gateway, make_lead):
    leads = [make_lead(f"Lead {i}", owner_id=3, stage=Stage.CONTACTED) for i in range(2)]
    coordinator = _coordinator(flaky_gateway)

    with pytest.raises(ValidationError) as excinfo:
        asyncio.run(coordinator.apply([lead.id for lead in leads], BulkAction.CHANGE_STAGE, stage="Contactdo"))

    assert excinfo.value.missing_fields == ["stage"]
    assert flaky_gateway.mutation_calls() == []
    assert all(coordinator.board.effective_stage(lead.id) == Stage.CONTACTED for lead in leads)


def test_empty_selection_is_a_successful_noop(flaky_gateway):
    coordinator = _coordinator(flaky_gateway)
    result = asyncio.run(coordinator.apply([], BulkAction.REASSIGN, owner_id=4))
    assert result.ok
    assert result.items == []


def test_duplicate_ids_are_dispatched_once(flaky_gateway, make_lead):
    lead = make_lead(owner_id=3, stage=Stage.CONTACTED)
    coordinator = _coordinator(flaky_gateway)

    result = asyncio.run(coordinator.apply([lead.id, lead.id], BulkAction.CHANGE_STAGE, stage=Stage.FOLLOW_UP))

    assert [item.status for item in result.items] == [MutationStatus.SUCCEEDED]
    assert len(flaky_gateway.mutation_calls()) == 1
