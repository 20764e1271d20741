from __future__ import annotations

import pytest

from leadflow.core.enums import Stage
from leadflow.core.exceptions import PreconditionError
from leadflow.orchestration.transition_rules import (
    NO_OWNER,
    PENDING_RESERVED,
    TERMINAL_STAGE,
    TransitionRuleEngine,
)
from leadflow.schemas.leads import AssignmentRecord, LeadRecord
from leadflow.services.status_catalog import definition_for


def _lead(stage: Stage = Stage.PENDING, owner_id: int | None = None) -> LeadRecord:
    assignments = [AssignmentRecord(lead_id=1, owner_id=owner_id)] if owner_id is not None else []
    return LeadRecord(id=1, stage_label=definition_for(stage).label, assignments=assignments)


@pytest.mark.parametrize("target", list(Stage))
def test_unowned_lead_cannot_change_stage(target):
    decision = TransitionRuleEngine().can_change_stage(_lead(), target)
    assert not decision
    assert decision.code == NO_OWNER
    assert decision.reason


def test_inactive_assignment_does_not_count_as_owner():
    lead = LeadRecord(id=1, assignments=[AssignmentRecord(lead_id=1, owner_id=5, active=False)])
    assert TransitionRuleEngine().can_change_stage(lead, Stage.CONTACTED).code == NO_OWNER


@pytest.mark.parametrize("stage", [Stage.WON, Stage.LOST])
def test_terminal_stage_locks_ownership(stage):
    engine = TransitionRuleEngine()
    assert engine.can_change_owner(_lead(stage, owner_id=3)).code == TERMINAL_STAGE
    assert engine.can_change_owner(_lead(stage)).code == TERMINAL_STAGE


def test_owned_lead_can_be_reassigned_and_moved():
    engine = TransitionRuleEngine()
    lead = _lead(Stage.CONTACTED, owner_id=3)
    assert engine.can_change_owner(lead)
    assert engine.can_change_stage(lead, Stage.FOLLOW_UP)


def test_owned_lead_cannot_go_back_to_pending():
    engine = TransitionRuleEngine()
    assert engine.can_change_stage(_lead(Stage.CONTACTED, owner_id=3), Stage.PENDING).code == PENDING_RESERVED


def test_explicit_current_stage_wins_over_record():
    engine = TransitionRuleEngine()
    lead = _lead(Stage.CONTACTED, owner_id=3)
    assert engine.can_change_owner(lead, current=Stage.WON).code == TERMINAL_STAGE


def test_auto_advance_only_from_unowned_pending():
    engine = TransitionRuleEngine()
    assert engine.requires_auto_advance(Stage.PENDING, had_owner=False)
    assert not engine.requires_auto_advance(Stage.PENDING, had_owner=True)
    assert not engine.requires_auto_advance(Stage.CONTACTED, had_owner=False)
    assert engine.auto_advance_target == Stage.ASSIGNED


def test_raise_if_blocked_raises_precondition_error():
    decision = TransitionRuleEngine().can_change_stage(_lead(), Stage.CONTACTED)
    with pytest.raises(PreconditionError) as excinfo:
        decision.raise_if_blocked()
    assert excinfo.value.code == NO_OWNER
