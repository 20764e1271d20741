"""Bulk reassignment and stage changes over a board selection."""

from __future__ import annotations

import asyncio
import logging

from leadflow.core.enums import BulkAction, MutationStatus, Stage
from leadflow.core.exceptions import ValidationError
from leadflow.core.logging import LogContext, build_log_event
from leadflow.orchestration.board import BoardReconciler
from leadflow.orchestration.mutations import MutationResult
from leadflow.orchestration.transition_rules import NO_OWNER, TERMINAL_STAGE, TransitionDecision
from leadflow.schemas.bulk import BulkItemResult, BulkPlan, BulkResult
from leadflow.services.status_catalog import is_terminal

logger = logging.getLogger(__name__)

UNKNOWN_LEAD_REASON = "Lead is not on the board."


def _unique(lead_ids: list[int]) -> list[int]:
    return list(dict.fromkeys(lead_ids))


class BulkMutationCoordinator:
    """Applies one action to many leads, one independent request per lead.

    Partial success is a normal outcome: every lead gets its own result.
    """

    def __init__(self, board: BoardReconciler) -> None:
        self.board = board

    def plan(self, lead_ids: list[int], action: BulkAction | str) -> BulkPlan:
        """Partition a selection before anything is dispatched."""
        action = BulkAction(action)
        plan = BulkPlan(action=action)
        for lead_id in _unique(lead_ids):
            lead = self.board.lead(lead_id)
            if lead is None:
                plan.unknown.append(lead_id)
            elif action == BulkAction.CHANGE_STAGE and not lead.has_owner:
                plan.blocked_unowned.append(lead_id)
            elif action == BulkAction.REASSIGN and is_terminal(self.board.effective_stage(lead)):
                plan.blocked_terminal.append(lead_id)
            else:
                plan.dispatchable.append(lead_id)
        return plan

    async def apply(
        self,
        lead_ids: list[int],
        action: BulkAction | str,
        owner_id: int | None = None,
        stage: str | Stage | None = None,
        actor_id: int | None = None,
    ) -> BulkResult:
        action = BulkAction(action)
        if action == BulkAction.REASSIGN and owner_id is None:
            raise ValidationError("Choose an owner for the selected leads.", missing_fields=["owner_id"])
        if action == BulkAction.CHANGE_STAGE and (stage is None or (isinstance(stage, str) and not stage.strip())):
            raise ValidationError("Choose a stage for the selected leads.", missing_fields=["stage"])
        if action == BulkAction.CHANGE_STAGE and not self.board.catalog.is_known(stage):
            raise ValidationError(f"Unknown stage '{stage}'.", missing_fields=["stage"])

        plan = self.plan(lead_ids, action)
        result = BulkResult(action=action, plan=plan)
        if not lead_ids:
            return result

        result.items.extend(self._blocked_items(plan))
        if plan.blocked_unowned:
            logger.info(
                "bulk.blocked_unowned",
                extra=build_log_event(
                    "bulk.blocked_unowned",
                    LogContext(actor_id=actor_id),
                    lead_ids=plan.blocked_unowned,
                ),
            )

        if action == BulkAction.REASSIGN:
            calls = [self.board.assign_owner(lead_id, owner_id, actor_id=actor_id) for lead_id in plan.dispatchable]
        else:
            calls = [self.board.change_stage(lead_id, stage, actor_id=actor_id) for lead_id in plan.dispatchable]
        outcomes = await asyncio.gather(*calls, return_exceptions=True)

        for lead_id, outcome in zip(plan.dispatchable, outcomes):
            result.items.append(self._item(lead_id, outcome, actor_id))

        logger.info(
            "bulk.apply.completed",
            extra=build_log_event(
                "bulk.apply.completed",
                LogContext(actor_id=actor_id),
                action=action.value,
                requested=len(_unique(lead_ids)),
                succeeded=len(result.succeeded),
                failed=len(result.failed),
                blocked=len(result.blocked),
                warnings=len(result.warnings),
            ),
        )
        return result

    def _blocked_items(self, plan: BulkPlan) -> list[BulkItemResult]:
        items = [
            BulkItemResult(lead_id=lead_id, status=MutationStatus.BLOCKED, reason=TransitionDecision.block(NO_OWNER).reason)
            for lead_id in plan.blocked_unowned
        ]
        items.extend(
            BulkItemResult(
                lead_id=lead_id,
                status=MutationStatus.BLOCKED,
                reason=TransitionDecision.block(TERMINAL_STAGE).reason,
            )
            for lead_id in plan.blocked_terminal
        )
        items.extend(
            BulkItemResult(lead_id=lead_id, status=MutationStatus.FAILED, reason=UNKNOWN_LEAD_REASON)
            for lead_id in plan.unknown
        )
        return items

    def _item(self, lead_id: int, outcome: MutationResult | BaseException, actor_id: int | None) -> BulkItemResult:
        if isinstance(outcome, BaseException):
            if not isinstance(outcome, Exception):
                raise outcome
            logger.error(
                "bulk.item.crashed",
                exc_info=outcome,
                extra=build_log_event(
                    "bulk.item.crashed",
                    LogContext(actor_id=actor_id, lead_id=lead_id),
                    error_type=outcome.__class__.__name__,
                ),
            )
            return BulkItemResult(lead_id=lead_id, status=MutationStatus.FAILED, reason=str(outcome))
        return BulkItemResult(
            lead_id=lead_id,
            status=outcome.status,
            reason=outcome.reason,
            warning=outcome.warning,
            retryable=outcome.retryable,
        )
