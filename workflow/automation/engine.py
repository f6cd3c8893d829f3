"""Automation engine: status changes drive workflow runs drive status changes.

When an issue enters a status, enabled automations for that status run in
priority order. Each run's outcome (success iff the workflow completed)
selects the first matching transition; the first automation whose run
matches a transition applies it and ends the iteration. An applied status
that differs from the entered one is fed back in at depth + 1, and the
chain halts once MAX_TRANSITION_DEPTH is reached.

The chain is depth-first and sequential within the triggering call.
Workflow failures are outcomes, never exceptions, at this level.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ..engine.errors import AutomationError, WorkflowError
from ..engine.executor import GraphEngine
from ..engine.state import ExecutionStatus
from ..settings import MAX_TRANSITION_DEPTH
from .expressions import evaluate_expression
from .models import (
    Automation,
    AutomationRun,
    AutomationStore,
    ChainReport,
    Issue,
    IssueStore,
    RunOutcome,
    StatusPusher,
    Transition,
    TransitionCondition,
    TriggerType,
)

logger = logging.getLogger(__name__)


def select_transition(
    transitions: List[Transition],
    outcome: RunOutcome,
    context: Optional[Dict[str, Any]] = None,
) -> Optional[Transition]:
    """First transition, by ascending priority, whose condition matches."""
    for transition in sorted(transitions, key=lambda t: t.priority):
        condition = transition.condition
        if condition is TransitionCondition.SUCCESS and outcome is RunOutcome.SUCCESS:
            return transition
        if condition is TransitionCondition.FAILURE and outcome is RunOutcome.FAILURE:
            return transition
        if condition is TransitionCondition.CUSTOM and evaluate_expression(
            transition.custom_expression, outcome.value, context
        ):
            return transition
    return None


class AutomationEngine:
    def __init__(
        self,
        *,
        engine: GraphEngine,
        automations: AutomationStore,
        issues: IssueStore,
        status_pusher: StatusPusher,
        max_depth: int = MAX_TRANSITION_DEPTH,
    ):
        self.engine = engine
        self.automations = automations
        self.issues = issues
        self.status_pusher = status_pusher
        self.max_depth = max_depth

    async def on_status_change(
        self,
        project_id: str,
        issue_id: str,
        new_status: str,
        depth: int = 0,
        report: Optional[ChainReport] = None,
    ) -> ChainReport:
        """Run automations triggered by ``issue_id`` entering ``new_status``."""
        if report is None:
            report = ChainReport(issue_id=issue_id, start_status=new_status)

        if depth >= self.max_depth:
            logger.warning(
                f"Max transition depth ({self.max_depth}) reached for issue {issue_id} "
                f"entering '{new_status}'; stopping automation chain"
            )
            report.depth_limit_reached = True
            report.halted_status = new_status
            return report

        automations = await self.automations.find_by_trigger(
            project_id, TriggerType.STATUS_ENTER, new_status
        )
        if not automations:
            logger.debug(f"No automations for project {project_id} status '{new_status}'")
            return report

        issue = await self.issues.get_issue(issue_id)
        if issue is None:
            logger.error(f"Issue {issue_id} not found; skipping automations for '{new_status}'")
            return report

        logger.info(
            f"Issue {issue_id} entered '{new_status}' (depth {depth}): "
            f"{len(automations)} automation(s) to evaluate"
        )
        for automation in automations:
            run = await self._execute(
                automation,
                issue,
                trigger_status=new_status,
                triggered_by=TriggerType.STATUS_ENTER.value,
                depth=depth,
            )
            report.runs.append(run)
            if run.transition_id is None:
                continue

            # Only the first automation with a matching transition gets to apply it
            if run.applied and run.next_status != new_status:
                await self.on_status_change(project_id, issue_id, run.next_status, depth + 1, report)
            break

        return report

    async def trigger_manual(self, automation_id: str, issue_id: str) -> ChainReport:
        """Run a manual (button) automation, then follow any resulting status chain.

        Raises:
            AutomationError: automation missing, not manual or disabled; issue missing
        """
        automation = await self.automations.get_automation(automation_id)
        if automation is None:
            raise AutomationError(f"Automation {automation_id} not found")
        if automation.trigger_type is not TriggerType.MANUAL:
            raise AutomationError(f"Automation {automation_id} is not a manual automation")
        if not automation.enabled:
            raise AutomationError(f"Automation {automation_id} is disabled")

        issue = await self.issues.get_issue(issue_id)
        if issue is None:
            raise AutomationError(f"Issue {issue_id} not found")

        report = ChainReport(issue_id=issue_id, start_status=issue.current_status)
        run = await self._execute(
            automation,
            issue,
            trigger_status=issue.current_status,
            triggered_by=TriggerType.MANUAL.value,
            depth=0,
        )
        report.runs.append(run)

        if run.applied and run.next_status != issue.current_status:
            await self.on_status_change(issue.project_id, issue_id, run.next_status, 0, report)
        return report

    async def _execute(
        self,
        automation: Automation,
        issue: Issue,
        trigger_status: Optional[str],
        triggered_by: str,
        depth: int,
    ) -> AutomationRun:
        record = await self.issues.create_issue_execution(
            issue_id=issue.id,
            automation_id=automation.id,
            triggered_by=triggered_by,
            trigger_status=trigger_status,
            from_status=issue.current_status,
        )

        workflow_input = {
            "issue_id": issue.id,
            "project_id": issue.project_id,
            "owner": issue.owner,
            "repo": issue.repo,
            "issue_number": issue.issue_number,
            "issue_title": issue.title,
            "trigger_status": trigger_status,
            "automation_id": automation.id,
        }

        execution_id: Optional[str] = None
        context: Dict[str, Any] = {}
        error: Optional[str] = None
        try:
            state = await self.engine.create(automation.workflow_id, workflow_input)
            execution_id = state.execution_id
            await self.issues.attach_workflow_execution(record.id, execution_id)
            result = await self.engine.run(execution_id)
            context = result.context
            if result.status is ExecutionStatus.COMPLETED:
                outcome = RunOutcome.SUCCESS
            else:
                outcome = RunOutcome.FAILURE
                error = result.error or f"workflow ended {result.status.value}"
        except WorkflowError as e:
            logger.error(f"Automation {automation.id} could not run workflow {automation.workflow_id}: {e}")
            outcome = RunOutcome.FAILURE
            error = str(e)
        except Exception as e:
            # Infrastructure errors (store, database) are run failures too; the chain goes on
            logger.error(
                f"Automation {automation.id} crashed running workflow {automation.workflow_id}: {e}",
                exc_info=True,
            )
            outcome = RunOutcome.FAILURE
            error = f"{type(e).__name__}: {e}"

        logger.info(
            f"Automation {automation.id} on issue {issue.id}: workflow "
            f"{automation.workflow_id} -> {outcome.value}"
        )

        transitions = await self.automations.list_transitions(automation.id)
        transition = select_transition(transitions, outcome, context)

        applied: Optional[str] = None
        if transition is not None:
            push = await self.status_pusher.update_status(
                issue.owner, issue.repo, issue.issue_number, transition.next_status
            )
            if push.success:
                await self.issues.update_issue_status(issue.id, transition.next_status)
                applied = transition.next_status
                logger.info(
                    f"Transition {transition.id}: issue {issue.id} -> '{transition.next_status}'"
                )
            else:
                error = push.error or "status push failed"
                logger.error(
                    f"Transition {transition.id} matched but status push failed: {error}"
                )

        await self.issues.complete_issue_execution(record.id, outcome, applied, error)

        return AutomationRun(
            automation_id=automation.id,
            issue_execution_id=record.id,
            depth=depth,
            trigger_status=trigger_status,
            result=outcome,
            workflow_execution_id=execution_id,
            transition_id=transition.id if transition else None,
            next_status=transition.next_status if transition else None,
            applied=applied is not None,
            error=error,
        )
