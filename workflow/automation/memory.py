"""In-memory automation and issue stores."""

from __future__ import annotations

import uuid
from dataclasses import replace
from typing import Dict, List, Optional

from .models import (
    Automation,
    Issue,
    IssueExecution,
    RunOutcome,
    Transition,
    TriggerType,
)


class InMemoryAutomationStore:
    def __init__(self):
        self.automations: Dict[str, Automation] = {}
        self.transitions: Dict[str, List[Transition]] = {}

    def add_automation(self, automation: Automation, transitions: Optional[List[Transition]] = None) -> None:
        self.automations[automation.id] = automation
        self.transitions[automation.id] = list(transitions or [])

    async def find_by_trigger(
        self, project_id: str, trigger_type: TriggerType, trigger_status: Optional[str]
    ) -> List[Automation]:
        matches = [
            a for a in self.automations.values()
            if a.project_id == project_id
            and a.trigger_type == trigger_type
            and a.trigger_status == trigger_status
            and a.enabled
        ]
        return sorted(matches, key=lambda a: a.priority)

    async def get_automation(self, automation_id: str) -> Optional[Automation]:
        return self.automations.get(automation_id)

    async def list_transitions(self, automation_id: str) -> List[Transition]:
        return sorted(self.transitions.get(automation_id, []), key=lambda t: t.priority)


class InMemoryIssueStore:
    def __init__(self):
        self.issues: Dict[str, Issue] = {}
        self.executions: Dict[str, IssueExecution] = {}

    def add_issue(self, issue: Issue) -> None:
        self.issues[issue.id] = issue

    async def get_issue(self, issue_id: str) -> Optional[Issue]:
        issue = self.issues.get(issue_id)
        return replace(issue) if issue else None

    async def update_issue_status(self, issue_id: str, status: str) -> None:
        if issue_id in self.issues:
            self.issues[issue_id].current_status = status

    async def create_issue_execution(
        self,
        issue_id: str,
        automation_id: str,
        triggered_by: str,
        trigger_status: Optional[str],
        from_status: Optional[str],
    ) -> IssueExecution:
        record = IssueExecution(
            id=f"iexec_{uuid.uuid4().hex[:12]}",
            issue_id=issue_id,
            automation_id=automation_id,
            triggered_by=triggered_by,
            trigger_status=trigger_status,
            from_status=from_status,
        )
        self.executions[record.id] = record
        return record

    async def attach_workflow_execution(self, issue_execution_id: str, workflow_execution_id: str) -> None:
        self.executions[issue_execution_id].workflow_execution_id = workflow_execution_id

    async def complete_issue_execution(
        self,
        issue_execution_id: str,
        result: RunOutcome,
        next_status_applied: Optional[str],
        error: Optional[str],
    ) -> None:
        record = self.executions[issue_execution_id]
        record.result = result
        record.next_status_applied = next_status_applied
        record.error = error
