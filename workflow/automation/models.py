"""Automation layer data types and repository contracts."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Protocol, runtime_checkable


class TriggerType(str, Enum):
    STATUS_ENTER = "status_enter"
    MANUAL = "manual"


class TransitionCondition(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    CUSTOM = "custom"


class RunOutcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass
class Automation:
    """Binds a status trigger (or a manual button) to a workflow.

    Lower ``priority`` runs first.
    """

    id: str
    project_id: str
    name: str
    trigger_type: TriggerType
    workflow_id: str
    trigger_status: Optional[str] = None
    button_label: Optional[str] = None
    enabled: bool = True
    priority: int = 0

    def __post_init__(self):
        self.trigger_type = TriggerType(self.trigger_type)


@dataclass
class Transition:
    id: str
    automation_id: str
    condition: TransitionCondition
    next_status: str
    custom_expression: Optional[str] = None
    priority: int = 0

    def __post_init__(self):
        self.condition = TransitionCondition(self.condition)


@dataclass
class Issue:
    id: str
    project_id: str
    owner: str
    repo: str
    issue_number: int
    current_status: Optional[str] = None
    title: str = ""


@dataclass
class IssueExecution:
    """One automation firing for one issue."""

    id: str
    issue_id: str
    automation_id: str
    triggered_by: str
    trigger_status: Optional[str] = None
    from_status: Optional[str] = None
    workflow_execution_id: Optional[str] = None
    result: Optional[RunOutcome] = None
    next_status_applied: Optional[str] = None
    error: Optional[str] = None


@dataclass
class StatusUpdateResult:
    success: bool
    error: Optional[str] = None


@dataclass
class AutomationRun:
    """Outcome of running one automation inside a chain."""

    automation_id: str
    issue_execution_id: str
    depth: int
    trigger_status: Optional[str]
    result: RunOutcome
    workflow_execution_id: Optional[str] = None
    transition_id: Optional[str] = None
    next_status: Optional[str] = None
    applied: bool = False
    error: Optional[str] = None


@dataclass
class ChainReport:
    """Every automation run caused by one external trigger."""

    issue_id: str
    start_status: Optional[str]
    runs: List[AutomationRun] = field(default_factory=list)
    depth_limit_reached: bool = False
    halted_status: Optional[str] = None

    @property
    def applied_statuses(self) -> List[str]:
        return [run.next_status for run in self.runs if run.applied and run.next_status]


@runtime_checkable
class AutomationStore(Protocol):
    async def find_by_trigger(
        self, project_id: str, trigger_type: TriggerType, trigger_status: Optional[str]
    ) -> List[Automation]:
        """Enabled automations for the trigger, ascending by priority."""
        ...

    async def get_automation(self, automation_id: str) -> Optional[Automation]:
        ...

    async def list_transitions(self, automation_id: str) -> List[Transition]:
        """Transitions of one automation, ascending by priority."""
        ...


@runtime_checkable
class IssueStore(Protocol):
    async def get_issue(self, issue_id: str) -> Optional[Issue]:
        ...

    async def update_issue_status(self, issue_id: str, status: str) -> None:
        ...

    async def create_issue_execution(
        self,
        issue_id: str,
        automation_id: str,
        triggered_by: str,
        trigger_status: Optional[str],
        from_status: Optional[str],
    ) -> IssueExecution:
        ...

    async def attach_workflow_execution(self, issue_execution_id: str, workflow_execution_id: str) -> None:
        ...

    async def complete_issue_execution(
        self,
        issue_execution_id: str,
        result: RunOutcome,
        next_status_applied: Optional[str],
        error: Optional[str],
    ) -> None:
        ...


@runtime_checkable
class StatusPusher(Protocol):
    async def update_status(self, owner: str, repo: str, issue_number: int, status: str) -> StatusUpdateResult:
        ...
