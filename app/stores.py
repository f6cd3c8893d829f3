"""SQL-backed implementations of the engine and automation store contracts.

Each call opens its own short session from the factory, so the adapters are
safe to share between concurrent executions.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.database import session_scope
from app.models.db import AutomationModel, IssueExecutionModel, IssueModel, TransitionModel
from app.repositories.automation import AutomationRepository
from app.repositories.issue import IssueRepository
from app.repositories.workflow import ExecutionRepository, WorkflowRepository
from workflow.automation.models import (
    Automation,
    Issue,
    IssueExecution,
    RunOutcome,
    Transition,
    TriggerType,
)
from workflow.engine.definitions import WorkflowDefinition, workflow_from_dict, workflow_to_dict
from workflow.engine.state import ExecutionState

logger = logging.getLogger(__name__)

SessionFactory = async_sessionmaker[AsyncSession]


# --- ORM → domain ---


def to_automation(model: AutomationModel) -> Automation:
    return Automation(
        id=model.id,
        project_id=model.project_id,
        name=model.name,
        trigger_type=model.trigger_type,
        workflow_id=model.workflow_id,
        trigger_status=model.trigger_status,
        button_label=model.button_label,
        enabled=model.enabled,
        priority=model.priority,
    )


def to_transition(model: TransitionModel) -> Transition:
    return Transition(
        id=model.id,
        automation_id=model.automation_id,
        condition=model.condition,
        next_status=model.next_status,
        custom_expression=model.custom_expression,
        priority=model.priority,
    )


def to_issue(model: IssueModel) -> Issue:
    return Issue(
        id=model.id,
        project_id=model.project_id,
        owner=model.owner,
        repo=model.repo,
        issue_number=model.issue_number,
        current_status=model.current_status,
        title=model.title,
    )


def to_issue_execution(model: IssueExecutionModel) -> IssueExecution:
    return IssueExecution(
        id=model.id,
        issue_id=model.issue_id,
        automation_id=model.automation_id,
        triggered_by=model.triggered_by,
        trigger_status=model.trigger_status,
        from_status=model.from_status,
        workflow_execution_id=model.workflow_execution_id,
        result=RunOutcome(model.result) if model.result else None,
        next_status_applied=model.next_status_applied,
        error=model.error,
    )


# --- Engine contracts ---


class SqlStateStore:
    """StateStore over the workflow_executions table."""

    def __init__(self, session_factory: SessionFactory):
        self._session_factory = session_factory

    async def get_state(self, execution_id: str) -> Optional[ExecutionState]:
        async with session_scope(self._session_factory) as session:
            record = await ExecutionRepository(session).get(execution_id)
            if record is None:
                return None
            return ExecutionState.from_json(record.state)

    async def save_state(self, execution_id: str, state: ExecutionState) -> None:
        async with session_scope(self._session_factory) as session:
            await ExecutionRepository(session).save(
                execution_id=execution_id,
                workflow_id=state.workflow_id,
                status=state.status.value,
                current_node=state.current_node,
                state=state.to_json(),
                parent_execution_id=state.parent_execution_id,
            )


class SqlWorkflowCatalog:
    """Built-in definitions from code, then stored definitions by id.

    Built-ins are also seeded into the workflows table so executions of
    them satisfy the foreign key.
    """

    def __init__(self, session_factory: SessionFactory, builtins: Iterable[WorkflowDefinition] = ()):
        self._session_factory = session_factory
        self._builtins: Dict[str, WorkflowDefinition] = {w.id: w for w in builtins}

    @property
    def builtin_ids(self) -> List[str]:
        return list(self._builtins)

    def is_builtin(self, workflow_id: str) -> bool:
        return workflow_id in self._builtins

    async def seed_builtins(self) -> None:
        async with session_scope(self._session_factory) as session:
            repo = WorkflowRepository(session)
            for workflow in self._builtins.values():
                await repo.upsert(
                    workflow.id,
                    workflow.name,
                    workflow_to_dict(workflow),
                    description=workflow.description,
                    builtin=True,
                )
        logger.info(f"Seeded {len(self._builtins)} built-in workflow(s)")

    async def get_workflow(self, workflow_id: str) -> Optional[WorkflowDefinition]:
        if workflow_id in self._builtins:
            return self._builtins[workflow_id]
        async with session_scope(self._session_factory) as session:
            record = await WorkflowRepository(session).get(workflow_id)
            if record is None:
                return None
            return workflow_from_dict(record.definition)

    async def save_workflow(self, workflow: WorkflowDefinition) -> None:
        async with session_scope(self._session_factory) as session:
            await WorkflowRepository(session).upsert(
                workflow.id,
                workflow.name,
                workflow_to_dict(workflow),
                description=workflow.description,
            )


# --- Automation contracts ---


class SqlAutomationStore:
    def __init__(self, session_factory: SessionFactory):
        self._session_factory = session_factory

    async def find_by_trigger(
        self, project_id: str, trigger_type: TriggerType, trigger_status: Optional[str]
    ) -> List[Automation]:
        async with session_scope(self._session_factory) as session:
            models = await AutomationRepository(session).find_by_trigger(
                project_id, TriggerType(trigger_type).value, trigger_status,
            )
            return [to_automation(m) for m in models]

    async def get_automation(self, automation_id: str) -> Optional[Automation]:
        async with session_scope(self._session_factory) as session:
            model = await AutomationRepository(session).get(automation_id)
            return to_automation(model) if model else None

    async def list_transitions(self, automation_id: str) -> List[Transition]:
        async with session_scope(self._session_factory) as session:
            models = await AutomationRepository(session).list_transitions(automation_id)
            return [to_transition(m) for m in models]


class SqlIssueStore:
    def __init__(self, session_factory: SessionFactory):
        self._session_factory = session_factory

    async def get_issue(self, issue_id: str) -> Optional[Issue]:
        async with session_scope(self._session_factory) as session:
            model = await IssueRepository(session).get(issue_id)
            return to_issue(model) if model else None

    async def update_issue_status(self, issue_id: str, status: str) -> None:
        async with session_scope(self._session_factory) as session:
            await IssueRepository(session).update_status(issue_id, status)

    async def create_issue_execution(
        self,
        issue_id: str,
        automation_id: str,
        triggered_by: str,
        trigger_status: Optional[str],
        from_status: Optional[str],
    ) -> IssueExecution:
        async with session_scope(self._session_factory) as session:
            record = await IssueRepository(session).create_execution(
                issue_id, automation_id, triggered_by, trigger_status, from_status,
            )
            return to_issue_execution(record)

    async def attach_workflow_execution(self, issue_execution_id: str, workflow_execution_id: str) -> None:
        async with session_scope(self._session_factory) as session:
            await IssueRepository(session).update_execution(
                issue_execution_id, workflow_execution_id=workflow_execution_id,
            )

    async def complete_issue_execution(
        self,
        issue_execution_id: str,
        result: RunOutcome,
        next_status_applied: Optional[str],
        error: Optional[str],
    ) -> None:
        async with session_scope(self._session_factory) as session:
            await IssueRepository(session).update_execution(
                issue_execution_id,
                result=RunOutcome(result).value,
                next_status_applied=next_status_applied,
                error=error,
                completed=True,
            )
