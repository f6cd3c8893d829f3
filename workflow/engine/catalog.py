"""Workflow lookup by id."""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Protocol, runtime_checkable

from .definitions import WorkflowDefinition


@runtime_checkable
class WorkflowCatalog(Protocol):
    async def get_workflow(self, workflow_id: str) -> Optional[WorkflowDefinition]:
        ...


class InMemoryWorkflowCatalog:
    def __init__(self, workflows: Iterable[WorkflowDefinition] = ()):
        self._workflows: Dict[str, WorkflowDefinition] = {}
        for workflow in workflows:
            self.register(workflow)

    def register(self, workflow: WorkflowDefinition) -> None:
        self._workflows[workflow.id] = workflow

    async def get_workflow(self, workflow_id: str) -> Optional[WorkflowDefinition]:
        return self._workflows.get(workflow_id)

    def list_workflows(self) -> List[WorkflowDefinition]:
        return list(self._workflows.values())
