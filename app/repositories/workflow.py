"""Repository layer for workflow definitions and execution checkpoints.

Provides async CRUD operations for WorkflowModel and WorkflowExecutionModel.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.db import WorkflowExecutionModel, WorkflowModel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WorkflowRepository:
    """Data access layer for stored workflow definitions."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def upsert(
        self,
        workflow_id: str,
        name: str,
        definition: Dict[str, Any],
        description: Optional[str] = None,
        builtin: bool = False,
    ) -> WorkflowModel:
        """Insert a definition, or replace the stored one with the same id."""
        workflow = await self.get(workflow_id)
        if workflow is None:
            workflow = WorkflowModel(id=workflow_id, name=name)
            self.session.add(workflow)
        workflow.name = name
        workflow.description = description
        workflow.definition = definition
        workflow.builtin = builtin
        workflow.updated_at = _utcnow()
        await self.session.flush()
        return workflow

    async def get(self, workflow_id: str) -> Optional[WorkflowModel]:
        return await self.session.get(WorkflowModel, workflow_id)

    async def list(self, include_builtin: bool = True) -> List[WorkflowModel]:
        query = select(WorkflowModel).order_by(WorkflowModel.id)
        if not include_builtin:
            query = query.where(WorkflowModel.builtin.is_(False))
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def delete(self, workflow_id: str) -> bool:
        """Delete a workflow and, by cascade, its executions."""
        workflow = await self.get(workflow_id)
        if not workflow:
            return False
        await self.session.delete(workflow)
        await self.session.flush()
        return True


class ExecutionRepository:
    """Data access layer for execution checkpoints."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, execution_id: str) -> Optional[WorkflowExecutionModel]:
        return await self.session.get(WorkflowExecutionModel, execution_id)

    async def save(
        self,
        execution_id: str,
        workflow_id: str,
        status: str,
        current_node: str,
        state: Dict[str, Any],
        parent_execution_id: Optional[str] = None,
    ) -> WorkflowExecutionModel:
        """Write the latest checkpoint, creating the row on first save."""
        record = await self.get(execution_id)
        if record is None:
            record = WorkflowExecutionModel(
                id=execution_id,
                workflow_id=workflow_id,
                parent_execution_id=parent_execution_id,
            )
            self.session.add(record)
        record.status = status
        record.current_node = current_node
        record.state = state
        record.updated_at = _utcnow()
        await self.session.flush()
        return record

    async def list(
        self,
        workflow_id: Optional[str] = None,
        status: Optional[str] = None,
        page: int = 1,
        page_size: int = 20,
    ) -> Tuple[List[WorkflowExecutionModel], int]:
        """List executions, newest first.

        Returns:
            Tuple of (executions, total_count)
        """
        query = select(WorkflowExecutionModel)
        count_query = select(func.count()).select_from(WorkflowExecutionModel)

        if workflow_id:
            query = query.where(WorkflowExecutionModel.workflow_id == workflow_id)
            count_query = count_query.where(WorkflowExecutionModel.workflow_id == workflow_id)

        if status:
            # Comma-separated values, e.g. "paused,waiting_for_input"
            statuses = [s.strip() for s in status.split(",") if s.strip()]
            query = query.where(WorkflowExecutionModel.status.in_(statuses))
            count_query = count_query.where(WorkflowExecutionModel.status.in_(statuses))

        query = query.order_by(WorkflowExecutionModel.created_at.desc())
        query = query.offset((page - 1) * page_size).limit(page_size)

        result = await self.session.execute(query)
        executions = list(result.scalars().all())

        count_result = await self.session.execute(count_query)
        total = count_result.scalar() or 0

        return executions, total

    async def delete(self, execution_id: str) -> bool:
        record = await self.get(execution_id)
        if not record:
            return False
        await self.session.delete(record)
        await self.session.flush()
        return True
