"""Repository layer for issues and the automation audit trail."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.db import IssueExecutionModel, IssueModel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IssueRepository:
    """Data access layer for issues and issue executions."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        project_id: str,
        owner: str,
        repo: str,
        issue_number: int,
        title: str = "",
        current_status: Optional[str] = None,
        issue_id: Optional[str] = None,
    ) -> IssueModel:
        issue = IssueModel(
            id=issue_id or f"issue_{uuid.uuid4().hex[:12]}",
            project_id=project_id,
            owner=owner,
            repo=repo,
            issue_number=issue_number,
            title=title,
            current_status=current_status,
        )
        self.session.add(issue)
        await self.session.flush()
        return issue

    async def get(self, issue_id: str) -> Optional[IssueModel]:
        return await self.session.get(IssueModel, issue_id, populate_existing=True)

    async def list(self, project_id: Optional[str] = None) -> List[IssueModel]:
        query = select(IssueModel)
        if project_id:
            query = query.where(IssueModel.project_id == project_id)
        result = await self.session.execute(query.order_by(IssueModel.created_at))
        return list(result.scalars().all())

    async def update_status(self, issue_id: str, status: str) -> Optional[IssueModel]:
        issue = await self.get(issue_id)
        if not issue:
            return None
        issue.current_status = status
        issue.updated_at = _utcnow()
        await self.session.flush()
        return issue

    # --- Issue executions ---

    async def create_execution(
        self,
        issue_id: str,
        automation_id: str,
        triggered_by: str,
        trigger_status: Optional[str] = None,
        from_status: Optional[str] = None,
    ) -> IssueExecutionModel:
        record = IssueExecutionModel(
            id=f"iexec_{uuid.uuid4().hex[:12]}",
            issue_id=issue_id,
            automation_id=automation_id,
            triggered_by=triggered_by,
            trigger_status=trigger_status,
            from_status=from_status,
        )
        self.session.add(record)
        await self.session.flush()
        return record

    async def get_execution(self, issue_execution_id: str) -> Optional[IssueExecutionModel]:
        return await self.session.get(IssueExecutionModel, issue_execution_id)

    async def update_execution(
        self,
        issue_execution_id: str,
        workflow_execution_id: Optional[str] = None,
        result: Optional[str] = None,
        next_status_applied: Optional[str] = None,
        error: Optional[str] = None,
        completed: bool = False,
    ) -> Optional[IssueExecutionModel]:
        """Update only the fields that are given."""
        record = await self.get_execution(issue_execution_id)
        if not record:
            return None
        if workflow_execution_id is not None:
            record.workflow_execution_id = workflow_execution_id
        if result is not None:
            record.result = result
        if next_status_applied is not None:
            record.next_status_applied = next_status_applied
        if error is not None:
            record.error = error
        if completed:
            record.completed_at = _utcnow()
        await self.session.flush()
        return record

    async def list_executions(self, issue_id: str) -> List[IssueExecutionModel]:
        result = await self.session.execute(
            select(IssueExecutionModel)
            .where(IssueExecutionModel.issue_id == issue_id)
            .order_by(IssueExecutionModel.started_at)
        )
        return list(result.scalars().all())
