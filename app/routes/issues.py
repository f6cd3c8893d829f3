"""Issue API endpoints.

A reported status change is the entry point of the automation chain: the
issue's new status is stored, then automations for that status run in the
background (or inline with ``wait``).
"""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.repositories.issue import IssueRepository
from app.routes.automations import chain_report_response
from app.schemas import (
    CreateIssueRequest,
    IssueExecutionResponse,
    IssueResponse,
    StatusChangeRequest,
    StatusChangeResponse,
)
from app.services import Services, get_services, get_session
from workflow.automation.engine import AutomationEngine
from workflow.automation.models import Issue
from workflow.logging_config import get_api_logger

logger = get_api_logger()

router = APIRouter(prefix="/api/v1/issues", tags=["issues"])


def _issue_response(issue) -> IssueResponse:
    """Accepts an IssueModel or a domain Issue."""
    return IssueResponse(
        id=issue.id,
        project_id=issue.project_id,
        owner=issue.owner,
        repo=issue.repo,
        issue_number=issue.issue_number,
        title=issue.title,
        current_status=issue.current_status,
    )


async def _run_chain(automation: AutomationEngine, issue: Issue, status: str) -> None:
    try:
        report = await automation.on_status_change(issue.project_id, issue.id, status)
    except Exception as e:
        logger.error(f"Automation chain for issue {issue.id} ('{status}') crashed: {e}", exc_info=True)
        return
    logger.info(
        f"Automation chain for issue {issue.id} from '{status}': "
        f"{len(report.runs)} run(s), applied {report.applied_statuses}"
    )


@router.post("", response_model=IssueResponse, status_code=201)
async def create_issue(
    payload: CreateIssueRequest,
    session: AsyncSession = Depends(get_session),
):
    repo = IssueRepository(session)
    if payload.id and await repo.get(payload.id):
        raise HTTPException(status_code=409, detail=f"Issue '{payload.id}' already exists")
    try:
        issue = await repo.create(
            project_id=payload.project_id,
            owner=payload.owner,
            repo=payload.repo,
            issue_number=payload.issue_number,
            title=payload.title,
            current_status=payload.current_status,
            issue_id=payload.id,
        )
    except IntegrityError as e:
        raise HTTPException(status_code=409, detail=f"Issue could not be created: {e.orig}")
    return _issue_response(issue)


@router.get("", response_model=List[IssueResponse])
async def list_issues(
    project_id: Optional[str] = Query(None),
    session: AsyncSession = Depends(get_session),
):
    return [_issue_response(i) for i in await IssueRepository(session).list(project_id)]


@router.get("/{issue_id}", response_model=IssueResponse)
async def get_issue(issue_id: str, session: AsyncSession = Depends(get_session)):
    issue = await IssueRepository(session).get(issue_id)
    if not issue:
        raise HTTPException(status_code=404, detail=f"Issue '{issue_id}' not found")
    return _issue_response(issue)


@router.get("/{issue_id}/executions", response_model=List[IssueExecutionResponse])
async def list_issue_executions(issue_id: str, session: AsyncSession = Depends(get_session)):
    """Audit trail of automation runs for one issue."""
    repo = IssueRepository(session)
    if not await repo.get(issue_id):
        raise HTTPException(status_code=404, detail=f"Issue '{issue_id}' not found")
    return [
        IssueExecutionResponse(
            id=r.id,
            issue_id=r.issue_id,
            automation_id=r.automation_id,
            triggered_by=r.triggered_by,
            trigger_status=r.trigger_status,
            from_status=r.from_status,
            workflow_execution_id=r.workflow_execution_id,
            result=r.result,
            next_status_applied=r.next_status_applied,
            error=r.error,
        )
        for r in await repo.list_executions(issue_id)
    ]


@router.post("/{issue_id}/status", response_model=StatusChangeResponse)
async def change_issue_status(
    issue_id: str,
    payload: StatusChangeRequest,
    background_tasks: BackgroundTasks,
    services: Services = Depends(get_services),
):
    """Record that an issue entered a status and run the automations for it.

    Reporting the status an issue already has changes nothing and runs no
    automations.
    """
    issues = services.issue_store
    issue = await issues.get_issue(issue_id)
    if issue is None:
        raise HTTPException(status_code=404, detail=f"Issue '{issue_id}' not found")

    if issue.current_status == payload.status:
        return StatusChangeResponse(issue=_issue_response(issue), scheduled=False)

    await issues.update_issue_status(issue_id, payload.status)
    issue.current_status = payload.status
    logger.info(f"Issue {issue_id} entered '{payload.status}'")

    if payload.wait:
        report = await services.automation.on_status_change(issue.project_id, issue_id, payload.status)
        refreshed = await issues.get_issue(issue_id)
        return StatusChangeResponse(
            issue=_issue_response(refreshed),
            scheduled=False,
            report=chain_report_response(report),
        )

    background_tasks.add_task(_run_chain, services.automation, issue, payload.status)
    return StatusChangeResponse(issue=_issue_response(issue), scheduled=True)
