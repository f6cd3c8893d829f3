"""Workflow definition API endpoints."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.repositories.workflow import WorkflowRepository
from app.schemas import CreateWorkflowRequest, WorkflowDetail, WorkflowSummary
from app.services import Services, get_services, get_session
from workflow.engine.definitions import workflow_from_dict, workflow_to_dict
from workflow.engine.errors import WorkflowConfigError
from workflow.engine.graph_builder import validate_workflow

router = APIRouter(prefix="/api/v1/workflows", tags=["workflows"])


def _summary(wf) -> WorkflowSummary:
    """Convert ORM WorkflowModel to a list entry."""
    steps = wf.definition.get("steps", [])
    return WorkflowSummary(
        id=wf.id,
        name=wf.name,
        description=wf.description or "",
        builtin=wf.builtin,
        step_count=len(steps),
    )


@router.get("", response_model=List[WorkflowSummary])
async def list_workflows(
    include_builtin: bool = Query(True),
    session: AsyncSession = Depends(get_session),
):
    """List built-in and stored workflows."""
    repo = WorkflowRepository(session)
    return [_summary(wf) for wf in await repo.list(include_builtin=include_builtin)]


@router.get("/{workflow_id}", response_model=WorkflowDetail)
async def get_workflow(
    workflow_id: str,
    services: Services = Depends(get_services),
):
    workflow = await services.catalog.get_workflow(workflow_id)
    if workflow is None:
        raise HTTPException(status_code=404, detail=f"Workflow '{workflow_id}' not found")

    validation = validate_workflow(workflow, services.handlers)
    return WorkflowDetail(
        id=workflow.id,
        name=workflow.name,
        description=workflow.description,
        builtin=services.catalog.is_builtin(workflow.id),
        step_count=len(workflow.steps),
        definition=workflow_to_dict(workflow),
        warnings=[w.to_dict() for w in validation.warnings],
    )


@router.post("", response_model=WorkflowDetail, status_code=201)
async def create_workflow(
    payload: CreateWorkflowRequest,
    services: Services = Depends(get_services),
):
    """Store a workflow definition after validating it against the handler registry."""
    if services.catalog.is_builtin(payload.id):
        raise HTTPException(status_code=409, detail=f"Workflow '{payload.id}' is built in")

    try:
        workflow = workflow_from_dict({
            "id": payload.id,
            "name": payload.name or payload.id,
            "description": payload.description,
            "steps": payload.steps,
            "initial_context": payload.initial_context,
            "resume_nodes": payload.resume_nodes,
        })
    except WorkflowConfigError as e:
        raise HTTPException(status_code=422, detail=str(e))

    validation = validate_workflow(workflow, services.handlers)
    if not validation.valid:
        raise HTTPException(status_code=422, detail=validation.to_dict())

    await services.catalog.save_workflow(workflow)
    return WorkflowDetail(
        id=workflow.id,
        name=workflow.name,
        description=workflow.description,
        builtin=False,
        step_count=len(workflow.steps),
        definition=workflow_to_dict(workflow),
        warnings=[w.to_dict() for w in validation.warnings],
    )


@router.delete("/{workflow_id}", status_code=204)
async def delete_workflow(
    workflow_id: str,
    services: Services = Depends(get_services),
    session: AsyncSession = Depends(get_session),
):
    """Delete a stored workflow together with its executions."""
    if services.catalog.is_builtin(workflow_id):
        raise HTTPException(status_code=409, detail=f"Workflow '{workflow_id}' is built in")
    if not await WorkflowRepository(session).delete(workflow_id):
        raise HTTPException(status_code=404, detail=f"Workflow '{workflow_id}' not found")
