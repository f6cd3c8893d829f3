"""Automation API endpoints: status/manual triggers and their transitions."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.db import AutomationModel
from app.repositories.automation import AutomationRepository
from app.schemas import (
    AutomationResponse,
    ChainReportResponse,
    CreateAutomationRequest,
    ManualTriggerRequest,
    TransitionPayload,
    TransitionResponse,
)
from app.services import Services, get_services, get_session
from workflow.automation.models import ChainReport
from workflow.engine.errors import AutomationError
from workflow.logging_config import get_api_logger

logger = get_api_logger()

router = APIRouter(prefix="/api/v1/automations", tags=["automations"])


def _automation_response(model: AutomationModel) -> AutomationResponse:
    return AutomationResponse(
        id=model.id,
        project_id=model.project_id,
        name=model.name,
        trigger_type=model.trigger_type,
        trigger_status=model.trigger_status,
        button_label=model.button_label,
        workflow_id=model.workflow_id,
        enabled=model.enabled,
        priority=model.priority,
        transitions=[
            TransitionResponse(
                id=t.id,
                automation_id=t.automation_id,
                condition=t.condition,
                next_status=t.next_status,
                custom_expression=t.custom_expression,
                priority=t.priority,
            )
            for t in model.transitions
        ],
    )


def chain_report_response(report: ChainReport) -> ChainReportResponse:
    return ChainReportResponse(
        issue_id=report.issue_id,
        start_status=report.start_status,
        runs=[
            {
                "automation_id": run.automation_id,
                "issue_execution_id": run.issue_execution_id,
                "depth": run.depth,
                "trigger_status": run.trigger_status,
                "result": run.result.value,
                "workflow_execution_id": run.workflow_execution_id,
                "transition_id": run.transition_id,
                "next_status": run.next_status,
                "applied": run.applied,
                "error": run.error,
            }
            for run in report.runs
        ],
        applied_statuses=report.applied_statuses,
        depth_limit_reached=report.depth_limit_reached,
        halted_status=report.halted_status,
    )


@router.post("", response_model=AutomationResponse, status_code=201)
async def create_automation(
    payload: CreateAutomationRequest,
    services: Services = Depends(get_services),
    session: AsyncSession = Depends(get_session),
):
    """Create an automation bound to an existing workflow."""
    if await services.catalog.get_workflow(payload.workflow_id) is None:
        raise HTTPException(status_code=404, detail=f"Workflow '{payload.workflow_id}' not found")

    repo = AutomationRepository(session)
    automation = await repo.create(
        project_id=payload.project_id,
        name=payload.name,
        trigger_type=payload.trigger_type,
        workflow_id=payload.workflow_id,
        trigger_status=payload.trigger_status,
        button_label=payload.button_label,
        enabled=payload.enabled,
        priority=payload.priority,
        transitions=[t.model_dump() for t in payload.transitions],
    )
    logger.info(
        f"Created automation {automation.id} ({payload.trigger_type}"
        f"{':' + payload.trigger_status if payload.trigger_status else ''}) → {payload.workflow_id}"
    )
    return _automation_response(automation)


@router.get("", response_model=List[AutomationResponse])
async def list_automations(
    project_id: Optional[str] = Query(None),
    session: AsyncSession = Depends(get_session),
):
    automations = await AutomationRepository(session).list(project_id=project_id)
    return [_automation_response(a) for a in automations]


@router.get("/{automation_id}", response_model=AutomationResponse)
async def get_automation(
    automation_id: str,
    session: AsyncSession = Depends(get_session),
):
    automation = await AutomationRepository(session).get(automation_id)
    if not automation:
        raise HTTPException(status_code=404, detail=f"Automation '{automation_id}' not found")
    return _automation_response(automation)


@router.post("/{automation_id}/transitions", response_model=TransitionResponse, status_code=201)
async def add_transition(
    automation_id: str,
    payload: TransitionPayload,
    session: AsyncSession = Depends(get_session),
):
    repo = AutomationRepository(session)
    if not await repo.get(automation_id):
        raise HTTPException(status_code=404, detail=f"Automation '{automation_id}' not found")
    transition = await repo.add_transition(
        automation_id,
        condition=payload.condition,
        next_status=payload.next_status,
        custom_expression=payload.custom_expression,
        priority=payload.priority,
    )
    return TransitionResponse(
        id=transition.id,
        automation_id=automation_id,
        condition=transition.condition,
        next_status=transition.next_status,
        custom_expression=transition.custom_expression,
        priority=transition.priority,
    )


@router.post("/{automation_id}/enable", response_model=AutomationResponse)
async def enable_automation(automation_id: str, session: AsyncSession = Depends(get_session)):
    automation = await AutomationRepository(session).set_enabled(automation_id, True)
    if not automation:
        raise HTTPException(status_code=404, detail=f"Automation '{automation_id}' not found")
    return _automation_response(automation)


@router.post("/{automation_id}/disable", response_model=AutomationResponse)
async def disable_automation(automation_id: str, session: AsyncSession = Depends(get_session)):
    automation = await AutomationRepository(session).set_enabled(automation_id, False)
    if not automation:
        raise HTTPException(status_code=404, detail=f"Automation '{automation_id}' not found")
    return _automation_response(automation)


@router.delete("/{automation_id}", status_code=204)
async def delete_automation(automation_id: str, session: AsyncSession = Depends(get_session)):
    if not await AutomationRepository(session).delete(automation_id):
        raise HTTPException(status_code=404, detail=f"Automation '{automation_id}' not found")


@router.post("/{automation_id}/trigger", response_model=ChainReportResponse)
async def trigger_automation(
    automation_id: str,
    payload: ManualTriggerRequest,
    services: Services = Depends(get_services),
):
    """Run a manual automation for one issue and follow the resulting chain."""
    try:
        report = await services.automation.trigger_manual(automation_id, payload.issue_id)
    except AutomationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return chain_report_response(report)
