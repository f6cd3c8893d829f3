"""Workflow execution API endpoints.

Start, inspect, answer (resume), pause, cancel and retry executions, and
follow them over SSE.

SSE Events (``/api/v1/executions/{id}/stream``):
    - node_started / node_completed: per-node progress
    - workflow_paused: waiting for input (data: {node_id, phase, questions})
    - workflow_resumed: answers accepted
    - step_error: a node failed (data: {node_id, error})
    - planning_completed / planning_failed: execution ended
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.repositories.workflow import ExecutionRepository
from app.schemas import (
    ExecutionListItem,
    ExecutionResponse,
    PagedExecutionsResponse,
    ResumeRequest,
    StartExecutionRequest,
)
from app.services import Services, get_services, get_session
from workflow.engine.errors import (
    ExecutionNotFoundError,
    InvalidStateError,
    WorkflowConfigError,
    WorkflowError,
    WorkflowNotFoundError,
)
from workflow.engine.executor import GraphEngine
from workflow.engine.state import ExecutionResult, ExecutionState
from workflow.logging_config import get_api_logger

logger = get_api_logger()

router = APIRouter(prefix="/api/v1/executions", tags=["executions"])


def http_error(e: WorkflowError) -> HTTPException:
    """Map engine errors onto HTTP status codes."""
    if isinstance(e, (ExecutionNotFoundError, WorkflowNotFoundError)):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, InvalidStateError):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, WorkflowConfigError):
        return HTTPException(status_code=422, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))


def _result_response(result: ExecutionResult) -> ExecutionResponse:
    return ExecutionResponse(
        execution_id=result.execution_id,
        status=result.status.value,
        current_node=result.current_node,
        waiting_for_input=result.waiting_for_input,
        pending_questions=result.pending_questions,
        context=result.context,
        error=result.error,
    )


def _state_response(state: ExecutionState) -> ExecutionResponse:
    return _result_response(ExecutionResult.from_state(state))


async def _run_in_background(engine: GraphEngine, execution_id: str) -> None:
    try:
        await engine.run(execution_id)
    except WorkflowError as e:
        logger.error(f"Background run of {execution_id} did not start: {e}")


# --- Endpoints ---


@router.post("", response_model=ExecutionResponse, status_code=201)
async def start_execution(
    payload: StartExecutionRequest,
    background_tasks: BackgroundTasks,
    services: Services = Depends(get_services),
):
    """Start a workflow execution.

    Runs until the execution waits for input or ends, unless ``background``
    is set, in which case the Pending execution is returned immediately.
    """
    engine = services.engine
    try:
        if payload.background:
            state = await engine.create(payload.workflow_id, payload.input, payload.execution_id)
            background_tasks.add_task(_run_in_background, engine, state.execution_id)
            return _state_response(state)
        result = await engine.start(payload.workflow_id, payload.input, payload.execution_id)
    except WorkflowError as e:
        raise http_error(e)
    return _result_response(result)


@router.get("", response_model=PagedExecutionsResponse)
async def list_executions(
    workflow_id: Optional[str] = Query(None),
    status: Optional[str] = Query(None, description="Comma-separated statuses"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    session: AsyncSession = Depends(get_session),
):
    records, total = await ExecutionRepository(session).list(
        workflow_id=workflow_id, status=status, page=page, page_size=page_size,
    )
    items = [
        ExecutionListItem(
            execution_id=r.id,
            workflow_id=r.workflow_id,
            status=r.status,
            current_node=r.current_node,
            parent_execution_id=r.parent_execution_id,
            updated_at=r.updated_at.isoformat(),
        )
        for r in records
    ]
    return PagedExecutionsResponse(items=items, total=total, page=page, page_size=page_size)


@router.get("/{execution_id:path}/state")
async def get_execution_state(
    execution_id: str,
    services: Services = Depends(get_services),
):
    """Full persisted ExecutionState, including node states and conversation."""
    state = await services.engine.get_state(execution_id)
    if state is None:
        raise HTTPException(status_code=404, detail=f"Execution '{execution_id}' not found")
    return state.to_json()


@router.post("/{execution_id:path}/answers", response_model=ExecutionResponse)
async def answer_execution(
    execution_id: str,
    payload: ResumeRequest,
    services: Services = Depends(get_services),
):
    """Submit answers to pending questions and resume the execution."""
    try:
        result = await services.engine.resume(execution_id, payload.answers, payload.data)
    except WorkflowError as e:
        raise http_error(e)
    return _result_response(result)


@router.post("/{execution_id:path}/pause", response_model=ExecutionResponse)
async def pause_execution(
    execution_id: str,
    services: Services = Depends(get_services),
):
    try:
        state = await services.engine.pause(execution_id)
    except WorkflowError as e:
        raise http_error(e)
    return _state_response(state)


@router.post("/{execution_id:path}/cancel", response_model=ExecutionResponse)
async def cancel_execution(
    execution_id: str,
    services: Services = Depends(get_services),
):
    """Cancel an execution; a running loop stops at its next node boundary."""
    try:
        state = await services.engine.cancel(execution_id)
    except WorkflowError as e:
        raise http_error(e)
    return _state_response(state)


@router.post("/{execution_id:path}/retry", response_model=ExecutionResponse)
async def retry_execution(
    execution_id: str,
    services: Services = Depends(get_services),
):
    """Restart a failed execution at its failed node."""
    try:
        result = await services.engine.retry(execution_id)
    except WorkflowError as e:
        raise http_error(e)
    return _result_response(result)


@router.get("/{execution_id:path}/stream")
async def stream_execution(
    execution_id: str,
    services: Services = Depends(get_services),
):
    """SSE endpoint for real-time execution progress.

    The stream closes after workflow_paused, planning_completed or
    planning_failed; reconnect after answering to follow the next segment.

    Usage:
        const sse = new EventSource('/api/v1/executions/exec_xxx/stream');
        sse.addEventListener('workflow_paused', (e) => console.log(JSON.parse(e.data)));
    """
    state = await services.engine.get_state(execution_id)
    if state is None:
        raise HTTPException(status_code=404, detail=f"Execution '{execution_id}' not found")

    return StreamingResponse(
        services.bus.subscribe(execution_id),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.get("/{execution_id:path}", response_model=ExecutionResponse)
async def get_execution(
    execution_id: str,
    services: Services = Depends(get_services),
):
    state = await services.engine.get_state(execution_id)
    if state is None:
        raise HTTPException(status_code=404, detail=f"Execution '{execution_id}' not found")
    return _state_response(state)
