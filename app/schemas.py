"""Pydantic schemas for the pipeline API endpoints."""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from workflow.automation.expressions import is_supported_expression


# --- Workflows ---


class CreateWorkflowRequest(BaseModel):
    """Request for POST /api/v1/workflows."""
    id: str = Field(..., min_length=1, max_length=128)
    name: Optional[str] = None
    description: str = ""
    steps: List[Dict[str, Any]] = Field(..., min_length=1)
    initial_context: Dict[str, Any] = Field(default_factory=dict)
    resume_nodes: Dict[str, str] = Field(default_factory=dict)


class WorkflowSummary(BaseModel):
    id: str
    name: str
    description: str = ""
    builtin: bool
    step_count: int


class WorkflowDetail(WorkflowSummary):
    definition: Dict[str, Any]
    warnings: List[Dict[str, Any]] = Field(default_factory=list)


# --- Executions ---


class StartExecutionRequest(BaseModel):
    """Request for POST /api/v1/executions."""
    workflow_id: str
    input: Dict[str, Any] = Field(default_factory=dict)
    execution_id: Optional[str] = None
    background: bool = Field(
        default=False,
        description="If true, return right after creation and run the execution in the background",
    )


class ResumeRequest(BaseModel):
    """Request for POST /api/v1/executions/{id}/answers."""
    answers: Dict[str, Any] = Field(default_factory=dict)
    data: Dict[str, Any] = Field(default_factory=dict)


class ExecutionResponse(BaseModel):
    execution_id: str
    status: str
    current_node: str
    waiting_for_input: bool = False
    pending_questions: List[Dict[str, Any]] = Field(default_factory=list)
    context: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None


class ExecutionListItem(BaseModel):
    execution_id: str
    workflow_id: str
    status: str
    current_node: str
    parent_execution_id: Optional[str] = None
    updated_at: str


class PagedExecutionsResponse(BaseModel):
    items: List[ExecutionListItem]
    total: int
    page: int
    page_size: int


# --- Automations ---


class TransitionFields(BaseModel):
    condition: Literal["success", "failure", "custom"]
    next_status: str = Field(..., min_length=1)
    custom_expression: Optional[str] = None
    priority: int = 0


class TransitionPayload(TransitionFields):
    @model_validator(mode="after")
    def check_custom_expression(self) -> "TransitionPayload":
        if self.condition == "custom":
            if not self.custom_expression:
                raise ValueError("custom transitions require custom_expression")
            if not is_supported_expression(self.custom_expression):
                raise ValueError(f"unsupported custom_expression: {self.custom_expression!r}")
        return self


class TransitionResponse(TransitionFields):
    id: str
    automation_id: str


class CreateAutomationRequest(BaseModel):
    """Request for POST /api/v1/automations."""
    project_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    trigger_type: Literal["status_enter", "manual"]
    workflow_id: str = Field(..., min_length=1)
    trigger_status: Optional[str] = None
    button_label: Optional[str] = None
    enabled: bool = True
    priority: int = 0
    transitions: List[TransitionPayload] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_trigger(self) -> "CreateAutomationRequest":
        if self.trigger_type == "status_enter" and not self.trigger_status:
            raise ValueError("status_enter automations require trigger_status")
        return self


class AutomationResponse(BaseModel):
    id: str
    project_id: str
    name: str
    trigger_type: str
    trigger_status: Optional[str] = None
    button_label: Optional[str] = None
    workflow_id: str
    enabled: bool
    priority: int
    transitions: List[TransitionResponse] = Field(default_factory=list)


class ManualTriggerRequest(BaseModel):
    issue_id: str


# --- Issues ---


class CreateIssueRequest(BaseModel):
    """Request for POST /api/v1/issues."""
    id: Optional[str] = None
    project_id: str = Field(..., min_length=1)
    owner: str = Field(..., min_length=1)
    repo: str = Field(..., min_length=1)
    issue_number: int = Field(..., ge=1)
    title: str = ""
    current_status: Optional[str] = None


class IssueResponse(BaseModel):
    id: str
    project_id: str
    owner: str
    repo: str
    issue_number: int
    title: str
    current_status: Optional[str] = None


class StatusChangeRequest(BaseModel):
    """Request for POST /api/v1/issues/{id}/status."""
    status: str
    wait: bool = Field(
        default=False,
        description="If true, run the automation chain inline and return its report",
    )

    @field_validator("status")
    @classmethod
    def validate_status(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("status cannot be empty")
        return value


class IssueExecutionResponse(BaseModel):
    id: str
    issue_id: str
    automation_id: str
    triggered_by: str
    trigger_status: Optional[str] = None
    from_status: Optional[str] = None
    workflow_execution_id: Optional[str] = None
    result: Optional[str] = None
    next_status_applied: Optional[str] = None
    error: Optional[str] = None


class AutomationRunResponse(BaseModel):
    automation_id: str
    issue_execution_id: str
    depth: int
    trigger_status: Optional[str] = None
    result: str
    workflow_execution_id: Optional[str] = None
    transition_id: Optional[str] = None
    next_status: Optional[str] = None
    applied: bool
    error: Optional[str] = None


class ChainReportResponse(BaseModel):
    issue_id: str
    start_status: Optional[str] = None
    runs: List[AutomationRunResponse] = Field(default_factory=list)
    applied_statuses: List[str] = Field(default_factory=list)
    depth_limit_reached: bool = False
    halted_status: Optional[str] = None


class StatusChangeResponse(BaseModel):
    issue: IssueResponse
    scheduled: bool
    report: Optional[ChainReportResponse] = None
