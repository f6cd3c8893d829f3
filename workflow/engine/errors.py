"""Exception hierarchy for the workflow engine.

Configuration errors are raised immediately to the caller. Step errors are
caught by the engine loop and turned into a Failed execution; they never
cross an automation-chain boundary as exceptions.
"""

from __future__ import annotations

from typing import Optional


class WorkflowError(Exception):
    """Base class for all engine errors."""


class WorkflowConfigError(WorkflowError):
    """Malformed step, unknown node id, unknown handler or unknown workflow."""


class WorkflowNotFoundError(WorkflowConfigError):
    """Raised when a workflow id cannot be resolved from the catalog."""

    def __init__(self, workflow_id: str):
        self.workflow_id = workflow_id
        super().__init__(f"Workflow '{workflow_id}' not found")


class ExecutionNotFoundError(WorkflowError):
    """Raised when no persisted state exists for an execution id."""

    def __init__(self, execution_id: str):
        self.execution_id = execution_id
        super().__init__(f"Execution '{execution_id}' not found")


class InvalidStateError(WorkflowError):
    """Operation not allowed for the execution's current status."""

    def __init__(self, execution_id: str, status: str, operation: str):
        self.execution_id = execution_id
        self.status = status
        self.operation = operation
        super().__init__(
            f"Cannot {operation} execution '{execution_id}' in status '{status}'"
        )


class StepExecutionError(WorkflowError):
    """Fatal failure inside a node's execute()."""

    def __init__(self, node_id: str, message: str):
        self.node_id = node_id
        super().__init__(f"Node '{node_id}' failed: {message}")


class NestedWorkflowError(StepExecutionError):
    """A child workflow did not complete."""

    def __init__(self, node_id: str, child_execution_id: str, status: str, error: Optional[str] = None):
        self.child_execution_id = child_execution_id
        self.child_status = status
        detail = f"child execution {child_execution_id} ended {status}"
        if error:
            detail += f": {error}"
        super().__init__(node_id, detail)


class MaxStepsExceeded(WorkflowError):
    """The engine visited more nodes than ENGINE_MAX_STEPS in one run."""

    def __init__(self, execution_id: str, steps: int):
        self.execution_id = execution_id
        self.steps = steps
        super().__init__(f"Execution '{execution_id}' exceeded {steps} node visits")


class LLMError(WorkflowError):
    """Base class for agent call failures."""


class LLMTransientError(LLMError):
    """Retryable failure: rate limit, overload, timeout."""

    def __init__(self, message: str, retry_after: Optional[float] = None):
        self.retry_after = retry_after
        super().__init__(message)


class LLMCallError(LLMError):
    """Non-retryable agent failure."""


class AutomationError(WorkflowError):
    """Invalid automation trigger: unknown, disabled or wrong trigger type."""
