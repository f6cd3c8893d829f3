"""Graph Builder: compiles a WorkflowDefinition into linked node runtimes.

Nested step lists are flattened into one node table. Each node knows its
successor: the next step in its list, or, for the last step of a list, the
conditional's successor, the enclosing loop node, or the END sentinel.

Key Components:
- CompiledGraph: node table + entry node for one workflow definition
- validate_workflow: static checks reported as ValidationIssue entries
- compile_workflow: validate, then link; raises WorkflowConfigError
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from ..nodes import LOOP_BREAK_KEY, LOOP_STATE_KEY, NodeLinks, NodeRuntime, create_node
from .definitions import (
    CodeStep,
    ConditionalStep,
    LoopStep,
    NestedWorkflowStep,
    StepDefinition,
    WorkflowDefinition,
    iter_steps,
)
from .errors import WorkflowConfigError
from .safe_eval import validate_condition_expression
from .state import END

if TYPE_CHECKING:
    from ..handlers.registry import HandlerRegistry

logger = logging.getLogger(__name__)


class ValidationIssue:
    """Workflow validation finding.

    Attributes:
        code: Issue code
        message: Human-readable message
        severity: "error" or "warning"
        node_ids: Affected step ids
        context: Additional detail
    """

    def __init__(
        self,
        code: str,
        message: str,
        severity: str,
        node_ids: List[str],
        context: Optional[Dict[str, Any]] = None,
    ):
        self.code = code
        self.message = message
        self.severity = severity
        self.node_ids = node_ids
        self.context = context or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "severity": self.severity,
            "node_ids": self.node_ids,
            "context": self.context,
        }


class ValidationResult:
    def __init__(self, errors: List[ValidationIssue], warnings: List[ValidationIssue]):
        self.errors = errors
        self.warnings = warnings

    @property
    def valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
        }


def validate_workflow(
    workflow: WorkflowDefinition,
    handlers: Optional["HandlerRegistry"] = None,
) -> ValidationResult:
    """Validate a workflow definition without executing it.

    Checks:
    - Code steps reference registered handlers (when a registry is given)
    - Conditional expressions are syntactically safe
    - Nested workflow steps do not call their own workflow
    - Loop item variables do not shadow the reserved loop keys
    """
    errors: List[ValidationIssue] = []
    warnings: List[ValidationIssue] = []

    for step in iter_steps(workflow.steps):
        if isinstance(step, CodeStep) and handlers is not None and step.handler not in handlers:
            errors.append(ValidationIssue(
                code="UNKNOWN_HANDLER",
                message=f"Step {step.id} references unregistered handler '{step.handler}'",
                severity="error",
                node_ids=[step.id],
                context={"handler": step.handler},
            ))

        elif isinstance(step, ConditionalStep):
            for err in validate_condition_expression(step.condition):
                errors.append(ValidationIssue(
                    code="INVALID_CONDITION",
                    message=f"Step {step.id} has an invalid condition: {err}",
                    severity="error",
                    node_ids=[step.id],
                    context={"condition": step.condition},
                ))
            if not step.then_steps and not step.else_steps:
                warnings.append(ValidationIssue(
                    code="EMPTY_CONDITIONAL",
                    message=f"Conditional {step.id} has no steps in either branch",
                    severity="warning",
                    node_ids=[step.id],
                ))

        elif isinstance(step, NestedWorkflowStep) and step.workflow_id == workflow.id:
            errors.append(ValidationIssue(
                code="RECURSIVE_WORKFLOW",
                message=f"Step {step.id} calls its own workflow '{workflow.id}'",
                severity="error",
                node_ids=[step.id],
            ))

        elif isinstance(step, LoopStep) and step.item_variable in (LOOP_STATE_KEY, LOOP_BREAK_KEY):
            errors.append(ValidationIssue(
                code="RESERVED_ITEM_VARIABLE",
                message=f"Loop {step.id} uses reserved item variable '{step.item_variable}'",
                severity="error",
                node_ids=[step.id],
            ))

    return ValidationResult(errors=errors, warnings=warnings)


@dataclass
class CompiledGraph:
    workflow: WorkflowDefinition
    nodes: Dict[str, NodeRuntime]
    entry: str

    def get(self, node_id: str) -> NodeRuntime:
        if node_id not in self.nodes:
            raise WorkflowConfigError(
                f"Unknown node id '{node_id}' in workflow '{self.workflow.id}'"
            )
        return self.nodes[node_id]


def _link_steps(
    steps: List[StepDefinition],
    successor: str,
    enclosing_loop: Optional[str],
    nodes: Dict[str, NodeRuntime],
) -> None:
    for index, step in enumerate(steps):
        following = steps[index + 1].id if index + 1 < len(steps) else successor

        if isinstance(step, ConditionalStep):
            _link_steps(step.then_steps, following, enclosing_loop, nodes)
            _link_steps(step.else_steps, following, enclosing_loop, nodes)
        elif isinstance(step, LoopStep):
            # The body returns to the loop node after its last step
            _link_steps(step.steps, step.id, step.id, nodes)

        nodes[step.id] = create_node(step, NodeLinks(successor=following, enclosing_loop=enclosing_loop))


def compile_workflow(
    workflow: WorkflowDefinition,
    handlers: Optional["HandlerRegistry"] = None,
) -> CompiledGraph:
    """Validate and link a workflow definition.

    Raises:
        WorkflowConfigError: if validation reports any error
    """
    result = validate_workflow(workflow, handlers)
    for warning in result.warnings:
        logger.warning(f"Workflow {workflow.id}: {warning.message}")
    if not result.valid:
        messages = "; ".join(e.message for e in result.errors)
        raise WorkflowConfigError(f"Workflow '{workflow.id}' is invalid: {messages}")

    nodes: Dict[str, NodeRuntime] = {}
    _link_steps(workflow.steps, END, None, nodes)
    return CompiledGraph(workflow=workflow, nodes=nodes, entry=workflow.steps[0].id)
