"""Nested workflow node: call another workflow and wait for it to return."""

from __future__ import annotations

import logging

from ..engine.definitions import NestedWorkflowStep, StepType
from ..engine.errors import NestedWorkflowError
from ..engine.state import ExecutionState, ExecutionStatus, NodePatch
from ..engine.templating import resolve_path
from .base import NodeContext, NodeRuntime

logger = logging.getLogger(__name__)


class NestedWorkflowNode(NodeRuntime):
    step_type = StepType.NESTED_WORKFLOW
    step: NestedWorkflowStep

    async def execute(self, state: ExecutionState, ctx: NodeContext) -> NodePatch:
        child_input = dict(self.step.input)
        for key, path in self.step.input_mapping.items():
            child_input[key] = resolve_path(state.context, path)

        # Stable id so a replayed node picks up the same child execution
        child_id = f"{ctx.execution_id}/{self.node_id}/{self.executions(state)}"
        logger.info(f"Node {self.node_id}: starting child workflow {self.step.workflow_id} as {child_id}")

        result = await ctx.run_child(self.step.workflow_id, child_input, child_id)
        if result.status is not ExecutionStatus.COMPLETED:
            raise NestedWorkflowError(self.node_id, child_id, result.status.value, result.error)

        return NodePatch(
            context={self.step.output_key: result.context},
            result={"child_execution_id": child_id, "workflow_id": self.step.workflow_id},
        )
