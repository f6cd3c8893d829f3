"""Code node: runs a registered handler."""

from __future__ import annotations

from ..engine.definitions import CodeStep, StepType
from ..engine.state import ExecutionState, NodePatch
from .base import NodeContext, NodeRuntime


class CodeNode(NodeRuntime):
    step_type = StepType.CODE
    step: CodeStep

    async def execute(self, state: ExecutionState, ctx: NodeContext) -> NodePatch:
        updates = await ctx.handlers.invoke(self.step.handler, state.context, self.step.input)
        return NodePatch(context=updates, result={"handler": self.step.handler, "keys": sorted(updates)})
