"""Conditional node: picks the then or else branch."""

from __future__ import annotations

from typing import Optional

from ..engine.definitions import ConditionalStep, StepType
from ..engine.safe_eval import evaluate_condition
from ..engine.state import ExecutionState, NodePatch
from .base import NodeContext, NodeLinks, NodeRuntime


class ConditionalNode(NodeRuntime):
    step_type = StepType.CONDITIONAL
    step: ConditionalStep

    def __init__(self, step: ConditionalStep, links: NodeLinks):
        super().__init__(step, links)
        self.then_entry: Optional[str] = step.then_steps[0].id if step.then_steps else None
        self.else_entry: Optional[str] = step.else_steps[0].id if step.else_steps else None

    async def execute(self, state: ExecutionState, ctx: NodeContext) -> NodePatch:
        matched = evaluate_condition(self.step.condition, state.context)
        return NodePatch(result={"branch": "then" if matched else "else"})

    def next(self, state: ExecutionState) -> str:
        node_state = state.node_states.get(self.node_id)
        branch = node_state.result.get("branch") if node_state and node_state.result else "else"
        entry = self.then_entry if branch == "then" else self.else_entry
        # An empty branch falls through to the step after the conditional
        return entry or super().next(state)
