"""Loop node: bounded iteration over a context collection.

The loop node is visited once on entry and once after every pass through its
body. Its cursor lives in the context under LOOP_STATE_KEY, so a state
reloaded from the store continues with the same item.
"""

from __future__ import annotations

import logging
from typing import Any, List

from ..engine.definitions import LoopStep, StepType
from ..engine.errors import StepExecutionError
from ..engine.state import ExecutionState, NodePatch
from ..engine.templating import resolve_path
from .base import LOOP_BREAK_KEY, LOOP_STATE_KEY, NodeContext, NodeLinks, NodeRuntime

logger = logging.getLogger(__name__)


class LoopNode(NodeRuntime):
    step_type = StepType.LOOP
    step: LoopStep

    def __init__(self, step: LoopStep, links: NodeLinks):
        super().__init__(step, links)
        self.body_entry = step.steps[0].id

    def _items(self, state: ExecutionState) -> List[Any]:
        value = resolve_path(state.context, self.step.collection)
        if value is None:
            return []
        if not isinstance(value, (list, tuple)):
            raise StepExecutionError(
                self.node_id,
                f"collection '{self.step.collection}' is {type(value).__name__}, expected a list",
            )
        return list(value)

    async def execute(self, state: ExecutionState, ctx: NodeContext) -> NodePatch:
        cursors = dict(state.context.get(LOOP_STATE_KEY) or {})
        cursor = cursors.get(self.node_id)
        items = self._items(state)

        if cursor is None:
            index = 0
            limit = min(len(items), self.step.max_iterations)
            broke = False
        else:
            index = cursor["index"] + 1
            limit = cursor["limit"]
            broke = bool(state.context.get(LOOP_BREAK_KEY))

        if broke or index >= limit or index >= len(items):
            cursors.pop(self.node_id, None)
            reason = "break" if broke else ("max_iterations" if index >= self.step.max_iterations else "exhausted")
            logger.debug(f"Loop {self.node_id} finished after {index} iteration(s): {reason}")
            return NodePatch(
                context={LOOP_STATE_KEY: cursors, LOOP_BREAK_KEY: False},
                result={"iterations": index, "done": True, "reason": reason},
            )

        cursors[self.node_id] = {"index": index, "limit": limit}
        return NodePatch(
            context={
                LOOP_STATE_KEY: cursors,
                LOOP_BREAK_KEY: False,
                self.step.item_variable: items[index],
            },
            result={"iteration": index + 1, "done": False},
        )

    def next(self, state: ExecutionState) -> str:
        if self.node_id in (state.context.get(LOOP_STATE_KEY) or {}):
            return self.body_entry
        return self.links.successor
