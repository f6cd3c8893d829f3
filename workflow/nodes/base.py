"""Node runtime base types.

A node runtime wraps one step definition. ``execute`` reads the current
state and returns a NodePatch; it must not mutate the state it is given.
``next`` is called after the patch has been merged and picks the following
node id.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable, ClassVar, Dict, Optional

from ..agents.base import LLMAgent
from ..engine.definitions import StepDefinition, StepType
from ..engine.state import ExecutionResult, ExecutionState, NodePatch
from ..settings import LLM_RETRY_BASE_DELAY

if TYPE_CHECKING:
    from ..handlers.registry import HandlerRegistry

# Context key a Code handler sets to end the enclosing loop early
LOOP_BREAK_KEY = "loop_break"

# Context key holding loop cursors: {loop_id: {"index": int, "limit": int}}
LOOP_STATE_KEY = "_loops"

ChildRunner = Callable[[str, Dict[str, Any], str], Awaitable[ExecutionResult]]


@dataclass
class NodeLinks:
    """Static wiring computed by the graph builder.

    Attributes:
        successor: Node that follows this one in its step list (or the
            enclosing loop / the END sentinel when it is the last step)
        enclosing_loop: Id of the innermost loop whose body contains this node
    """

    successor: str
    enclosing_loop: Optional[str] = None


@dataclass
class NodeContext:
    """Collaborators a node may use while executing."""

    execution_id: str
    agent: LLMAgent
    handlers: "HandlerRegistry"
    run_child: ChildRunner
    llm_retry_base_delay: float = LLM_RETRY_BASE_DELAY


class NodeRuntime(ABC):
    """Executable wrapper around one step definition."""

    step_type: ClassVar[StepType]

    def __init__(self, step: StepDefinition, links: NodeLinks):
        self.step = step
        self.links = links

    @property
    def node_id(self) -> str:
        return self.step.id

    @abstractmethod
    async def execute(self, state: ExecutionState, ctx: NodeContext) -> NodePatch:
        ...

    def next(self, state: ExecutionState) -> str:
        if self.links.enclosing_loop and state.context.get(LOOP_BREAK_KEY):
            return self.links.enclosing_loop
        return self.links.successor

    def executions(self, state: ExecutionState) -> int:
        """How many times this node has started, including the current run."""
        node_state = state.node_states.get(self.node_id)
        return node_state.executions if node_state else 0

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.node_id}>"
