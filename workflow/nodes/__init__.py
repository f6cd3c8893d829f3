"""Node runtimes, one per step type.

NODE_RUNTIMES is the closed dispatch table from StepType to runtime class.
"""

from typing import Dict, Type

from ..engine.definitions import StepDefinition, StepType
from .base import LOOP_BREAK_KEY, LOOP_STATE_KEY, NodeContext, NodeLinks, NodeRuntime
from .code import CodeNode
from .conditional import ConditionalNode
from .llm import LLMNode
from .loop import LoopNode
from .nested import NestedWorkflowNode
from .question import QuestionNode

NODE_RUNTIMES: Dict[StepType, Type[NodeRuntime]] = {
    StepType.CODE: CodeNode,
    StepType.LLM: LLMNode,
    StepType.QUESTION: QuestionNode,
    StepType.CONDITIONAL: ConditionalNode,
    StepType.LOOP: LoopNode,
    StepType.NESTED_WORKFLOW: NestedWorkflowNode,
}

_missing = set(StepType) - set(NODE_RUNTIMES)
if _missing:
    raise RuntimeError(f"No node runtime for step types: {sorted(t.value for t in _missing)}")


def create_node(step: StepDefinition, links: NodeLinks) -> NodeRuntime:
    """Wrap a step definition in its runtime."""
    return NODE_RUNTIMES[step.type](step, links)


__all__ = [
    "LOOP_BREAK_KEY",
    "LOOP_STATE_KEY",
    "NODE_RUNTIMES",
    "NodeContext",
    "NodeLinks",
    "NodeRuntime",
    "create_node",
]
