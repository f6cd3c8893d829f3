"""Execution state model.

One ExecutionState exists per running workflow instance. The engine mutates
it only between nodes and persists it after every completed node, so any
stored snapshot is a valid resume point.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

# Terminal sentinels for current_node
END = "__end__"
ERROR = "__error__"
TERMINAL_NODES = frozenset({END, ERROR})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ExecutionStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    PAUSED = "paused"
    WAITING_FOR_INPUT = "waiting_for_input"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (ExecutionStatus.COMPLETED, ExecutionStatus.FAILED, ExecutionStatus.CANCELLED)

    @property
    def is_suspended(self) -> bool:
        return self in (ExecutionStatus.PAUSED, ExecutionStatus.WAITING_FOR_INPUT)


class NodeStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class NodeState(BaseModel):
    status: NodeStatus = NodeStatus.PENDING
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    executions: int = 0
    result: Optional[Any] = None
    error: Optional[str] = None


class ConversationEntry(BaseModel):
    role: str
    content: str
    node_id: Optional[str] = None


class ExecutionState(BaseModel):
    """Persisted snapshot of one workflow execution."""

    execution_id: str
    workflow_id: str
    current_node: str
    status: ExecutionStatus = ExecutionStatus.PENDING
    context: Dict[str, Any] = Field(default_factory=dict)
    conversation_history: List[ConversationEntry] = Field(default_factory=list)
    node_states: Dict[str, NodeState] = Field(default_factory=dict)
    pending_questions: List[Dict[str, Any]] = Field(default_factory=list)
    retry_count: int = 0
    last_error: Optional[str] = None
    failed_node: Optional[str] = None
    parent_execution_id: Optional[str] = None
    started_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    completed_at: Optional[datetime] = None

    def node_state(self, node_id: str) -> NodeState:
        if node_id not in self.node_states:
            self.node_states[node_id] = NodeState()
        return self.node_states[node_id]

    def touch(self) -> None:
        self.updated_at = _utcnow()

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "ExecutionState":
        return cls.model_validate(data)


@dataclass
class NodePatch:
    """Partial state produced by one node execution.

    Attributes:
        context: Keys shallow-merged into the execution context
        conversation: Entries appended to the conversation history
        result: Stored on the node's NodeState
        wait_for_input: Suspend the engine after this node
        questions: Pending questions presented to the user
    """

    context: Dict[str, Any] = field(default_factory=dict)
    conversation: List[ConversationEntry] = field(default_factory=list)
    result: Any = None
    wait_for_input: bool = False
    questions: List[Dict[str, Any]] = field(default_factory=list)

    def apply(self, state: ExecutionState) -> None:
        state.context.update(self.context)
        state.conversation_history.extend(self.conversation)


@dataclass
class ExecutionResult:
    """What the engine returns to its caller after a run stops."""

    execution_id: str
    status: ExecutionStatus
    current_node: str
    context: Dict[str, Any] = field(default_factory=dict)
    pending_questions: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def waiting_for_input(self) -> bool:
        return self.status is ExecutionStatus.WAITING_FOR_INPUT

    @classmethod
    def from_state(cls, state: ExecutionState) -> "ExecutionResult":
        return cls(
            execution_id=state.execution_id,
            status=state.status,
            current_node=state.current_node,
            context=dict(state.context),
            pending_questions=list(state.pending_questions),
            error=state.last_error,
        )
