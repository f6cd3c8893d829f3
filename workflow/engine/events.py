"""Execution events and the broadcaster contract.

The engine emits a fixed set of events; an external transport (the SSE
EventBus in the HTTP service) relays them to clients.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Protocol, runtime_checkable


class EventType(str, Enum):
    NODE_STARTED = "node_started"
    NODE_COMPLETED = "node_completed"
    WORKFLOW_PAUSED = "workflow_paused"
    WORKFLOW_RESUMED = "workflow_resumed"
    STEP_ERROR = "step_error"
    PLANNING_COMPLETED = "planning_completed"
    PLANNING_FAILED = "planning_failed"


# Events after which no further events arrive until the next resume/start
STREAM_END_EVENTS = frozenset({
    EventType.WORKFLOW_PAUSED,
    EventType.PLANNING_COMPLETED,
    EventType.PLANNING_FAILED,
})


@dataclass
class ExecutionEvent:
    type: EventType
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type.value, "timestamp": self.timestamp, **self.data}


@runtime_checkable
class Broadcaster(Protocol):
    async def broadcast(self, execution_id: str, event: ExecutionEvent) -> None:
        ...


class NullBroadcaster:
    """Discards events; used when no transport is attached."""

    async def broadcast(self, execution_id: str, event: ExecutionEvent) -> None:
        return None
