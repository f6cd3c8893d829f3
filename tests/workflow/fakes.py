"""Scripted fakes for the engine's collaborators:
- FakeAgent: answers LLM requests from a queue or a responder function
- RecordingBroadcaster: keeps every emitted ExecutionEvent
"""

from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Optional, Tuple

from workflow.agents.base import LLMRequest, LLMResponse
from workflow.engine.events import ExecutionEvent
from workflow.nodes.question import QUESTION_SCHEMA
from workflow.workflows.topic_qa import COMPLETENESS_SCHEMA, FOLLOW_UP_SCHEMA


# ---------------------------------------------------------------------------
# Fake LLM agent
# ---------------------------------------------------------------------------


def as_response(value: Any) -> LLMResponse:
    """dict → structured response, str → plain text response."""
    if isinstance(value, LLMResponse):
        return value
    if isinstance(value, dict):
        return LLMResponse(content=json.dumps(value), structured=value, tokens_used=10)
    return LLMResponse(content=str(value), tokens_used=5)


class FakeAgent:
    """Scripted LLMAgent.

    Each call takes the next queued item, or asks ``responder`` when the
    queue is empty. An Exception item is raised instead of returned.
    """

    def __init__(
        self,
        responses: Optional[List[Any]] = None,
        responder: Optional[Callable[[LLMRequest], Any]] = None,
    ):
        self.queue = list(responses or [])
        self.responder = responder
        self.requests: List[LLMRequest] = []

    async def call(self, request: LLMRequest) -> LLMResponse:
        self.requests.append(request)
        if self.queue:
            item = self.queue.pop(0)
        elif self.responder is not None:
            item = self.responder(request)
        else:
            raise AssertionError(f"FakeAgent has no response for: {request.user_prompt[:80]}")
        if isinstance(item, Exception):
            raise item
        return as_response(item)


class InterviewResponder:
    """Answers the topic interview's three request kinds by output schema.

    Args:
        follow_up: Value of follow_up_needed returned by every follow-up check
        gaps: Gaps returned by the completeness check
    """

    def __init__(self, follow_up: bool = True, gaps: Optional[List[Dict[str, str]]] = None):
        self.follow_up = follow_up
        self.gaps = gaps or []
        self.questions_generated = 0

    def __call__(self, request: LLMRequest) -> Dict[str, Any]:
        if request.output_schema == QUESTION_SCHEMA:
            self.questions_generated += 1
            return {"question": f"Generated question {self.questions_generated}?"}
        if request.output_schema == FOLLOW_UP_SCHEMA:
            return {"follow_up_needed": self.follow_up, "reasoning": "scripted"}
        if request.output_schema == COMPLETENESS_SCHEMA:
            return {"complete": not self.gaps, "gaps": self.gaps, "summary": "Scripted summary"}
        raise AssertionError(f"unexpected schema: {request.output_schema}")


# ---------------------------------------------------------------------------
# Broadcaster
# ---------------------------------------------------------------------------


class RecordingBroadcaster:
    def __init__(self):
        self.events: List[Tuple[str, ExecutionEvent]] = []

    async def broadcast(self, execution_id: str, event: ExecutionEvent) -> None:
        self.events.append((execution_id, event))

    def types(self, execution_id: Optional[str] = None) -> List[str]:
        return [
            event.type.value
            for eid, event in self.events
            if execution_id is None or eid == execution_id
        ]

    def of_type(self, event_type: str) -> List[ExecutionEvent]:
        return [event for _, event in self.events if event.type.value == event_type]


