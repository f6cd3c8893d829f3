"""Question node: present one question or a batch, optionally pausing.

Static questions come from the step itself or from a list in the context.
Generated questions cost exactly one agent call scoped to a topic object.
Question ids are derived from the node id and its execution count, so a
replayed run produces the same ids.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ..agents.base import LLMRequest
from ..agents.llm_utils import call_with_retry, require_structured
from ..engine.definitions import QuestionStep, StepType
from ..engine.errors import StepExecutionError
from ..engine.state import ConversationEntry, ExecutionState, NodePatch
from ..engine.templating import render_template, resolve_path
from ..settings import LLM_MAX_RETRIES
from .base import NodeContext, NodeRuntime

logger = logging.getLogger(__name__)

QUESTION_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "question": {"type": "string"},
        "type": {"type": "string", "enum": ["text", "choice", "multi_choice"]},
        "options": {"type": "array", "items": {"type": "string"}},
        "rationale": {"type": "string"},
    },
    "required": ["question"],
}

GENERATED_SYSTEM_PROMPT = (
    "You are a product interviewer gathering requirements. Ask exactly one clear, "
    "specific question about the given topic. Do not repeat questions already answered."
)

DEFAULT_GENERATED_PROMPT = (
    "Topic: {{topic.name}}\n"
    "Description: {{topic.description}}\n\n"
    "Answers so far:\n{{answers}}\n\n"
    "Ask the next question for this topic."
)


class QuestionNode(NodeRuntime):
    step_type = StepType.QUESTION
    step: QuestionStep

    def _normalize(self, raw: Any, position: int, state: ExecutionState, topic: Optional[dict]) -> Dict[str, Any]:
        if isinstance(raw, str):
            raw = {"question": raw}
        if not isinstance(raw, dict) or not raw.get("question"):
            raise StepExecutionError(self.node_id, f"invalid question at position {position}: {raw!r}")
        question = {
            "id": raw.get("id") or f"{self.node_id}-{self.executions(state)}-{position + 1}",
            "question": render_template(str(raw["question"]), state.context),
            "type": raw.get("type", "text"),
            "options": list(raw.get("options") or []),
            "node_id": self.node_id,
        }
        topic_id = raw.get("topic_id") or (topic or {}).get("id")
        if topic_id:
            question["topic_id"] = topic_id
        return question

    def _static_questions(self, state: ExecutionState) -> List[Any]:
        if self.step.questions_path:
            batch = resolve_path(state.context, self.step.questions_path)
            if batch is None:
                return []
            if not isinstance(batch, list):
                raise StepExecutionError(
                    self.node_id, f"questions_path '{self.step.questions_path}' is not a list"
                )
            return batch
        return [self.step.question]

    async def _generated_question(self, state: ExecutionState, ctx: NodeContext, topic: dict) -> Dict[str, Any]:
        prompt_context = {**state.context, "topic": topic}
        request = LLMRequest(
            user_prompt=render_template(self.step.prompt or DEFAULT_GENERATED_PROMPT, prompt_context),
            system_prompt=GENERATED_SYSTEM_PROMPT,
            output_schema=QUESTION_SCHEMA,
            max_tokens=self.step.max_tokens,
            temperature=self.step.temperature,
        )
        response = await call_with_retry(
            ctx.agent,
            request,
            max_retries=LLM_MAX_RETRIES,
            caller=f"question:{self.node_id}",
            base_delay=ctx.llm_retry_base_delay,
        )
        return require_structured(response, caller=f"question:{self.node_id}")

    async def execute(self, state: ExecutionState, ctx: NodeContext) -> NodePatch:
        topic = None
        if self.step.question_source == "generated":
            topic = resolve_path(state.context, self.step.topic_path)
            if not isinstance(topic, dict):
                raise StepExecutionError(self.node_id, f"no topic found at '{self.step.topic_path}'")
            raw_questions = [await self._generated_question(state, ctx, topic)]
        else:
            raw_questions = self._static_questions(state)

        questions = [self._normalize(q, i, state, topic) for i, q in enumerate(raw_questions)]
        if not questions:
            logger.info(f"Node {self.node_id}: no questions to ask, continuing")
            return NodePatch(context={"last_question_ids": []}, result={"asked": 0})

        log = list(state.context.get("question_log") or [])
        log.extend(questions)
        return NodePatch(
            context={
                "question_log": log,
                "last_question_ids": [q["id"] for q in questions],
            },
            conversation=[
                ConversationEntry(role="assistant", content=q["question"], node_id=self.node_id)
                for q in questions
            ],
            result={"asked": len(questions), "question_ids": [q["id"] for q in questions]},
            wait_for_input=self.step.pause,
            questions=questions,
        )
