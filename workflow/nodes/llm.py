"""LLM node: one bounded agent call, merged into context."""

from __future__ import annotations

import logging

from ..agents.base import LLMRequest
from ..agents.llm_utils import call_with_retry, require_structured
from ..engine.definitions import LLMStep, StepType
from ..engine.state import ConversationEntry, ExecutionState, NodePatch
from ..engine.templating import render_template
from .base import NodeContext, NodeRuntime

logger = logging.getLogger(__name__)


class LLMNode(NodeRuntime):
    step_type = StepType.LLM
    step: LLMStep

    def build_request(self, state: ExecutionState) -> LLMRequest:
        return LLMRequest(
            user_prompt=render_template(self.step.user_prompt, state.context),
            system_prompt=render_template(self.step.system_prompt, state.context),
            model=self.step.model,
            output_schema=self.step.output_schema,
            max_tokens=self.step.max_tokens,
            temperature=self.step.temperature,
        )

    async def execute(self, state: ExecutionState, ctx: NodeContext) -> NodePatch:
        request = self.build_request(state)
        response = await call_with_retry(
            ctx.agent,
            request,
            max_retries=self.step.max_retries,
            caller=f"llm:{self.node_id}",
            base_delay=ctx.llm_retry_base_delay,
        )

        structured = None
        if self.step.output_schema:
            structured = require_structured(response, caller=f"llm:{self.node_id}")

        updates = {
            self.step.output_key: {
                "content": response.content,
                "structured": structured,
                "tokens_used": response.tokens_used,
                "finish_reason": response.finish_reason,
            },
        }
        if self.step.merge_structured and structured:
            updates.update(structured)

        logger.info(f"Node {self.node_id}: LLM call used {response.tokens_used} tokens")
        return NodePatch(
            context=updates,
            conversation=[
                ConversationEntry(role="user", content=request.user_prompt, node_id=self.node_id),
                ConversationEntry(role="assistant", content=response.content, node_id=self.node_id),
            ],
            result={"tokens_used": response.tokens_used, "finish_reason": response.finish_reason},
        )
