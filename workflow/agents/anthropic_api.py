"""Anthropic Messages API agent on the ``anthropic`` SDK."""
from __future__ import annotations

import logging
from typing import Optional

import anthropic

from ..config import ANTHROPIC_API_KEY, ANTHROPIC_BASE_URL, LLM_DEFAULT_MODEL
from ..engine.errors import LLMCallError, LLMTransientError
from ..settings import LLM_CALL_TIMEOUT
from .base import LLMRequest, LLMResponse, schema_instruction
from .llm_utils import parse_llm_json

logger = logging.getLogger(__name__)

_TRANSIENT_STATUS = {408, 409, 429, 529}


def _retry_after(error: anthropic.APIStatusError) -> Optional[float]:
    """Seconds from a numeric ``retry-after`` header; HTTP dates are ignored."""
    value = error.response.headers.get("retry-after")
    if not value:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        return None


class AnthropicApiAgent:
    """LLMAgent calling the Messages API through ``anthropic.AsyncAnthropic``.

    The SDK's own retries are disabled; ``call_with_retry`` owns the retry
    policy. Tests inject a client whose ``http_client`` runs on
    ``httpx.MockTransport``.
    """

    def __init__(
        self,
        api_key: str = ANTHROPIC_API_KEY,
        base_url: str = ANTHROPIC_BASE_URL,
        default_model: str = LLM_DEFAULT_MODEL,
        client: Optional[anthropic.AsyncAnthropic] = None,
        timeout: float = LLM_CALL_TIMEOUT,
    ):
        if client is None and not api_key:
            raise ValueError("ANTHROPIC_API_KEY is required for the api backend")
        self.default_model = default_model
        self._client = client or anthropic.AsyncAnthropic(
            api_key=api_key, base_url=base_url, timeout=timeout, max_retries=0,
        )
        self._owns_client = client is None

    async def close(self) -> None:
        if self._owns_client:
            await self._client.close()

    def _params(self, request: LLMRequest) -> dict:
        system = request.system_prompt
        if request.output_schema:
            system = f"{system}\n\n{schema_instruction(request.output_schema)}".strip()
        params = {
            "model": request.model or self.default_model,
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
            "messages": [{"role": "user", "content": request.user_prompt}],
        }
        if system:
            params["system"] = system
        return params

    async def call(self, request: LLMRequest) -> LLMResponse:
        try:
            message = await self._client.messages.create(**self._params(request))
        except anthropic.APIConnectionError as e:
            # APITimeoutError is a subclass
            raise LLMTransientError(f"Anthropic API request failed: {e}") from e
        except anthropic.RateLimitError as e:
            logger.warning(f"Anthropic API rate limited: {e}")
            raise LLMTransientError(
                f"Anthropic API returned {e.status_code}", retry_after=_retry_after(e)
            ) from e
        except anthropic.APIStatusError as e:
            if e.status_code >= 500 or e.status_code in _TRANSIENT_STATUS:
                raise LLMTransientError(
                    f"Anthropic API returned {e.status_code}", retry_after=_retry_after(e)
                ) from e
            raise LLMCallError(f"Anthropic API returned {e.status_code}: {str(e)[:500]}") from e

        content = "".join(
            block.text for block in message.content if getattr(block, "type", None) == "text"
        )
        usage = {
            "input_tokens": message.usage.input_tokens or 0,
            "output_tokens": message.usage.output_tokens or 0,
        }
        structured = None
        if request.output_schema:
            structured = parse_llm_json(content, caller="AnthropicApiAgent")

        return LLMResponse(
            content=content,
            structured=structured,
            tokens_used=sum(usage.values()),
            finish_reason=message.stop_reason or "stop",
            usage=usage,
        )
