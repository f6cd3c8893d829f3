"""Shared LLM utilities: bounded retry around one agent call + JSON parsing.

Agents perform a single attempt and classify failures; ``call_with_retry`` is
what an LLM-backed node wraps around that attempt.
"""

import asyncio
import json
import logging
import random
import re
from typing import Dict, Optional

from ..engine.errors import LLMCallError, LLMTransientError
from ..settings import LLM_RETRY_BASE_DELAY, LLM_RETRY_MAX_DELAY
from .base import LLMAgent, LLMRequest, LLMResponse

logger = logging.getLogger(__name__)

# Substrings that mark a failure as rate limiting / overload
RATE_LIMIT_MARKERS = ("rate", "429", "overloaded", "529", "too many", "throttl")


def looks_rate_limited(message: str) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in RATE_LIMIT_MARKERS)


def backoff_delay(
    attempt: int,
    base_delay: float = LLM_RETRY_BASE_DELAY,
    max_delay: float = LLM_RETRY_MAX_DELAY,
    retry_after: Optional[float] = None,
) -> float:
    """Exponential backoff with +/-25% jitter for retry number ``attempt`` (1-based)."""
    base = min(base_delay * (2 ** (attempt - 1)), max_delay)
    if retry_after is not None:
        base = max(base, retry_after)
    return base * (1.0 + random.uniform(-0.25, 0.25))


async def call_with_retry(
    agent: LLMAgent,
    request: LLMRequest,
    *,
    max_retries: int,
    caller: str = "LLM",
    base_delay: float = LLM_RETRY_BASE_DELAY,
    max_delay: float = LLM_RETRY_MAX_DELAY,
) -> LLMResponse:
    """Call ``agent`` once, retrying only ``LLMTransientError`` up to ``max_retries`` times.

    Raises the last transient error when retries are exhausted; any other
    exception propagates immediately.
    """
    attempts = 1 + max(0, max_retries)
    last_error: Optional[LLMTransientError] = None

    for attempt in range(attempts):
        if attempt > 0:
            delay = backoff_delay(attempt, base_delay, max_delay, last_error.retry_after)
            logger.warning(
                f"{caller}: retry {attempt}/{max_retries} after {delay:.1f}s "
                f"(previous error: {last_error})"
            )
            await asyncio.sleep(delay)
        try:
            return await agent.call(request)
        except LLMTransientError as e:
            last_error = e

    raise last_error


def parse_llm_json(raw: str, caller: str = "LLM") -> Optional[Dict]:
    """Parse JSON from LLM response, handling markdown fences and preamble.

    Tries in order: direct parse -> strip leading fence -> regex fence -> outermost braces.
    """
    if not raw:
        return None

    text = raw.strip()

    if text.startswith("```"):
        lines = text.split("\n")[1:]
        if lines and lines[-1].strip() == "```":
            lines = lines[:-1]
        text = "\n".join(lines).strip()

    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    fence_match = re.search(r"```(?:json)?\s*\n(.*?)\n```", text, re.DOTALL)
    if fence_match:
        try:
            return json.loads(fence_match.group(1))
        except json.JSONDecodeError:
            pass

    brace_start = text.find("{")
    brace_end = text.rfind("}")
    if brace_start >= 0 and brace_end > brace_start:
        try:
            return json.loads(text[brace_start:brace_end + 1])
        except json.JSONDecodeError:
            pass

    logger.error(f"{caller}: JSON parse error, raw[:500]: {text[:500]}")
    return None


def require_structured(response: LLMResponse, caller: str) -> Dict:
    """Return the structured object of a schema-constrained response."""
    if response.structured is not None:
        return response.structured
    parsed = parse_llm_json(response.content, caller)
    if not isinstance(parsed, dict):
        raise LLMCallError(f"{caller}: response did not contain a JSON object")
    return parsed
