"""LLM agent contract shared by all backends."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol, runtime_checkable


@dataclass
class LLMRequest:
    user_prompt: str
    system_prompt: str = ""
    model: Optional[str] = None
    output_schema: Optional[Dict[str, Any]] = None
    max_tokens: int = 2000
    temperature: float = 0.7


@dataclass
class LLMResponse:
    content: str
    structured: Optional[Dict[str, Any]] = None
    tokens_used: int = 0
    finish_reason: str = "stop"
    usage: Dict[str, int] = field(default_factory=dict)


@runtime_checkable
class LLMAgent(Protocol):
    """Performs exactly one model call; retry policy belongs to the caller."""

    async def call(self, request: LLMRequest) -> LLMResponse:
        ...


def schema_instruction(schema: Dict[str, Any]) -> str:
    return (
        "Respond with a single JSON object only, no prose and no markdown fences. "
        "It must match this JSON schema:\n"
        f"{json.dumps(schema, indent=2)}"
    )
