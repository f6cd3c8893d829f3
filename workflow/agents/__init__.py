"""LLM agent backends."""

from .base import LLMAgent, LLMRequest, LLMResponse

__all__ = ["LLMAgent", "LLMRequest", "LLMResponse", "build_agent"]


def build_agent(backend: str) -> LLMAgent:
    """Construct the agent for ``backend`` ("cli" or "api")."""
    if backend == "cli":
        from .claude import ClaudeCliAgent
        return ClaudeCliAgent()
    if backend == "api":
        from .anthropic_api import AnthropicApiAgent
        return AnthropicApiAgent()
    raise ValueError(f"Unknown LLM backend: {backend}")
