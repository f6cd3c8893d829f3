"""LLM agent backends and shared LLM utilities (workflow/agents/)."""

import json
import logging

import anthropic
import httpx
import pytest

from tests.workflow.fakes import FakeAgent
from workflow.agents import build_agent
from workflow.agents.anthropic_api import AnthropicApiAgent
from workflow.agents.base import LLMRequest, LLMResponse
from workflow.agents.claude import ClaudeCliAgent, build_cli_args, clean_env
from workflow.agents.llm_utils import (
    backoff_delay,
    call_with_retry,
    looks_rate_limited,
    parse_llm_json,
    require_structured,
)
from workflow.engine.errors import LLMCallError, LLMTransientError


def _api_agent(handler):
    client = anthropic.AsyncAnthropic(
        api_key="test-key",
        base_url="https://llm.test",
        max_retries=0,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    return AnthropicApiAgent(client=client)


def _message(text, stop_reason="end_turn"):
    return {
        "id": "msg_01",
        "type": "message",
        "role": "assistant",
        "model": "claude-test",
        "content": [{"type": "text", "text": text}],
        "stop_reason": stop_reason,
        "stop_sequence": None,
        "usage": {"input_tokens": 12, "output_tokens": 8},
    }


class TestAnthropicApiAgent:
    @pytest.mark.asyncio
    async def test_success_with_schema(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["headers"] = request.headers
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=_message('```json\n{"question": "Why?"}\n```'))

        agent = _api_agent(handler)
        response = await agent.call(LLMRequest(
            user_prompt="Ask", system_prompt="Interviewer", output_schema={"type": "object"}, max_tokens=50,
        ))

        assert response.structured == {"question": "Why?"}
        assert response.tokens_used == 20
        assert response.finish_reason == "end_turn"
        assert seen["url"] == "https://llm.test/v1/messages"
        assert seen["headers"]["x-api-key"] == "test-key"
        assert seen["body"]["max_tokens"] == 50
        assert seen["body"]["messages"] == [{"role": "user", "content": "Ask"}]
        assert seen["body"]["system"].startswith("Interviewer")
        assert "JSON schema" in seen["body"]["system"]

    @pytest.mark.asyncio
    async def test_plain_text_has_no_structured(self):
        agent = _api_agent(lambda request: httpx.Response(200, json=_message("hello")))
        response = await agent.call(LLMRequest(user_prompt="hi"))
        assert response.content == "hello"
        assert response.structured is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [429, 500, 503, 529])
    async def test_transient_statuses(self, status):
        agent = _api_agent(lambda request: httpx.Response(status, headers={"retry-after": "3"}))
        with pytest.raises(LLMTransientError) as exc_info:
            await agent.call(LLMRequest(user_prompt="hi"))
        assert exc_info.value.retry_after == 3.0
        assert isinstance(exc_info.value.__cause__, anthropic.APIStatusError)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("header, expected", [("1.5", 1.5), ("0.25", 0.25), ("Wed, 21 Oct 2026 07:28:00 GMT", None)])
    async def test_retry_after_parsing(self, header, expected):
        agent = _api_agent(lambda request: httpx.Response(429, headers={"retry-after": header}))
        with pytest.raises(LLMTransientError) as exc_info:
            await agent.call(LLMRequest(user_prompt="hi"))
        assert exc_info.value.retry_after == expected

    @pytest.mark.asyncio
    async def test_rate_limit_is_logged(self, caplog):
        agent = _api_agent(lambda request: httpx.Response(429))
        with caplog.at_level(logging.WARNING, logger="workflow.agents.anthropic_api"):
            with pytest.raises(LLMTransientError) as exc_info:
                await agent.call(LLMRequest(user_prompt="hi"))
        assert exc_info.value.retry_after is None
        assert any("rate limited" in r.getMessage() for r in caplog.records)

    @pytest.mark.asyncio
    async def test_client_error_is_fatal(self):
        agent = _api_agent(lambda request: httpx.Response(400, text="bad model"))
        with pytest.raises(LLMCallError, match="bad model"):
            await agent.call(LLMRequest(user_prompt="hi"))

    @pytest.mark.asyncio
    async def test_transport_error_is_transient(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(LLMTransientError):
            await _api_agent(handler).call(LLMRequest(user_prompt="hi"))

    @pytest.mark.asyncio
    async def test_timeout_is_transient(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(LLMTransientError) as exc_info:
            await _api_agent(handler).call(LLMRequest(user_prompt="hi"))
        assert isinstance(exc_info.value.__cause__, anthropic.APITimeoutError)

    @pytest.mark.asyncio
    async def test_single_attempt_per_call(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503)

        with pytest.raises(LLMTransientError):
            await _api_agent(handler).call(LLMRequest(user_prompt="hi"))
        assert len(calls) == 1

    def test_requires_api_key(self):
        with pytest.raises(ValueError, match="ANTHROPIC_API_KEY"):
            AnthropicApiAgent(api_key="")


class TestClaudeCli:
    def test_build_cli_args(self):
        args = build_cli_args("prompt text", claude_bin="/bin/claude", model="m-1")
        assert args[:3] == ["/bin/claude", "-p", "prompt text"]
        assert args[args.index("--output-format") + 1] == "json"
        assert args[-2:] == ["--model", "m-1"]
        assert "--model" not in build_cli_args("p", claude_bin="claude")

    def test_clean_env_drops_nested_session_marker(self, monkeypatch):
        monkeypatch.setenv("CLAUDECODE", "1")
        assert "CLAUDECODE" not in clean_env()

    def test_prompt_includes_schema_instruction(self):
        agent = ClaudeCliAgent(claude_bin="claude")
        prompt = agent._build_prompt(LLMRequest(user_prompt="Ask", system_prompt="Sys", output_schema={"type": "object"}))
        assert prompt.startswith("Sys\n\nAsk")
        assert "JSON schema" in prompt

    @pytest.mark.asyncio
    async def test_missing_binary_is_fatal(self):
        agent = ClaudeCliAgent(claude_bin="/nonexistent/claude-binary")
        with pytest.raises(LLMCallError, match="not found"):
            await agent.call(LLMRequest(user_prompt="hi"))

    @pytest.mark.asyncio
    async def test_dropped_sampling_params_logged_once(self, caplog):
        agent = ClaudeCliAgent(claude_bin="/nonexistent/claude-binary")
        request = LLMRequest(user_prompt="hi", max_tokens=64, temperature=0.1)
        with caplog.at_level(logging.INFO, logger="workflow.agents.claude"):
            for _ in range(2):
                with pytest.raises(LLMCallError):
                    await agent.call(request)

        notices = [r for r in caplog.records if "ignores max_tokens" in r.getMessage()]
        assert len(notices) == 1
        assert "max_tokens=64" in notices[0].getMessage()
        assert "temperature=0.1" in notices[0].getMessage()
        args = build_cli_args(agent._build_prompt(request), claude_bin="claude")
        assert "64" not in args and "0.1" not in args

    def test_build_agent(self):
        assert isinstance(build_agent("cli"), ClaudeCliAgent)
        with pytest.raises(ValueError):
            build_agent("carrier-pigeon")


class TestRetryPolicy:
    @pytest.mark.asyncio
    async def test_retries_only_transient(self):
        agent = FakeAgent([LLMTransientError("busy"), "ok"])
        response = await call_with_retry(agent, LLMRequest(user_prompt="x"), max_retries=1, base_delay=0.0)
        assert response.content == "ok"

    @pytest.mark.asyncio
    async def test_zero_retries_makes_one_attempt(self):
        agent = FakeAgent([LLMTransientError("busy"), "never"])
        with pytest.raises(LLMTransientError):
            await call_with_retry(agent, LLMRequest(user_prompt="x"), max_retries=0, base_delay=0.0)
        assert len(agent.requests) == 1

    def test_backoff_grows_and_is_capped(self):
        assert 0.75 <= backoff_delay(1, base_delay=1.0) <= 1.25
        assert 3.0 <= backoff_delay(3, base_delay=1.0) <= 5.0
        assert backoff_delay(20, base_delay=1.0, max_delay=10.0) <= 12.5

    def test_backoff_honors_retry_after(self):
        assert backoff_delay(1, base_delay=1.0, retry_after=8.0) >= 6.0

    @pytest.mark.parametrize("message, expected", [
        ("Error: 429 Too Many Requests", True),
        ("API overloaded", True),
        ("invalid prompt", False),
    ])
    def test_rate_limit_detection(self, message, expected):
        assert looks_rate_limited(message) is expected


class TestParseLlmJson:
    @pytest.mark.parametrize("raw", [
        '{"a": 1}',
        '```json\n{"a": 1}\n```',
        'Here you go:\n```json\n{"a": 1}\n```\nDone.',
        'Sure! {"a": 1} hope that helps',
    ])
    def test_variants(self, raw):
        assert parse_llm_json(raw) == {"a": 1}

    @pytest.mark.parametrize("raw", ["", "no json here", "{broken"])
    def test_unparseable(self, raw):
        assert parse_llm_json(raw) is None

    def test_require_structured_prefers_parsed_object(self):
        assert require_structured(LLMResponse(content="x", structured={"k": 1}), "t") == {"k": 1}
        assert require_structured(LLMResponse(content='{"k": 2}'), "t") == {"k": 2}
        with pytest.raises(LLMCallError):
            require_structured(LLMResponse(content="[1, 2]"), "t")
