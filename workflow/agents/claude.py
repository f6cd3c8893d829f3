"""Claude CLI agent: one ``claude -p`` subprocess per call.

The CLI prints a JSON envelope (``--output-format json``) with ``result``,
``is_error`` and ``usage``; failures are classified as transient (rate
limits, overload, timeouts, spawn errors) or fatal.
"""
from __future__ import annotations

import asyncio
import json
import logging
import os
from typing import Dict, List, Optional

from ..config import CLAUDE_CLI_PATH, LLM_DEFAULT_MODEL
from ..engine.errors import LLMCallError, LLMTransientError
from ..settings import LLM_CALL_TIMEOUT
from .base import LLMRequest, LLMResponse, schema_instruction
from .llm_utils import looks_rate_limited, parse_llm_json

logger = logging.getLogger(__name__)


def clean_env() -> Dict[str, str]:
    """Inherit env but remove CLAUDECODE to avoid nested session detection."""
    return {k: v for k, v in os.environ.items() if k != "CLAUDECODE"}


def build_cli_args(prompt: str, *, claude_bin: str, model: str = "") -> List[str]:
    args = [
        claude_bin,
        "-p", prompt,
        "--output-format", "json",
        "--no-session-persistence",
        "--tools", "",
    ]
    if model:
        args.extend(["--model", model])
    return args


class ClaudeCliAgent:
    """LLMAgent backed by the local Claude CLI.

    The CLI has no flags for ``max_tokens`` or ``temperature``; both are
    ignored, and the first call on each agent logs that they were dropped.
    Use the api backend when sampling parameters matter.
    """

    def __init__(
        self,
        claude_bin: str = CLAUDE_CLI_PATH,
        default_model: str = LLM_DEFAULT_MODEL,
        timeout: float = LLM_CALL_TIMEOUT,
    ):
        self.claude_bin = claude_bin
        self.default_model = default_model
        self.timeout = timeout
        self._warned_sampling = False

    def _build_prompt(self, request: LLMRequest) -> str:
        parts = []
        if request.system_prompt:
            parts.extend([request.system_prompt, ""])
        parts.append(request.user_prompt)
        if request.output_schema:
            parts.extend(["", schema_instruction(request.output_schema)])
        return "\n".join(parts)

    async def call(self, request: LLMRequest) -> LLMResponse:
        if not self._warned_sampling:
            self._warned_sampling = True
            logger.info(
                f"Claude CLI ignores max_tokens={request.max_tokens} and "
                f"temperature={request.temperature}; the CLI applies its own limits"
            )
        cmd = build_cli_args(
            self._build_prompt(request),
            claude_bin=self.claude_bin,
            model=request.model or self.default_model,
        )

        try:
            proc = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=clean_env(),
            )
        except FileNotFoundError:
            raise LLMCallError(
                f"Claude CLI not found at '{self.claude_bin}'. Set CLAUDE_CLI_PATH env var."
            ) from None
        except OSError as e:
            raise LLMTransientError(f"Claude CLI spawn failed: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.communicate()
            raise LLMTransientError(f"Claude CLI timed out after {self.timeout}s") from None

        raw_text = stdout.decode("utf-8", errors="replace").strip()
        envelope: Optional[dict] = None
        try:
            envelope = json.loads(raw_text)
        except json.JSONDecodeError:
            pass

        if proc.returncode != 0 or (isinstance(envelope, dict) and envelope.get("is_error")):
            err_msg = stderr.decode("utf-8", errors="replace").strip()
            if not err_msg and isinstance(envelope, dict):
                err_msg = str(envelope.get("result", ""))
            message = f"Claude CLI failed (exit {proc.returncode}): {err_msg[:500]}"
            if looks_rate_limited(err_msg):
                raise LLMTransientError(message)
            raise LLMCallError(message)

        usage: Dict[str, int] = {}
        content = raw_text
        if isinstance(envelope, dict):
            if isinstance(envelope.get("usage"), dict):
                usage = {
                    "input_tokens": envelope["usage"].get("input_tokens", 0),
                    "output_tokens": envelope["usage"].get("output_tokens", 0),
                }
            content = str(envelope.get("result", raw_text))

        structured = None
        if request.output_schema:
            structured = parse_llm_json(content, caller="ClaudeCliAgent")

        return LLMResponse(
            content=content,
            structured=structured,
            tokens_used=sum(usage.values()),
            finish_reason="stop",
            usage=usage,
        )
