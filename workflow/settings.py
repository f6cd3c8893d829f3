"""Workflow runtime settings: tunable parameters for pipeline execution.

All values read from environment variables with sensible defaults.
Import from here instead of hardcoding.

Infrastructure config (API host, CLI path, tokens, URLs) stays
in workflow/config.py.
"""

from __future__ import annotations

import os


def _int(key: str, default: int) -> int:
    return int(os.getenv(key, str(default)))


def _float(key: str, default: float) -> float:
    return float(os.getenv(key, str(default)))


# =====================================================================
# Graph Engine
# =====================================================================

# Hard cap applied to Loop steps that do not declare max_iterations
LOOP_MAX_ITERATIONS_DEFAULT = _int("LOOP_MAX_ITERATIONS_DEFAULT", 1000)

# Guard against malformed graphs that never reach a terminal node
ENGINE_MAX_STEPS = _int("ENGINE_MAX_STEPS", 10000)


# =====================================================================
# Automation Layer
# =====================================================================

# Chained status transitions stop once this depth is reached
MAX_TRANSITION_DEPTH = _int("MAX_TRANSITION_DEPTH", 5)

# Timeout for the external status push (seconds)
STATUS_PUSH_TIMEOUT = _float("STATUS_PUSH_TIMEOUT", 10.0)


# =====================================================================
# Q&A workflows
# =====================================================================

MAX_QUESTIONS_PER_TOPIC = _int("MAX_QUESTIONS_PER_TOPIC", 7)
MAX_GAP_QUESTIONS = _int("MAX_GAP_QUESTIONS", 5)

# Question batches allowed per planning phase before moving on
MAX_PLANNING_BATCHES = _int("MAX_PLANNING_BATCHES", 3)


# =====================================================================
# LLM
# =====================================================================

LLM_DEFAULT_MAX_TOKENS = _int("LLM_DEFAULT_MAX_TOKENS", 2000)
LLM_DEFAULT_TEMPERATURE = _float("LLM_DEFAULT_TEMPERATURE", 0.7)

# Bounded retry wrapped around a single LLM step
LLM_MAX_RETRIES = _int("LLM_MAX_RETRIES", 3)
LLM_RETRY_BASE_DELAY = _float("LLM_RETRY_BASE_DELAY", 1.0)
LLM_RETRY_MAX_DELAY = _float("LLM_RETRY_MAX_DELAY", 30.0)

# Per-call timeout for agent backends (seconds)
LLM_CALL_TIMEOUT = _float("LLM_CALL_TIMEOUT", 300.0)


# =====================================================================
# SSE
# =====================================================================

SSE_BUFFER_SIZE = _int("SSE_BUFFER_SIZE", 200)
SSE_BUFFER_TTL = _float("SSE_BUFFER_TTL", 300.0)
SSE_KEEPALIVE_INTERVAL = _float("SSE_KEEPALIVE_INTERVAL", 15.0)
