"""Workflow configuration constants: single source of truth for all env vars."""

import os
import shutil
from pathlib import Path

# Server binding: used by entrypoint / uvicorn
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "8000"))

# Execution state checkpoints for the file-backed store
STATE_DIR = Path(os.getenv("GRAPH_STATE_DIR", str(Path(__file__).parent.parent / "data" / "executions")))

# LLM backend: "cli" (claude -p subprocess) or "api" (Anthropic Messages API over HTTP)
LLM_BACKEND = os.getenv("LLM_BACKEND", "cli").lower()

# Default model id passed to the agent when a step does not name one
LLM_DEFAULT_MODEL = os.getenv("LLM_DEFAULT_MODEL", "claude-sonnet-4-5")

# Claude CLI: resolved once at import time
CLAUDE_CLI_PATH = os.getenv("CLAUDE_CLI_PATH") or shutil.which("claude") or "claude"

# Anthropic Messages API
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY", "")
ANTHROPIC_BASE_URL = os.getenv("ANTHROPIC_BASE_URL", "https://api.anthropic.com")

# External status push (issue tracker bridge). Empty disables the push.
STATUS_WEBHOOK_URL = os.getenv("STATUS_WEBHOOK_URL", "")
STATUS_WEBHOOK_TOKEN = os.getenv("STATUS_WEBHOOK_TOKEN", "")

# Execution checkpoint backend: "sql" (workflow_executions table) or "file" (STATE_DIR)
STATE_BACKEND = os.getenv("STATE_BACKEND", "sql").lower()

# CORS origins for the HTTP service (comma-separated)
CORS_ORIGINS = [
    o.strip()
    for o in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
    if o.strip()
]
