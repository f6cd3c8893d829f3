"""Conftest for workflow tests.

Fixtures wiring the scripted fakes from ``tests.workflow.fakes`` into a
GraphEngine over an in-memory store and catalog.
"""

from __future__ import annotations

import pytest

from tests.workflow.fakes import FakeAgent, RecordingBroadcaster
from workflow.engine.catalog import InMemoryWorkflowCatalog
from workflow.engine.executor import GraphEngine
from workflow.engine.store import InMemoryStateStore
from workflow.handlers import build_handler_registry


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def agent() -> FakeAgent:
    return FakeAgent()


@pytest.fixture
def broadcaster() -> RecordingBroadcaster:
    return RecordingBroadcaster()


@pytest.fixture
def store() -> InMemoryStateStore:
    return InMemoryStateStore()


@pytest.fixture
def make_engine(store, broadcaster, agent):
    """Factory: ``make_engine(*workflows, agent_override=None, extra_handlers=None)``."""

    def _make(*workflows, agent_override=None, extra_handlers=None, max_steps=10000) -> GraphEngine:
        return GraphEngine(
            store=store,
            broadcaster=broadcaster,
            agent=agent_override or agent,
            workflows=InMemoryWorkflowCatalog(workflows),
            handlers=build_handler_registry(extra_handlers),
            max_steps=max_steps,
            llm_retry_base_delay=0.0,
        )

    return _make
