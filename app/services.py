"""Composition root: builds the engine and automation layer for the app.

Every collaborator is passed in explicitly; tests call ``build_services``
with an in-memory session factory and scripted fakes.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import AsyncGenerator, Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.database import session_scope
from app.event_bus import EventBus, EventBusBroadcaster
from app.stores import SqlAutomationStore, SqlIssueStore, SqlStateStore, SqlWorkflowCatalog
from workflow.agents import LLMAgent, build_agent
from workflow.automation.engine import AutomationEngine
from workflow.automation.models import StatusPusher
from workflow.automation.status import LocalStatusPusher, WebhookStatusPusher
from workflow.config import (
    LLM_BACKEND,
    STATE_BACKEND,
    STATE_DIR,
    STATUS_WEBHOOK_TOKEN,
    STATUS_WEBHOOK_URL,
)
from workflow.engine.executor import GraphEngine
from workflow.engine.store import FileStateStore, StateStore
from workflow.handlers import HandlerRegistry, build_handler_registry
from workflow.settings import MAX_TRANSITION_DEPTH
from workflow.workflows import builtin_workflows

logger = logging.getLogger(__name__)


@dataclass
class Services:
    session_factory: async_sessionmaker[AsyncSession]
    bus: EventBus
    catalog: SqlWorkflowCatalog
    handlers: HandlerRegistry
    engine: GraphEngine
    automation_store: SqlAutomationStore
    issue_store: SqlIssueStore
    automation: AutomationEngine
    agent: LLMAgent
    status_pusher: StatusPusher

    async def aclose(self) -> None:
        for resource in (self.agent, self.status_pusher):
            close = getattr(resource, "close", None)
            if close is not None:
                await close()


def build_state_store(
    backend: str,
    session_factory: async_sessionmaker[AsyncSession],
) -> StateStore:
    if backend == "sql":
        return SqlStateStore(session_factory)
    if backend == "file":
        return FileStateStore(STATE_DIR)
    raise ValueError(f"Unknown state backend: {backend}")


def build_status_pusher() -> StatusPusher:
    if STATUS_WEBHOOK_URL:
        return WebhookStatusPusher(STATUS_WEBHOOK_URL, STATUS_WEBHOOK_TOKEN)
    logger.warning("STATUS_WEBHOOK_URL not set; issue status changes are recorded locally only")
    return LocalStatusPusher()


def build_services(
    session_factory: async_sessionmaker[AsyncSession],
    *,
    agent: Optional[LLMAgent] = None,
    status_pusher: Optional[StatusPusher] = None,
    handlers: Optional[HandlerRegistry] = None,
    state_store: Optional[StateStore] = None,
    max_depth: int = MAX_TRANSITION_DEPTH,
) -> Services:
    """Wire stores, engine and automation layer around one session factory."""
    bus = EventBus()
    handlers = handlers or build_handler_registry()
    catalog = SqlWorkflowCatalog(session_factory, builtin_workflows())
    agent = agent or build_agent(LLM_BACKEND)
    status_pusher = status_pusher or build_status_pusher()

    engine = GraphEngine(
        store=state_store or build_state_store(STATE_BACKEND, session_factory),
        broadcaster=EventBusBroadcaster(bus),
        agent=agent,
        workflows=catalog,
        handlers=handlers,
    )
    automation_store = SqlAutomationStore(session_factory)
    issue_store = SqlIssueStore(session_factory)
    automation = AutomationEngine(
        engine=engine,
        automations=automation_store,
        issues=issue_store,
        status_pusher=status_pusher,
        max_depth=max_depth,
    )
    return Services(
        session_factory=session_factory,
        bus=bus,
        catalog=catalog,
        handlers=handlers,
        engine=engine,
        automation_store=automation_store,
        issue_store=issue_store,
        automation=automation,
        agent=agent,
        status_pusher=status_pusher,
    )


def get_services(request: Request) -> Services:
    """FastAPI dependency for the services built in the app lifespan."""
    return request.app.state.services


async def get_session(services: Services = Depends(get_services)) -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for database sessions."""
    async with session_scope(services.session_factory) as session:
        yield session
