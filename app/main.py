"""FastAPI Application Entry Point.

Configures the app, lifespan, CORS, and includes all route modules.
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import database
from .services import build_services
from workflow.config import CORS_ORIGINS
from workflow.logging_config import get_api_logger, get_engine_logger

logger = get_api_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage database and service lifecycle."""
    get_engine_logger()
    await database.init_db()

    services = build_services(database.async_session_factory)
    await services.catalog.seed_builtins()
    app.state.services = services
    logger.info(f"Pipeline service ready; built-in workflows: {services.catalog.builtin_ids}")

    yield
    await services.aclose()
    await database.close_db()


app = FastAPI(title="Pipeline Foundry API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
from .routes.workflows import router as workflows_router  # noqa: E402
from .routes.executions import router as executions_router  # noqa: E402
from .routes.automations import router as automations_router  # noqa: E402
from .routes.issues import router as issues_router  # noqa: E402

app.include_router(workflows_router)
app.include_router(executions_router)
app.include_router(automations_router)
app.include_router(issues_router)


@app.get("/health")
async def health_check():
    """Health check endpoint for container orchestration."""
    return {"status": "ok"}
