"""FastAPI entry-point exposing orchestrator controls."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from agentloop.api.routes import router as agents_router
from agentloop.api.tasks import router as tasks_router
from agentloop.config import config
from agentloop.runtime import get_agent_catalog, get_orchestrator, get_provider_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifecycle manager for FastAPI application."""
    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # Startup: load agent definitions before serving requests
    get_agent_catalog()
    yield
    # Shutdown: interrupt running tasks and close provider clients
    await get_orchestrator().shutdown()
    await get_provider_router().aclose()


app = FastAPI(title="Agent Task Orchestrator", lifespan=lifespan)
app.include_router(agents_router)
app.include_router(tasks_router)


@app.get("/health")
async def health() -> dict:
    return {"status": "ok"}
