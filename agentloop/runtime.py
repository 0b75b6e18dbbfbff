"""Application runtime composition helpers."""
from __future__ import annotations

import logging
from functools import lru_cache

from agentloop.agents.catalog import AgentCatalog
from agentloop.config import config
from agentloop.core.activity_bus import ActivityBus
from agentloop.core.models import ActivityEvent
from agentloop.orchestration.orchestrator import Orchestrator
from agentloop.orchestration.store import InMemoryTaskStore
from agentloop.services.llm_pool import LLMPool
from agentloop.services.router import ProviderRouter
from agentloop.tools.builtin import register_builtin_tools
from agentloop.tools.registry import ToolRegistry

activity_logger = logging.getLogger("agentloop.activity")


def log_activity(event: ActivityEvent) -> None:
    activity_logger.info(f"[{event.type.value}] task={event.task_id} {event.message}")


@lru_cache
def get_bus() -> ActivityBus:
    bus = ActivityBus()
    bus.subscribe(log_activity)
    return bus


@lru_cache
def get_tool_registry() -> ToolRegistry:
    return register_builtin_tools(ToolRegistry())


@lru_cache
def get_agent_catalog() -> AgentCatalog:
    catalog = AgentCatalog()
    if config.agents_dir is not None:
        catalog.load_directory(config.agents_dir)
    return catalog


@lru_cache
def get_task_store() -> InMemoryTaskStore:
    return InMemoryTaskStore()


@lru_cache
def get_provider_router() -> ProviderRouter:
    return ProviderRouter(config=config, pool=LLMPool())


@lru_cache
def get_orchestrator() -> Orchestrator:
    return Orchestrator(
        catalog=get_agent_catalog(),
        tools=get_tool_registry(),
        router=get_provider_router(),
        store=get_task_store(),
        bus=get_bus(),
        project_root=config.project_root,
        max_iterations=config.max_iterations,
        max_delegation_depth=config.max_delegation_depth,
        command_timeout=config.command_timeout,
    )
