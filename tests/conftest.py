"""Shared fixtures: a scripted provider router and orchestrator wiring."""
from __future__ import annotations

from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Union

import pytest

from agentloop.agents.catalog import AgentCatalog
from agentloop.core.activity_bus import ActivityBus
from agentloop.core.models import (
    ActivityEvent,
    ActivityType,
    AgentDefinition,
    AgentPermissions,
    GenerationOptions,
    LLMResponse,
)
from agentloop.orchestration.orchestrator import Orchestrator
from agentloop.orchestration.store import InMemoryTaskStore
from agentloop.tools.builtin import register_builtin_tools
from agentloop.tools.registry import ToolRegistry

ScriptItem = Union[str, Exception, Callable[[], Awaitable[str]]]


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


class ScriptedRouter:
    """Stands in for ProviderRouter, replaying canned replies per agent."""

    def __init__(self, scripts: Dict[str, Sequence[ScriptItem]], default: Optional[ScriptItem] = None) -> None:
        self._scripts: Dict[str, List[ScriptItem]] = {name: list(items) for name, items in scripts.items()}
        self._default = default
        self.prompts: List[str] = []

    async def complete(
        self,
        agent: AgentDefinition,
        prompt: str,
        options: Optional[GenerationOptions] = None,
        *,
        task_id: Optional[str] = None,
    ) -> LLMResponse:
        self.prompts.append(prompt)
        script = self._scripts.get(agent.name, [])
        item = script.pop(0) if script else self._default
        if item is None:
            raise AssertionError(f"No scripted reply left for {agent.name}")
        if isinstance(item, Exception):
            raise item
        if callable(item):
            item = await item()
        return LLMResponse(content=item, metadata={"provider": "scripted"})


class EventCollector:
    def __init__(self, bus: ActivityBus) -> None:
        self.events: List[ActivityEvent] = []
        bus.subscribe(self.events.append)

    def of_type(self, event_type: ActivityType, task_id: Optional[str] = None) -> List[ActivityEvent]:
        return [
            event
            for event in self.events
            if event.type is event_type and (task_id is None or event.task_id == task_id)
        ]


def make_agent(name: str, **kwargs) -> AgentDefinition:
    kwargs.setdefault("role", "tester")
    kwargs.setdefault("prompt_template", f"You are {name}. Request: {{request}}")
    return AgentDefinition(name=name, **kwargs)


def build_orchestrator(
    router,
    agents: Sequence[AgentDefinition],
    *,
    tools: Optional[ToolRegistry] = None,
    max_iterations: int = 10,
    max_delegation_depth: int = 5,
    project_root: Optional[Path] = None,
) -> Orchestrator:
    return Orchestrator(
        catalog=AgentCatalog(agents),
        tools=tools or register_builtin_tools(ToolRegistry()),
        router=router,
        store=InMemoryTaskStore(),
        bus=ActivityBus(),
        project_root=project_root or Path.cwd(),
        max_iterations=max_iterations,
        max_delegation_depth=max_delegation_depth,
    )


FULL_PERMISSIONS = AgentPermissions(
    code_edit=True,
    terminal_access=True,
    filesystem=True,
    network=True,
    workspace_modification=True,
)
