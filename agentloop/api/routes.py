"""HTTP API exposing the agent catalog."""
from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from agentloop.agents.catalog import AgentCatalog
from agentloop.core.models import AgentDefinition
from agentloop.runtime import get_agent_catalog

router = APIRouter(prefix="/agents", tags=["agents"])


class AgentResponse(BaseModel):
    name: str
    description: str
    role: str
    tools: List[str] = Field(default_factory=list)
    can_call: List[str] = Field(default_factory=list)
    capabilities: List[str] = Field(default_factory=list)
    model: Optional[str] = None
    provider: Optional[str] = None
    permissions: dict = Field(default_factory=dict)

    @classmethod
    def from_definition(cls, definition: AgentDefinition) -> "AgentResponse":
        permissions = definition.permissions
        return cls(
            name=definition.name,
            description=definition.description,
            role=definition.role,
            tools=list(definition.tools),
            can_call=list(definition.can_call),
            capabilities=list(definition.capabilities),
            model=definition.model,
            provider=definition.provider,
            permissions={
                "code_edit": permissions.code_edit,
                "terminal_access": permissions.terminal_access,
                "filesystem": permissions.filesystem,
                "network": permissions.network,
                "workspace_modification": permissions.workspace_modification,
            },
        )


@router.get("", response_model=List[AgentResponse])
async def list_agents(catalog: AgentCatalog = Depends(get_agent_catalog)) -> List[AgentResponse]:
    return [AgentResponse.from_definition(definition) for definition in catalog.list()]


@router.get("/{agent_name}", response_model=AgentResponse)
async def get_agent(agent_name: str, catalog: AgentCatalog = Depends(get_agent_catalog)) -> AgentResponse:
    definition = catalog.get(agent_name)
    if definition is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown agent")
    return AgentResponse.from_definition(definition)
