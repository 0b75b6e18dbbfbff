"""Catalog of agent definitions available to the orchestrator."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from agentloop.core.models import AgentDefinition

logger = logging.getLogger(__name__)


class AgentCatalog:
    """Read-mostly lookup of :class:`AgentDefinition` by name."""

    def __init__(self, definitions: Iterable[AgentDefinition] = ()) -> None:
        self._agents: Dict[str, AgentDefinition] = {}
        for definition in definitions:
            self.register(definition)

    def register(self, definition: AgentDefinition) -> None:
        if definition.name in self._agents:
            logger.warning(f"[AgentCatalog] Replacing definition for agent {definition.name}")
        self._agents[definition.name] = definition

    def get(self, name: str) -> Optional[AgentDefinition]:
        return self._agents.get(name)

    def list(self) -> List[AgentDefinition]:
        return list(self._agents.values())

    def load_directory(self, directory: Path) -> int:
        """Load every ``*.json`` definition in ``directory``; returns how many loaded."""
        loaded = 0
        for path in sorted(directory.glob("*.json")):
            try:
                definition = AgentDefinition.from_dict(json.loads(path.read_text(encoding="utf-8")))
            except (OSError, ValueError) as exc:
                logger.error(f"[AgentCatalog] Skipping {path.name}: {exc}")
                continue
            self.register(definition)
            loaded += 1
        logger.info(f"[AgentCatalog] Loaded {loaded} agent definitions from {directory}")
        return loaded
