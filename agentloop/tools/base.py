"""Tool contract consumed by the orchestrator."""
from __future__ import annotations

import abc
from typing import Any, ClassVar, Dict

from agentloop.core.models import ToolContext, ToolResult


class Tool(abc.ABC):
    """An invocable capability exposed to agents by name.

    ``input_schema`` is advisory: it is shown to the model in the tool
    catalog, and argument validation is left to ``execute``.
    """

    name: ClassVar[str]
    description: ClassVar[str] = ""
    input_schema: ClassVar[Dict[str, Any]] = {"type": "object", "properties": {}}

    @abc.abstractmethod
    async def execute(self, args: Dict[str, Any], context: ToolContext) -> ToolResult | Any:
        """Run the tool. Plain return values are wrapped into a ``ToolResult``."""

    def describe(self) -> Dict[str, Any]:
        return {"name": self.name, "description": self.description, "input_schema": self.input_schema}
