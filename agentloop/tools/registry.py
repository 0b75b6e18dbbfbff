"""Registry mapping stable tool names to executable capabilities."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from agentloop.core.models import ToolContext, ToolResult
from agentloop.tools.base import Tool

logger = logging.getLogger(__name__)


class ToolRegistry:
    """Registry maintaining tools in registration order."""

    def __init__(self) -> None:
        self._tools: Dict[str, Tool] = {}

    def register(self, tool: Tool) -> bool:
        """Add ``tool``; a duplicate name is rejected and the first one kept."""
        if tool.name in self._tools:
            logger.warning(f"[ToolRegistry] Tool with name {tool.name} already registered.")
            return False
        self._tools[tool.name] = tool
        return True

    def get_tool(self, name: str) -> Optional[Tool]:
        return self._tools.get(name)

    def get_tools(self) -> List[Tool]:
        return list(self._tools.values())

    async def execute(self, tool: Tool, args: Dict[str, Any], context: ToolContext) -> ToolResult:
        """Invoke ``tool`` and normalize its outcome; tool failures never propagate."""
        try:
            outcome = await tool.execute(args, context)
        except Exception as exc:  # noqa: BLE001
            logger.warning(f"[ToolRegistry] Tool {tool.name} raised for task {context.task_id}: {exc}")
            return ToolResult(result=f"{type(exc).__name__}: {exc}", is_error=True)
        if isinstance(outcome, ToolResult):
            return outcome
        return ToolResult(result=outcome)
