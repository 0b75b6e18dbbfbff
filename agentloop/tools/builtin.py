"""Tools available to every deployment."""
from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Dict

from agentloop.core.models import ToolContext, ToolResult
from agentloop.tools.base import Tool
from agentloop.tools.registry import ToolRegistry


class UserRequestInputTool(Tool):
    """Pause the task until a person answers a question."""

    name = "user.requestInput"
    description = "Ask the user for information the task cannot proceed without. The task waits for the answer."
    input_schema = {
        "type": "object",
        "properties": {"question": {"type": "string", "description": "Question shown to the user"}},
        "required": ["question"],
    }

    async def execute(self, args: Dict[str, Any], context: ToolContext) -> ToolResult:
        question = args.get("question")
        if not isinstance(question, str) or not question.strip():
            return ToolResult(result="'question' must be a non-empty string", is_error=True)
        return ToolResult(result=question, awaiting_input=True)


class TerminalRunTool(Tool):
    name = "terminal.run"
    description = "Run an executable (no shell) inside the project and return its output."
    input_schema = {
        "type": "object",
        "properties": {
            "command": {"type": "string", "description": "Executable to run, e.g. 'pytest'"},
            "args": {"type": "array", "items": {"type": "string"}},
            "cwd": {"type": "string", "description": "Directory relative to the project root"},
        },
        "required": ["command"],
    }

    async def execute(self, args: Dict[str, Any], context: ToolContext) -> ToolResult:
        command = args.get("command")
        if not isinstance(command, str) or not command:
            return ToolResult(result="'command' must be a non-empty string", is_error=True)
        arguments = [str(arg) for arg in args.get("args") or []]
        outcome = await context.run_command(command, arguments, args.get("cwd"))
        return ToolResult(
            result={"stdout": outcome.stdout, "stderr": outcome.stderr, "exit_code": outcome.exit_code},
            is_error=outcome.exit_code != 0,
        )


class FileReadTool(Tool):
    name = "file.read"
    description = "Read a UTF-8 text file from the project."
    input_schema = {
        "type": "object",
        "properties": {"path": {"type": "string", "description": "Path relative to the project root"}},
        "required": ["path"],
    }
    max_chars = 50_000

    async def execute(self, args: Dict[str, Any], context: ToolContext) -> ToolResult:
        if not context.permissions.filesystem:
            return ToolResult(result="Agent is not permitted to read files", is_error=True)
        path = context.resolve_path(str(args.get("path", "")))
        if not path.is_file():
            return ToolResult(result=f"No such file: {args.get('path')}", is_error=True)
        return ToolResult(result=await asyncio.to_thread(self._read_head, path))

    def _read_head(self, path: Path) -> str:
        with path.open(encoding="utf-8", errors="replace") as handle:
            return handle.read(self.max_chars)


def register_builtin_tools(registry: ToolRegistry) -> ToolRegistry:
    for tool in (UserRequestInputTool(), TerminalRunTool(), FileReadTool()):
        registry.register(tool)
    return registry
