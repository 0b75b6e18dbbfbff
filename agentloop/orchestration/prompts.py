"""Prompt rendering from an agent template and the accumulated task history."""
from __future__ import annotations

import json
from typing import Any, Dict, Sequence

from agentloop.core.models import AgentDefinition, Task, Turn, TurnKind
from agentloop.tools.base import Tool

ACTION_INSTRUCTIONS = """Respond with a single JSON object and nothing else, using exactly one of these forms:
{"thought": "...", "tool": "<tool name>", "args": {...}}
{"thought": "...", "delegate": "<agent name>", "args": {"message": "<sub-request>"}}
{"thought": "...", "result": <final answer>}"""

_OBSERVATION_LABELS = {
    TurnKind.TOOL: "Observation",
    TurnKind.DELEGATION: "Delegation result",
    TurnKind.RESULT: "Result",
    TurnKind.ERROR: "Error",
    TurnKind.USER_INPUT: "User input",
}


def render_request(request: Dict[str, Any]) -> str:
    message = request.get("message")
    if isinstance(message, str) and len(request) == 1:
        return message
    return json.dumps(request, ensure_ascii=False)


def render_turn(turn: Turn) -> str:
    lines = []
    if turn.reply is not None:
        lines.append(f"Assistant: {turn.reply.strip()}")
    label = _OBSERVATION_LABELS[turn.kind]
    if turn.error_kind:
        label = f"{label} ({turn.error_kind})"
    lines.append(f"{label}: {turn.observation}")
    return "\n".join(lines)


def render_prompt(agent: AgentDefinition, task: Task, tools: Sequence[Tool]) -> str:
    request = render_request(task.request)
    if agent.prompt_template:
        header = agent.prompt_template
        for key, value in (
            ("agent_name", agent.name),
            ("role", agent.role),
            ("description", agent.description),
            ("request", request),
        ):
            header = header.replace("{" + key + "}", value)
    else:
        header = f"You are {agent.name}, {agent.role or 'an agent'}. {agent.description}".strip()

    sections = [header]
    if "{request}" not in agent.prompt_template:
        sections.append(f"Task:\n{request}")

    if tools:
        catalog = "\n".join(
            f"- {tool.name}: {tool.description} input={json.dumps(tool.input_schema, ensure_ascii=False)}"
            for tool in tools
        )
        sections.append(f"Available tools:\n{catalog}")
    if agent.can_call:
        sections.append("Agents you may delegate to:\n" + "\n".join(f"- {name}" for name in agent.can_call))

    sections.append(ACTION_INSTRUCTIONS)

    if task.history:
        sections.append("History:\n" + "\n\n".join(render_turn(turn) for turn in task.history))

    return "\n\n".join(sections)
