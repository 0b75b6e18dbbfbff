"""Interpretation of model replies into structured actions."""
from __future__ import annotations

import json
from typing import Any, Dict

from .errors import ProtocolViolationError
from .models import Action, Delegate, FinalResult, ToolCall

_ACTION_KEYS = ("tool", "delegate", "result")


def extract_json(content: str) -> Any:
    """Pull a JSON document out of a reply, tolerating markdown code fences."""
    text = content.strip()
    if "```json" in text:
        text = text.split("```json")[1].split("```")[0].strip()
    elif "```" in text:
        text = text.split("```")[1].split("```")[0].strip()

    try:
        return json.loads(text)
    except json.JSONDecodeError:
        start, end = text.find("{"), text.rfind("}")
        if start == -1 or end <= start:
            raise
        return json.loads(text[start : end + 1])


def parse_action(content: str) -> Action:
    """Parse a reply into exactly one of tool-call, delegate or final result."""
    try:
        data = extract_json(content)
    except (json.JSONDecodeError, IndexError) as exc:
        raise ProtocolViolationError(f"Reply is not valid JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise ProtocolViolationError("Reply must be a JSON object")

    present = [key for key in _ACTION_KEYS if data.get(key) is not None]
    if not present:
        raise ProtocolViolationError("Reply has none of 'tool', 'delegate' or 'result'")
    if len(present) > 1:
        raise ProtocolViolationError(f"Reply carries more than one action: {', '.join(present)}")

    thought = data.get("thought")
    if thought is not None and not isinstance(thought, str):
        thought = json.dumps(thought)
    args = data.get("args")

    if "tool" in present:
        if not isinstance(data["tool"], str):
            raise ProtocolViolationError("'tool' must be a string")
        if args is None:
            args = {}
        if not isinstance(args, dict):
            raise ProtocolViolationError("Tool 'args' must be a JSON object")
        return ToolCall(tool=data["tool"], args=args, thought=thought)

    if "delegate" in present:
        if not isinstance(data["delegate"], str):
            raise ProtocolViolationError("'delegate' must be a string")
        return Delegate(agent=data["delegate"], request=_sub_request(args), thought=thought)

    return FinalResult(result=data["result"], thought=thought)


def _sub_request(args: Any) -> Dict[str, Any]:
    if isinstance(args, list):
        raise ProtocolViolationError("Only one delegation per turn is supported")
    if isinstance(args, dict) and isinstance(args.get("message"), str):
        return dict(args)
    if isinstance(args, str):
        return {"message": args}
    if args is None:
        raise ProtocolViolationError("Delegation requires 'args' describing the sub-request")
    return {"message": json.dumps(args)}


def action_to_dict(action: Action) -> Dict[str, Any]:
    if isinstance(action, ToolCall):
        data: Dict[str, Any] = {"tool": action.tool, "args": action.args}
    elif isinstance(action, Delegate):
        data = {"delegate": action.agent, "args": action.request}
    else:
        data = {"result": action.result}
    if action.thought:
        data["thought"] = action.thought
    return data
