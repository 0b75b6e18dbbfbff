"""Reply parsing into tool calls, delegations and final results."""
from __future__ import annotations

import json

import pytest

from agentloop.core.actions import action_to_dict, extract_json, parse_action
from agentloop.core.errors import ProtocolViolationError
from agentloop.core.models import Delegate, FinalResult, ToolCall


def test_tool_call_with_thought() -> None:
    action = parse_action('{"thought": "look first", "tool": "file.read", "args": {"path": "a.py"}}')

    assert action == ToolCall(tool="file.read", args={"path": "a.py"}, thought="look first")


def test_tool_call_without_args_gets_empty_mapping() -> None:
    assert parse_action('{"tool": "terminal.run"}') == ToolCall(tool="terminal.run", args={})


def test_fenced_reply_is_accepted() -> None:
    reply = 'Here you go:\n```json\n{"result": {"files": ["main.py"]}}\n```\nDone.'

    assert parse_action(reply) == FinalResult(result={"files": ["main.py"]})


def test_json_surrounded_by_prose_is_recovered() -> None:
    assert extract_json('Sure! {"result": "ok"} Hope that helps.') == {"result": "ok"}


@pytest.mark.parametrize(
    "args, expected",
    [
        ("run the tests", {"message": "run the tests"}),
        ({"message": "run the tests", "scope": "unit"}, {"message": "run the tests", "scope": "unit"}),
        ({"files": ["a.py"]}, {"message": '{"files": ["a.py"]}'}),
    ],
)
def test_delegate_args_become_a_sub_request(args, expected) -> None:
    action = parse_action(json.dumps({"delegate": "TesterAgent", "args": args}))

    assert action == Delegate(agent="TesterAgent", request=expected)


@pytest.mark.parametrize(
    "reply, fragment",
    [
        ("I think we should write some code.", "not valid JSON"),
        ('["tool", "file.read"]', "JSON object"),
        ('{"thought": "hmm"}', "none of"),
        ('{"tool": "file.read", "result": "done"}', "more than one"),
        ('{"tool": 42}', "'tool' must be a string"),
        ('{"tool": "file.read", "args": "a.py"}', "JSON object"),
        ('{"delegate": "TesterAgent", "args": [{"message": "a"}, {"message": "b"}]}', "one delegation"),
        ('{"delegate": "TesterAgent"}', "requires 'args'"),
    ],
)
def test_protocol_violations(reply: str, fragment: str) -> None:
    with pytest.raises(ProtocolViolationError, match=fragment):
        parse_action(reply)


def test_null_result_counts_as_missing() -> None:
    with pytest.raises(ProtocolViolationError):
        parse_action('{"result": null}')


def test_action_to_dict_keeps_thought() -> None:
    action = ToolCall(tool="file.read", args={"path": "x"}, thought="why not")

    assert action_to_dict(action) == {"tool": "file.read", "args": {"path": "x"}, "thought": "why not"}
    assert action_to_dict(Delegate(agent="A", request={"message": "m"})) == {"delegate": "A", "args": {"message": "m"}}
