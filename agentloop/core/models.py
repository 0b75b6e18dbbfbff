"""Core data models shared across orchestrator components."""
from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, Union

from .errors import InvalidStateTransition


class TaskStatus(str, Enum):
    """Lifecycle states for a task driven by the orchestrator."""

    PENDING = "pending"
    RUNNING = "running"
    WAITING = "waiting"
    DELEGATED = "delegated"
    COMPLETED = "completed"
    FAILED = "failed"
    INTERRUPTED = "interrupted"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATUSES


_TERMINAL_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.INTERRUPTED})

_ALLOWED_TRANSITIONS: Dict[TaskStatus, frozenset] = {
    TaskStatus.PENDING: frozenset({TaskStatus.RUNNING, TaskStatus.FAILED, TaskStatus.INTERRUPTED}),
    TaskStatus.RUNNING: frozenset(
        {
            TaskStatus.WAITING,
            TaskStatus.DELEGATED,
            TaskStatus.COMPLETED,
            TaskStatus.FAILED,
            TaskStatus.INTERRUPTED,
        }
    ),
    TaskStatus.WAITING: frozenset({TaskStatus.RUNNING, TaskStatus.FAILED, TaskStatus.INTERRUPTED}),
    TaskStatus.DELEGATED: frozenset({TaskStatus.RUNNING, TaskStatus.FAILED, TaskStatus.INTERRUPTED}),
}


@dataclass(frozen=True, slots=True)
class AgentPermissions:
    code_edit: bool = False
    terminal_access: bool = False
    filesystem: bool = False
    network: bool = False
    workspace_modification: bool = False

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> AgentPermissions:
        data = data or {}
        return cls(
            code_edit=bool(data.get("code_edit", False)),
            terminal_access=bool(data.get("terminal_access", False)),
            filesystem=bool(data.get("filesystem", data.get("file_system", False))),
            network=bool(data.get("network", False)),
            workspace_modification=bool(data.get("workspace_modification", False)),
        )


@dataclass(frozen=True, slots=True)
class AgentDefinition:
    """Static description of an agent: what it may call and how it is prompted."""

    name: str
    description: str = ""
    role: str = ""
    permissions: AgentPermissions = field(default_factory=AgentPermissions)
    tools: Tuple[str, ...] = ()
    can_call: Tuple[str, ...] = ()
    model: Optional[str] = None
    provider: Optional[str] = None
    capabilities: Tuple[str, ...] = ()
    prompt_template: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> AgentDefinition:
        if not data.get("name"):
            raise ValueError("Agent definition requires a 'name'")
        return cls(
            name=data["name"],
            description=data.get("description", ""),
            role=data.get("role", ""),
            permissions=AgentPermissions.from_dict(data.get("permissions")),
            tools=tuple(data.get("tools", ())),
            can_call=tuple(data.get("can_call", ())),
            model=data.get("model"),
            provider=data.get("provider"),
            capabilities=tuple(data.get("capabilities", ())),
            prompt_template=data.get("prompt_template", data.get("initial_prompt_template", "")),
        )


class TurnKind(str, Enum):
    TOOL = "tool"
    DELEGATION = "delegation"
    RESULT = "result"
    ERROR = "error"
    USER_INPUT = "user_input"


@dataclass(frozen=True, slots=True)
class Turn:
    """One immutable history entry: what was sent, what came back, what happened."""

    index: int
    kind: TurnKind
    observation: str
    prompt: Optional[str] = None
    reply: Optional[str] = None
    action: Optional[Dict[str, Any]] = None
    error_kind: Optional[str] = None
    created_at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "kind": self.kind.value,
            "observation": self.observation,
            "prompt": self.prompt,
            "reply": self.reply,
            "action": self.action,
            "error_kind": self.error_kind,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Turn:
        return cls(
            index=data["index"],
            kind=TurnKind(data["kind"]),
            observation=data["observation"],
            prompt=data.get("prompt"),
            reply=data.get("reply"),
            action=data.get("action"),
            error_kind=data.get("error_kind"),
            created_at=data.get("created_at", 0.0),
        )


@dataclass(slots=True)
class Task:
    """A running instance of an agent executing one request loop."""

    task_id: str
    agent_name: str
    request: Dict[str, Any]
    status: TaskStatus = TaskStatus.PENDING
    history: List[Turn] = field(default_factory=list)
    parent_task_id: Optional[str] = None
    child_task_ids: List[str] = field(default_factory=list)
    output: Any = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    depth: int = 0
    started_at: float = field(default_factory=time.time)
    finished_at: Optional[float] = None
    iteration_count: int = 0
    tool_call_count: int = 0
    error_count: int = 0

    def transition(self, status: TaskStatus) -> None:
        if status not in _ALLOWED_TRANSITIONS.get(self.status, frozenset()):
            raise InvalidStateTransition(
                f"Task {self.task_id} cannot move from {self.status.value} to {status.value}"
            )
        self.status = status
        if status.is_terminal:
            self.finished_at = time.time()

    def append_turn(self, kind: TurnKind, observation: str, **fields: Any) -> Turn:
        if self.status.is_terminal:
            raise InvalidStateTransition(
                f"Task {self.task_id} is {self.status.value}; history is closed"
            )
        turn = Turn(index=len(self.history), kind=kind, observation=observation, **fields)
        self.history.append(turn)
        if kind is TurnKind.ERROR or fields.get("error_kind"):
            self.error_count += 1
        return turn

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_id": self.task_id,
            "agent_name": self.agent_name,
            "request": self.request,
            "status": self.status.value,
            "history": [turn.to_dict() for turn in self.history],
            "parent_task_id": self.parent_task_id,
            "child_task_ids": list(self.child_task_ids),
            "output": self.output,
            "error": self.error,
            "error_kind": self.error_kind,
            "depth": self.depth,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "iteration_count": self.iteration_count,
            "tool_call_count": self.tool_call_count,
            "error_count": self.error_count,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Task:
        return cls(
            task_id=data["task_id"],
            agent_name=data["agent_name"],
            request=data.get("request", {}),
            status=TaskStatus(data["status"]),
            history=[Turn.from_dict(turn) for turn in data.get("history", [])],
            parent_task_id=data.get("parent_task_id"),
            child_task_ids=list(data.get("child_task_ids", [])),
            output=data.get("output"),
            error=data.get("error"),
            error_kind=data.get("error_kind"),
            depth=data.get("depth", 0),
            started_at=data.get("started_at", 0.0),
            finished_at=data.get("finished_at"),
            iteration_count=data.get("iteration_count", 0),
            tool_call_count=data.get("tool_call_count", 0),
            error_count=data.get("error_count", 0),
        )


@dataclass(frozen=True, slots=True)
class ToolCall:
    tool: str
    args: Dict[str, Any] = field(default_factory=dict)
    thought: Optional[str] = None


@dataclass(frozen=True, slots=True)
class Delegate:
    agent: str
    request: Dict[str, Any] = field(default_factory=dict)
    thought: Optional[str] = None


@dataclass(frozen=True, slots=True)
class FinalResult:
    result: Any
    thought: Optional[str] = None


Action = Union[ToolCall, Delegate, FinalResult]


class ActivityType(str, Enum):
    TOOL = "tool"
    DELEGATE = "delegate"
    RESULT = "result"
    THOUGHT = "thought"
    WAITING_FOR_USER_INPUT = "waitingForUserInput"
    TASK_COMPLETED = "taskCompleted"
    TASK_FAILED = "taskFailed"
    TASK_STATUS_CHANGED = "taskStatusChanged"


@dataclass(frozen=True, slots=True)
class ActivityEvent:
    """Transient status notification broadcast to observers."""

    type: ActivityType
    task_id: str
    message: str
    payload: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class CommandResult:
    stdout: str
    stderr: str
    exit_code: Optional[int]


RunCommand = Callable[[str, Sequence[str], Optional[str]], Awaitable[CommandResult]]


@dataclass(frozen=True, slots=True)
class ToolContext:
    """Capabilities handed to a tool for one invocation."""

    task_id: str
    agent_name: str
    project_root: Path
    permissions: AgentPermissions
    run_command: RunCommand

    def resolve_path(self, relative: str) -> Path:
        """Resolve ``relative`` inside the project root, refusing escapes."""
        root = self.project_root.resolve()
        candidate = (root / relative).resolve()
        if candidate != root and root not in candidate.parents:
            raise PermissionError(f"Path '{relative}' is outside the project root")
        return candidate


@dataclass(frozen=True, slots=True)
class ToolResult:
    result: Any
    is_error: bool = False
    awaiting_input: bool = False


@dataclass(frozen=True, slots=True)
class GenerationOptions:
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None


@dataclass(frozen=True, slots=True)
class LLMResponse:
    """Backend-independent model reply."""

    content: str
    metadata: Dict[str, Any] = field(default_factory=dict)
