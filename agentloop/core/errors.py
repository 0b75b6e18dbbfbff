"""Error taxonomy shared by the orchestrator, tools and provider router."""
from __future__ import annotations

from typing import Optional


class AgentLoopError(Exception):
    """Base class for every error raised by the orchestration core."""

    kind = "AgentLoopError"


class ConfigurationError(AgentLoopError):
    """Unknown agent, unknown provider, or a provider missing its settings."""

    kind = "ConfigurationError"


class ProviderError(AgentLoopError):
    """A language-model backend call failed."""

    kind = "ProviderError"

    def __init__(self, backend: str, message: str, status: Optional[int] = None) -> None:
        self.backend = backend
        self.status = status
        self.message = message
        prefix = f"{backend} returned {status}" if status is not None else backend
        super().__init__(f"{prefix}: {message}")


class ToolUnavailableError(AgentLoopError):
    kind = "ToolUnavailableError"


class ToolExecutionError(AgentLoopError):
    kind = "ToolExecutionError"


class ProtocolViolationError(AgentLoopError):
    """The model reply could not be interpreted as an action."""

    kind = "ProtocolViolationError"


class DelegationError(AgentLoopError):
    """A delegation was refused (unknown target, not permitted, too deep)."""

    kind = "DelegationError"


class IterationLimitExceeded(AgentLoopError):
    kind = "IterationLimitExceeded"


class InvalidStateTransition(AgentLoopError):
    kind = "InvalidStateTransition"


class TaskNotFoundError(AgentLoopError, KeyError):
    kind = "TaskNotFoundError"

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "Task not found"
