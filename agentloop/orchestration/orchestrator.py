"""Orchestrator driving each task's request/act/observe loop."""
from __future__ import annotations

import asyncio
import json
import logging
import uuid
from functools import partial
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from agentloop.agents.catalog import AgentCatalog
from agentloop.core.actions import action_to_dict, parse_action
from agentloop.core.activity_bus import ActivityBus
from agentloop.core.errors import (
    ConfigurationError,
    DelegationError,
    InvalidStateTransition,
    IterationLimitExceeded,
    ProtocolViolationError,
    ProviderError,
    TaskNotFoundError,
    ToolExecutionError,
    ToolUnavailableError,
)
from agentloop.core.models import (
    ActivityEvent,
    ActivityType,
    AgentDefinition,
    Delegate,
    FinalResult,
    GenerationOptions,
    Task,
    TaskStatus,
    ToolCall,
    ToolContext,
    Turn,
    TurnKind,
)
from agentloop.orchestration.prompts import render_prompt
from agentloop.orchestration.store import TaskStore
from agentloop.services.router import ProviderRouter
from agentloop.tools.base import Tool
from agentloop.tools.registry import ToolRegistry
from agentloop.tools.sandbox import CommandSandbox

logger = logging.getLogger(__name__)


def _stringify(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False, default=str)


class Orchestrator:
    """Run agent tasks concurrently, one asyncio task per agent task.

    Only the orchestrator mutates a task. Every mutation is written through
    to the task store, and observers are informed through the activity bus.
    """

    def __init__(
        self,
        *,
        catalog: AgentCatalog,
        tools: ToolRegistry,
        router: ProviderRouter,
        store: TaskStore,
        bus: ActivityBus,
        project_root: Path,
        max_iterations: int = 20,
        max_delegation_depth: int = 5,
        command_timeout: float = 60.0,
        generation_options: Optional[GenerationOptions] = None,
    ) -> None:
        if max_iterations < 1:
            raise ConfigurationError("max_iterations must be at least 1")
        self._catalog = catalog
        self._tools = tools
        self._router = router
        self._store = store
        self._bus = bus
        self._project_root = project_root
        self._max_iterations = max_iterations
        self._max_delegation_depth = max_delegation_depth
        self._command_timeout = command_timeout
        self._generation_options = generation_options or GenerationOptions()
        self._live: Dict[str, Task] = {}
        self._runners: Dict[str, asyncio.Task[None]] = {}
        self._done: Dict[str, asyncio.Event] = {}
        self._input_waiters: Dict[str, asyncio.Future[Any]] = {}

    @property
    def bus(self) -> ActivityBus:
        return self._bus

    async def run_agent(
        self,
        agent_name: str,
        request: Union[str, Dict[str, Any]],
        parent_task_id: Optional[str] = None,
    ) -> str:
        """Create a task for ``agent_name`` and start its loop; returns the task id."""
        agent = self._catalog.get(agent_name)
        if agent is None:
            raise ConfigurationError(f"No agent registered with name '{agent_name}'")

        depth = 0
        if parent_task_id is not None:
            parent = self._live.get(parent_task_id) or await self._store.get(parent_task_id)
            if parent is None:
                raise TaskNotFoundError(f"Unknown parent task {parent_task_id}")
            depth = parent.depth + 1
            if depth > self._max_delegation_depth:
                raise DelegationError(
                    f"Delegation depth {depth} exceeds the maximum of {self._max_delegation_depth}"
                )

        task = Task(
            task_id=str(uuid.uuid4()),
            agent_name=agent.name,
            request=self._normalize_request(request),
            parent_task_id=parent_task_id,
            depth=depth,
        )
        await self._store.create(task)
        self._live[task.task_id] = task
        self._done[task.task_id] = asyncio.Event()

        task.transition(TaskStatus.RUNNING)
        await self._store.update(task)
        runner = asyncio.create_task(self._execute(task, agent), name=f"agent-task-{task.task_id}")
        runner.add_done_callback(partial(self._release_runner, task.task_id))
        self._runners[task.task_id] = runner
        logger.info(f"[Orchestrator] Started task {task.task_id} for agent {agent.name} (depth {depth})")
        return task.task_id

    async def resolve_user_input(self, task_id: str, user_input: Any) -> None:
        """Feed ``user_input`` to a task paused in ``waiting`` and resume it."""
        task = self._live.get(task_id)
        if task is None:
            stored = await self._store.get(task_id)
            if stored is None:
                raise TaskNotFoundError(f"Unknown task {task_id}")
            raise InvalidStateTransition(f"Task {task_id} is {stored.status.value}, not waiting for input")

        waiter = self._input_waiters.get(task_id)
        if task.status is not TaskStatus.WAITING or waiter is None or waiter.done():
            raise InvalidStateTransition(f"Task {task_id} is {task.status.value}, not waiting for input")

        task.append_turn(TurnKind.USER_INPUT, _stringify(user_input))
        waiter.set_result(user_input)
        await self._set_status(task, TaskStatus.RUNNING)

    async def cancel_task(self, task_id: str) -> None:
        """Interrupt a task; children it already spawned keep running."""
        task = self._live.get(task_id)
        if task is None:
            if await self._store.get(task_id) is None:
                raise TaskNotFoundError(f"Unknown task {task_id}")
            raise InvalidStateTransition(f"Task {task_id} has already finished")
        if task.status.is_terminal:
            raise InvalidStateTransition(f"Task {task_id} is already {task.status.value}")

        runner = self._runners.get(task_id)
        if runner is not None and runner is not asyncio.current_task():
            runner.cancel()
        await self._finish(task, TaskStatus.INTERRUPTED, error="Cancelled by request", error_kind="Cancelled")

    async def wait_for_task(self, task_id: str, timeout: Optional[float] = None) -> Task:
        """Block until the task is terminal and return its final snapshot."""
        done = self._done.get(task_id)
        if done is None:
            stored = await self._store.get(task_id)
            if stored is None:
                raise TaskNotFoundError(f"Unknown task {task_id}")
            if stored.status.is_terminal:
                return stored
            raise TaskNotFoundError(f"Task {task_id} is not run by this orchestrator")
        if timeout is None:
            await done.wait()
        else:
            await asyncio.wait_for(done.wait(), timeout=timeout)
        return await self.get_task(task_id)

    async def get_task(self, task_id: str) -> Task:
        live = self._live.get(task_id)
        if live is not None:
            return Task.from_dict(live.to_dict())
        stored = await self._store.get(task_id)
        if stored is None:
            raise TaskNotFoundError(f"Unknown task {task_id}")
        return stored

    async def list_tasks(self) -> List[Task]:
        return await self._store.list()

    async def shutdown(self) -> None:
        """Cancel every running task loop."""
        runners = list(self._runners.values())
        for runner in runners:
            runner.cancel()
        await asyncio.gather(*runners, return_exceptions=True)

    async def _execute(self, task: Task, agent: AgentDefinition) -> None:
        try:
            while not task.status.is_terminal:
                if task.iteration_count >= self._max_iterations:
                    raise IterationLimitExceeded(
                        f"Task {task.task_id} did not finish within {self._max_iterations} iterations"
                    )
                task.iteration_count += 1
                await self._run_turn(task, agent)
        except asyncio.CancelledError:
            if not task.status.is_terminal:
                await self._finish(task, TaskStatus.INTERRUPTED, error="Task was cancelled", error_kind="Cancelled")
            raise
        except (IterationLimitExceeded, ConfigurationError) as exc:
            await self._finish(task, TaskStatus.FAILED, error=str(exc), error_kind=exc.kind)
        except Exception as exc:  # noqa: BLE001
            logger.exception(f"[Orchestrator] Task {task.task_id} crashed")
            await self._finish(task, TaskStatus.FAILED, error=str(exc), error_kind=type(exc).__name__)
        finally:
            self._input_waiters.pop(task.task_id, None)

    async def _run_turn(self, task: Task, agent: AgentDefinition) -> None:
        prompt = render_prompt(agent, task, self._tools_for(agent))
        try:
            response = await self._router.complete(
                agent, prompt, self._generation_options, task_id=task.task_id
            )
        except ProviderError as exc:
            await self._record(task, TurnKind.ERROR, str(exc), prompt=prompt, error_kind=exc.kind)
            return

        reply = response.content
        try:
            action = parse_action(reply)
        except ProtocolViolationError as exc:
            await self._record(
                task,
                TurnKind.ERROR,
                f"Could not interpret the reply as an action: {exc}",
                prompt=prompt,
                reply=reply,
                error_kind=exc.kind,
            )
            return

        if action.thought:
            self._emit(ActivityType.THOUGHT, task, action.thought)

        turn_fields = {"prompt": prompt, "reply": reply, "action": action_to_dict(action)}
        if isinstance(action, ToolCall):
            await self._dispatch_tool(task, agent, action, turn_fields)
        elif isinstance(action, Delegate):
            await self._dispatch_delegate(task, agent, action, turn_fields)
        elif isinstance(action, FinalResult):
            await self._complete(task, action, turn_fields)

    async def _dispatch_tool(
        self, task: Task, agent: AgentDefinition, action: ToolCall, turn_fields: Dict[str, Any]
    ) -> None:
        tool = self._tools.get_tool(action.tool) if action.tool in agent.tools else None
        if tool is None:
            error = ToolUnavailableError(f"Tool '{action.tool}' is not available to agent {agent.name}")
            await self._record(task, TurnKind.TOOL, str(error), error_kind=error.kind, **turn_fields)
            return

        task.tool_call_count += 1
        self._emit(ActivityType.TOOL, task, f"Using tool {tool.name}", tool=tool.name, args=action.args)
        outcome = await self._tools.execute(tool, action.args, self._tool_context(task, agent))
        observation = _stringify(outcome.result)

        if outcome.is_error:
            await self._record(
                task, TurnKind.TOOL, observation, error_kind=ToolExecutionError.kind, **turn_fields
            )
            return

        await self._record(task, TurnKind.TOOL, observation, **turn_fields)
        if outcome.awaiting_input:
            await self._wait_for_input(task, observation)

    async def _dispatch_delegate(
        self, task: Task, agent: AgentDefinition, action: Delegate, turn_fields: Dict[str, Any]
    ) -> None:
        try:
            if action.agent not in agent.can_call:
                raise DelegationError(f"Agent {agent.name} is not permitted to delegate to '{action.agent}'")
            child_id = await self.run_agent(action.agent, action.request, parent_task_id=task.task_id)
        except (DelegationError, ConfigurationError) as exc:
            await self._record(task, TurnKind.DELEGATION, str(exc), error_kind=DelegationError.kind, **turn_fields)
            return

        task.child_task_ids.append(child_id)
        self._emit(
            ActivityType.DELEGATE,
            task,
            f"Delegated to {action.agent}",
            agent=action.agent,
            child_task_id=child_id,
        )
        await self._set_status(task, TaskStatus.DELEGATED)

        child = await self.wait_for_task(child_id)
        if child.status is TaskStatus.COMPLETED:
            await self._record(task, TurnKind.DELEGATION, _stringify(child.output), **turn_fields)
        else:
            await self._record(
                task,
                TurnKind.DELEGATION,
                f"Delegated task {child_id} ({action.agent}) {child.status.value}: {child.error}",
                error_kind=DelegationError.kind,
                **turn_fields,
            )
        await self._set_status(task, TaskStatus.RUNNING)

    async def _complete(self, task: Task, action: FinalResult, turn_fields: Dict[str, Any]) -> None:
        observation = _stringify(action.result)
        await self._record(task, TurnKind.RESULT, observation, **turn_fields)
        self._emit(ActivityType.RESULT, task, observation, result=action.result)
        task.output = action.result
        await self._finish(task, TaskStatus.COMPLETED)

    async def _wait_for_input(self, task: Task, question: str) -> None:
        waiter: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._input_waiters[task.task_id] = waiter
        try:
            await self._set_status(task, TaskStatus.WAITING)
            self._emit(ActivityType.WAITING_FOR_USER_INPUT, task, question, question=question)
            await waiter
        finally:
            self._input_waiters.pop(task.task_id, None)

    async def _finish(
        self,
        task: Task,
        status: TaskStatus,
        *,
        error: Optional[str] = None,
        error_kind: Optional[str] = None,
    ) -> None:
        if task.status.is_terminal:
            return
        previous = task.status
        task.error = error
        task.error_kind = error_kind
        task.transition(status)
        self._emit_status(task, previous)
        if status is TaskStatus.COMPLETED:
            self._emit(ActivityType.TASK_COMPLETED, task, f"Task {task.task_id} completed", output=task.output)
        elif status is TaskStatus.FAILED:
            self._emit(
                ActivityType.TASK_FAILED,
                task,
                f"Task {task.task_id} failed: {error}",
                error=error,
                error_kind=error_kind,
            )
        self._done[task.task_id].set()
        logger.info(f"[Orchestrator] Task {task.task_id} finished as {status.value}")
        await self._store.update(task)
        self._forget(task.task_id)

    def _release_runner(self, task_id: str, runner: asyncio.Task) -> None:
        if self._runners.get(task_id) is runner:
            del self._runners[task_id]

    def _forget(self, task_id: str) -> None:
        # Terminal tasks are served from the store from here on.
        self._live.pop(task_id, None)
        self._done.pop(task_id, None)
        self._input_waiters.pop(task_id, None)

    async def _set_status(self, task: Task, status: TaskStatus) -> None:
        previous = task.status
        task.transition(status)
        self._emit_status(task, previous)
        await self._store.update(task)

    async def _record(self, task: Task, kind: TurnKind, observation: str, **fields: Any) -> Turn:
        turn = task.append_turn(kind, observation, **fields)
        if turn.error_kind:
            logger.warning(f"[Orchestrator] Task {task.task_id} turn {turn.index}: {turn.error_kind}: {observation}")
        await self._store.update(task)
        return turn

    def _emit_status(self, task: Task, previous: TaskStatus) -> None:
        self._emit(
            ActivityType.TASK_STATUS_CHANGED,
            task,
            f"Task {task.task_id} moved from {previous.value} to {task.status.value}",
            previous=previous.value,
            status=task.status.value,
        )

    def _emit(self, event_type: ActivityType, task: Task, message: str, **payload: Any) -> None:
        self._bus.publish(ActivityEvent(type=event_type, task_id=task.task_id, message=message, payload=payload))

    def _tools_for(self, agent: AgentDefinition) -> List[Tool]:
        return [tool for tool in self._tools.get_tools() if tool.name in agent.tools]

    def _tool_context(self, task: Task, agent: AgentDefinition) -> ToolContext:
        sandbox = CommandSandbox(self._project_root, agent.permissions, timeout=self._command_timeout)
        return ToolContext(
            task_id=task.task_id,
            agent_name=agent.name,
            project_root=self._project_root,
            permissions=agent.permissions,
            run_command=sandbox.run,
        )

    @staticmethod
    def _normalize_request(request: Union[str, Dict[str, Any]]) -> Dict[str, Any]:
        if isinstance(request, str):
            return {"message": request}
        if isinstance(request, dict):
            return dict(request)
        raise ConfigurationError(f"Request must be a string or an object, not {type(request).__name__}")
