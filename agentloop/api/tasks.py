"""Task API routes wrapping the orchestrator entry points."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field, model_validator

from agentloop.core.errors import (
    ConfigurationError,
    DelegationError,
    InvalidStateTransition,
    TaskNotFoundError,
)
from agentloop.core.models import Task
from agentloop.orchestration.orchestrator import Orchestrator
from agentloop.runtime import get_orchestrator

router = APIRouter(prefix="/tasks", tags=["tasks"])


class TaskCreateRequest(BaseModel):
    agent_name: str = Field(..., description="Name of the agent to run")
    message: Optional[str] = Field(default=None, description="Natural-language request")
    request: Optional[Dict[str, Any]] = Field(default=None, description="Structured request payload")
    parent_task_id: Optional[str] = None

    @model_validator(mode="after")
    def _require_payload(self) -> "TaskCreateRequest":
        if self.message is None and self.request is None:
            raise ValueError("Either 'message' or 'request' is required")
        return self

    def payload(self) -> Dict[str, Any]:
        payload = dict(self.request or {})
        if self.message is not None:
            payload["message"] = self.message
        return payload


class TaskCreatedResponse(BaseModel):
    task_id: str


class TurnResponse(BaseModel):
    index: int
    kind: str
    observation: str
    reply: Optional[str] = None
    action: Optional[Dict[str, Any]] = None
    error_kind: Optional[str] = None


class TaskResponse(BaseModel):
    task_id: str
    agent_name: str
    status: str
    request: Dict[str, Any]
    parent_task_id: Optional[str]
    child_task_ids: List[str]
    output: Any = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    iteration_count: int
    tool_call_count: int
    error_count: int
    history: List[TurnResponse] = Field(default_factory=list)

    @classmethod
    def from_task(cls, task: Task) -> "TaskResponse":
        return cls(
            task_id=task.task_id,
            agent_name=task.agent_name,
            status=task.status.value,
            request=task.request,
            parent_task_id=task.parent_task_id,
            child_task_ids=list(task.child_task_ids),
            output=task.output,
            error=task.error,
            error_kind=task.error_kind,
            iteration_count=task.iteration_count,
            tool_call_count=task.tool_call_count,
            error_count=task.error_count,
            history=[
                TurnResponse(
                    index=turn.index,
                    kind=turn.kind.value,
                    observation=turn.observation,
                    reply=turn.reply,
                    action=turn.action,
                    error_kind=turn.error_kind,
                )
                for turn in task.history
            ],
        )


class UserInputRequest(BaseModel):
    input: Any = Field(..., description="Answer supplied to a task waiting for user input")


@router.post("", response_model=TaskCreatedResponse, status_code=status.HTTP_202_ACCEPTED)
async def create_task(
    request: TaskCreateRequest,
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> TaskCreatedResponse:
    try:
        task_id = await orchestrator.run_agent(
            request.agent_name,
            request.payload(),
            parent_task_id=request.parent_task_id,
        )
    except TaskNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except (ConfigurationError, DelegationError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return TaskCreatedResponse(task_id=task_id)


@router.get("", response_model=List[TaskResponse])
async def list_tasks(orchestrator: Orchestrator = Depends(get_orchestrator)) -> List[TaskResponse]:
    return [TaskResponse.from_task(task) for task in await orchestrator.list_tasks()]


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(task_id: str, orchestrator: Orchestrator = Depends(get_orchestrator)) -> TaskResponse:
    try:
        task = await orchestrator.get_task(task_id)
    except TaskNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return TaskResponse.from_task(task)


@router.post("/{task_id}/input", status_code=status.HTTP_202_ACCEPTED)
async def resolve_user_input(
    task_id: str,
    request: UserInputRequest,
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> None:
    try:
        await orchestrator.resolve_user_input(task_id, request.input)
    except TaskNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except InvalidStateTransition as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc


@router.post("/{task_id}/cancel", status_code=status.HTTP_202_ACCEPTED)
async def cancel_task(task_id: str, orchestrator: Orchestrator = Depends(get_orchestrator)) -> None:
    try:
        await orchestrator.cancel_task(task_id)
    except TaskNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except InvalidStateTransition as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
