"""Task Store interface and the in-memory implementation used by default."""
from __future__ import annotations

import asyncio
import copy
from typing import Any, Dict, List, Optional, Protocol

from agentloop.core.errors import TaskNotFoundError
from agentloop.core.models import Task


class TaskStore(Protocol):
    """System of record for tasks. Each task id has a single writer."""

    async def create(self, task: Task) -> None: ...

    async def update(self, task: Task) -> None: ...

    async def get(self, task_id: str) -> Optional[Task]: ...

    async def list(self) -> List[Task]: ...


class InMemoryTaskStore:
    """Keeps serialized snapshots so readers never observe a half-written task."""

    def __init__(self) -> None:
        self._records: Dict[str, Dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    async def create(self, task: Task) -> None:
        async with self._lock:
            if task.task_id in self._records:
                raise ValueError(f"Task {task.task_id} already exists")
            self._records[task.task_id] = copy.deepcopy(task.to_dict())

    async def update(self, task: Task) -> None:
        async with self._lock:
            if task.task_id not in self._records:
                raise TaskNotFoundError(f"Unknown task {task.task_id}")
            self._records[task.task_id] = copy.deepcopy(task.to_dict())

    async def get(self, task_id: str) -> Optional[Task]:
        record = self._records.get(task_id)
        return Task.from_dict(copy.deepcopy(record)) if record is not None else None

    async def list(self) -> List[Task]:
        return [Task.from_dict(copy.deepcopy(record)) for record in list(self._records.values())]
