"""Lightweight in-memory bus broadcasting task activity to observers."""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Dict, List

from .models import ActivityEvent

logger = logging.getLogger(__name__)

ActivityCallback = Callable[[ActivityEvent], None]


class ActivityBus:
    """Fire-and-forget publish/subscribe hub for :class:`ActivityEvent`.

    Publishing never blocks the caller. Callback subscribers run inline and
    must be quick; queue subscribers drain on their own schedule and lose
    events once their queue is full.
    """

    def __init__(self, max_queue_size: int = 1000) -> None:
        self._max_queue_size = max_queue_size
        self._callbacks: List[ActivityCallback] = []
        self._queues: Dict[int, asyncio.Queue[ActivityEvent]] = {}
        self._next_listener = 0
        self.dropped = 0

    def subscribe(self, callback: ActivityCallback) -> Callable[[], None]:
        """Register a callback and return a function that removes it."""
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    @asynccontextmanager
    async def listen(self) -> AsyncIterator[asyncio.Queue[ActivityEvent]]:
        """Context manager yielding a bounded queue fed with every published event."""
        listener_id = self._next_listener
        self._next_listener += 1
        queue: asyncio.Queue[ActivityEvent] = asyncio.Queue(maxsize=self._max_queue_size)
        self._queues[listener_id] = queue
        try:
            yield queue
        finally:
            self._queues.pop(listener_id, None)

    def publish(self, event: ActivityEvent) -> None:
        for callback in list(self._callbacks):
            try:
                callback(event)
            except Exception:  # noqa: BLE001
                logger.exception(f"[ActivityBus] Subscriber failed on {event.type.value} for task {event.task_id}")

        for queue in list(self._queues.values()):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                self.dropped += 1
                logger.debug(f"[ActivityBus] Dropped {event.type.value} event for slow listener")
