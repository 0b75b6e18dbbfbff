"""Activity bus delivery semantics."""
from __future__ import annotations

import pytest

from agentloop.core.activity_bus import ActivityBus
from agentloop.core.models import ActivityEvent, ActivityType


def event(task_id: str, message: str = "") -> ActivityEvent:
    return ActivityEvent(type=ActivityType.THOUGHT, task_id=task_id, message=message)


def test_callbacks_see_events_in_publish_order() -> None:
    bus = ActivityBus()
    seen = []
    bus.subscribe(lambda evt: seen.append(evt.message))

    for index in range(3):
        bus.publish(event("t-1", str(index)))

    assert seen == ["0", "1", "2"]


def test_unsubscribe_stops_delivery() -> None:
    bus = ActivityBus()
    seen = []
    unsubscribe = bus.subscribe(seen.append)

    bus.publish(event("t-1"))
    unsubscribe()
    unsubscribe()
    bus.publish(event("t-1"))

    assert len(seen) == 1


def test_failing_subscriber_does_not_affect_others(caplog: pytest.LogCaptureFixture) -> None:
    bus = ActivityBus()
    seen = []

    def broken(evt: ActivityEvent) -> None:
        raise RuntimeError("observer crashed")

    bus.subscribe(broken)
    bus.subscribe(seen.append)

    bus.publish(event("t-1"))

    assert len(seen) == 1
    assert "Subscriber failed" in caplog.text


@pytest.mark.anyio
async def test_slow_listener_loses_events_without_blocking_publisher() -> None:
    bus = ActivityBus(max_queue_size=2)

    async with bus.listen() as queue:
        for index in range(5):
            bus.publish(event("t-1", str(index)))

        assert queue.qsize() == 2
        assert bus.dropped == 3
        assert (await queue.get()).message == "0"
        assert (await queue.get()).message == "1"

    bus.publish(event("t-1", "after"))
    assert bus.dropped == 3


def test_publish_without_subscribers_is_a_no_op() -> None:
    ActivityBus().publish(event("t-1"))
