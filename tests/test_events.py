import asyncio
from typing import List

from simplescrum.services.events import (
    EntityCreated,
    EntityEvent,
    EntityUpdated,
    Event,
    EventBus,
    SessionChanged,
)


def test_handlers_for_base_class_receive_subclasses() -> None:
    bus = EventBus()
    seen: List[Event] = []
    bus.add_handler(EntityEvent, seen.append)

    bus.publish(EntityCreated(kind="project", entity_id="project-1"))
    bus.publish(EntityUpdated(kind="project", entity_id="project-1"))
    bus.publish(SessionChanged())

    assert [e.event_type for e in seen] == ["EntityCreated", "EntityUpdated"]


def test_failing_handler_does_not_stop_delivery() -> None:
    bus = EventBus()
    seen: List[Event] = []

    @bus.subscribe(EntityCreated)
    def broken(event: Event) -> None:
        raise RuntimeError("boom")

    bus.add_handler(EntityCreated, seen.append)
    bus.add_handler(None, seen.append)

    bus.publish(EntityCreated(kind="pbi", entity_id="pbi-1"))

    assert len(seen) == 2


def test_async_handlers_run_only_on_publish_async() -> None:
    bus = EventBus()
    seen: List[str] = []

    async def on_session(event: SessionChanged) -> None:
        seen.append("async")

    bus.add_async_handler(SessionChanged, on_session)
    bus.add_handler(SessionChanged, lambda event: seen.append("sync"))

    bus.publish(SessionChanged())
    assert seen == ["sync"]

    asyncio.run(bus.publish_async(SessionChanged()))
    assert seen == ["sync", "sync", "async"]


def test_remove_handler_and_clear() -> None:
    bus = EventBus()
    seen: List[Event] = []
    bus.add_handler(EntityCreated, seen.append)
    bus.remove_handler(EntityCreated, seen.append)

    bus.publish(EntityCreated())
    assert seen == []

    bus.add_handler(None, seen.append)
    bus.clear()
    bus.publish(EntityCreated())
    assert seen == []
