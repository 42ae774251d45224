"""
SimpleScrum Event Bus

A lightweight in-process event bus for decoupled communication between the
engine, the identity provider and the persistence dispatcher.
Supports both sync and async event handlers.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from simplescrum.logging import get_logger
from simplescrum.models.domain import UserIdentity

logger = get_logger(__name__)


@dataclass
class Event:
    """
    Base class for all events in the system.

    All events carry a timestamp and optional metadata.
    """
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def event_type(self) -> str:
        """Return the event type name (class name by default)."""
        return self.__class__.__name__


# Identity Events

@dataclass
class SessionChanged(Event):
    """Fired once per sign-in or sign-out. ``user`` is None after sign-out."""
    user: Optional[UserIdentity] = None
    session_id: Optional[str] = None


# Entity Events

@dataclass
class EntityEvent(Event):
    """Base class for entity mutation events."""
    kind: str = ""
    entity_id: str = ""
    fields: Dict[str, Any] = field(default_factory=dict)


@dataclass
class EntityCreated(EntityEvent):
    """Fired after an entity has been inserted into the store."""
    pass


@dataclass
class EntityUpdated(EntityEvent):
    """Fired after an entity has been updated in the store."""
    pass


# Workflow Events

@dataclass
class BacklogReordered(Event):
    """Fired after a batch priority replace; lists only the items that moved."""
    project_id: str = ""
    changed: Dict[str, int] = field(default_factory=dict)


@dataclass
class SprintPlanned(Event):
    """Fired when a sprint has been created from the planning pool."""
    project_id: str = ""
    sprint_id: str = ""
    committed_sp: int = 0
    team_capacity: int = 0
    pbi_ids: List[str] = field(default_factory=list)


@dataclass
class SprintClosed(Event):
    """Fired when a sprint is closed and the project velocity recorded."""
    project_id: str = ""
    sprint_id: str = ""
    completed_sp: int = 0
    committed_sp: int = 0


# Persistence Events

@dataclass
class PersistenceFailed(Event):
    """Fired when the head of the persistence queue exhausts its attempts."""
    kind: str = ""
    operation: str = ""
    entity_id: str = ""
    error: Optional[str] = None
    pending: int = 0


# Type alias for handlers
EventHandler = Callable[[Event], None]
AsyncEventHandler = Callable[[Event], Awaitable[None]]


class EventBus:
    """
    In-process event bus.

    Handlers registered for a base class also receive its subclasses.

    Example:
        bus = EventBus()

        @bus.subscribe(SprintClosed)
        def on_sprint_closed(event: SprintClosed):
            print(f"Sprint {event.sprint_id} closed with {event.completed_sp} SP")

        bus.publish(SprintClosed(sprint_id="sprint-1", completed_sp=5))
    """

    def __init__(self) -> None:
        self._handlers: Dict[type, List[EventHandler]] = {}
        self._async_handlers: Dict[type, List[AsyncEventHandler]] = {}
        self._wildcard_handlers: List[EventHandler] = []
        self._async_wildcard_handlers: List[AsyncEventHandler] = []

    def subscribe(
        self,
        event_type: Optional[type] = None,
    ) -> Callable[[EventHandler], EventHandler]:
        """Decorator to subscribe a handler to an event type (None for all events)."""
        def decorator(handler: EventHandler) -> EventHandler:
            self.add_handler(event_type, handler)
            return handler
        return decorator

    def add_handler(
        self,
        event_type: Optional[type],
        handler: EventHandler,
    ) -> None:
        if event_type is None:
            self._wildcard_handlers.append(handler)
        else:
            self._handlers.setdefault(event_type, []).append(handler)

    def add_async_handler(
        self,
        event_type: Optional[type],
        handler: AsyncEventHandler,
    ) -> None:
        if event_type is None:
            self._async_wildcard_handlers.append(handler)
        else:
            self._async_handlers.setdefault(event_type, []).append(handler)

    def remove_handler(
        self,
        event_type: Optional[type],
        handler: Callable[..., Any],
    ) -> None:
        """Remove a previously registered sync or async handler."""
        if event_type is None:
            for handlers in (self._wildcard_handlers, self._async_wildcard_handlers):
                if handler in handlers:
                    handlers.remove(handler)
            return
        for registry in (self._handlers, self._async_handlers):
            handlers = registry.get(event_type)
            if handlers and handler in handlers:
                handlers.remove(handler)

    def publish(self, event: Event) -> None:
        """
        Publish an event to all registered sync handlers.

        Handler errors are logged and do not stop delivery to other handlers.
        Async handlers only run through ``publish_async``.
        """
        handlers_called = 0

        for base_type in type(event).__mro__:
            for handler in self._handlers.get(base_type, ()):
                try:
                    handler(event)
                    handlers_called += 1
                except Exception as e:
                    logger.error(
                        f"Error in event handler: {e}",
                        extra={"event_type": event.event_type, "error": str(e)},
                    )

        for handler in self._wildcard_handlers:
            try:
                handler(event)
                handlers_called += 1
            except Exception as e:
                logger.error(
                    f"Error in wildcard handler: {e}",
                    extra={"event_type": event.event_type, "error": str(e)},
                )

        logger.debug(
            f"Published {event.event_type}",
            extra={"event_type": event.event_type, "handlers_called": handlers_called},
        )

    async def publish_async(self, event: Event) -> None:
        """Publish an event to sync handlers, then await the async handlers in order."""
        self.publish(event)

        for base_type in type(event).__mro__:
            for handler in self._async_handlers.get(base_type, ()):
                try:
                    await handler(event)
                except Exception as e:
                    logger.error(
                        f"Error in async event handler: {e}",
                        extra={"event_type": event.event_type, "error": str(e)},
                    )

        for handler in self._async_wildcard_handlers:
            try:
                await handler(event)
            except Exception as e:
                logger.error(
                    f"Error in async wildcard handler: {e}",
                    extra={"event_type": event.event_type, "error": str(e)},
                )

    def clear(self) -> None:
        """Remove all registered handlers."""
        self._handlers.clear()
        self._async_handlers.clear()
        self._wildcard_handlers.clear()
        self._async_wildcard_handlers.clear()
