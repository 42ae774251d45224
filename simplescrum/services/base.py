"""
SimpleScrum Service Base

Defines the base Service class and ServiceContext that the engine's
components inherit from, giving them configuration and structured logging.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from simplescrum.config import Config
from simplescrum.logging import get_logger


@dataclass
class ServiceContext:
    """
    Context object providing shared dependencies and runtime state to services.

    Attributes:
        config: Application configuration
        session_id: Correlation id of the client session the service works for
        owner_id: Authenticated user owning the session's data
        metadata: Additional contextual metadata
    """
    config: Config
    session_id: Optional[str] = None
    owner_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def with_session(self, session_id: Optional[str], owner_id: Optional[str]) -> "ServiceContext":
        """Return a new context bound to a session."""
        return ServiceContext(
            config=self.config,
            session_id=session_id,
            owner_id=owner_id,
            metadata=self.metadata.copy(),
        )

    def with_metadata(self, **kwargs: Any) -> "ServiceContext":
        """Return a new context with additional metadata."""
        return ServiceContext(
            config=self.config,
            session_id=self.session_id,
            owner_id=self.owner_id,
            metadata={**self.metadata, **kwargs},
        )


class Service:
    """
    Base class for SimpleScrum services.

    Example:
        class MyService(Service):
            def do_something(self) -> str:
                self.logger.info("doing_something", extra=self.log_extra())
                return "done"
    """

    def __init__(self, context: ServiceContext) -> None:
        self.context = context
        self.config = context.config
        self.logger = get_logger(self.__class__.__name__)

    def log_extra(
        self,
        *,
        session_id: Optional[str] = None,
        project_id: Optional[str] = None,
        sprint_id: Optional[str] = None,
        **extra: Any,
    ) -> Dict[str, Any]:
        """
        Build a consistent extra dict for structured logging.

        Uses the context session and owner by default. Only non-None values
        are included.
        """
        payload: Dict[str, Any] = {}

        effective_session_id = session_id or self.context.session_id
        if effective_session_id is not None:
            payload["session_id"] = effective_session_id
        if self.context.owner_id is not None:
            payload["owner_id"] = self.context.owner_id
        if project_id is not None:
            payload["project_id"] = project_id
        if sprint_id is not None:
            payload["sprint_id"] = sprint_id

        payload.update({k: v for k, v in extra.items() if v is not None})
        return payload
