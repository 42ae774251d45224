import secrets
from dataclasses import dataclass
from typing import Dict, Optional

from fastapi import Depends, Header, Request

from simplescrum.config import Config
from simplescrum.db.records import PersistenceBackend
from simplescrum.errors import AuthenticationError
from simplescrum.logging import get_logger
from simplescrum.models.domain import UserIdentity
from simplescrum.services.base import ServiceContext
from simplescrum.services.engine import ScrumEngine
from simplescrum.services.events import EventBus
from simplescrum.services.identity import LocalIdentityProvider

logger = get_logger(__name__)


@dataclass
class ApiSession:
    token: str
    bus: EventBus
    identity: LocalIdentityProvider
    engine: ScrumEngine

    @property
    def user(self) -> Optional[UserIdentity]:
        return self.identity.current_user


class SessionRegistry:
    """
    Bearer-token sessions for the HTTP API. Each session owns its own bus,
    identity provider and engine; all of them share one persistence backend.
    """

    def __init__(self, config: Config, backend: PersistenceBackend) -> None:
        self.config = config
        self.backend = backend
        self._sessions: Dict[str, ApiSession] = {}

    def _new_session(self) -> ApiSession:
        bus = EventBus()
        context = ServiceContext(config=self.config)
        engine = ScrumEngine(context, self.backend, bus)
        identity = LocalIdentityProvider(context, self.backend.users, bus)
        return ApiSession(token=secrets.token_urlsafe(32), bus=bus, identity=identity, engine=engine)

    def _register(self, session: ApiSession) -> ApiSession:
        # Raises the load failure, if any, recorded while the session opened.
        session.engine.store
        self._sessions[session.token] = session
        return session

    async def sign_up(self, email: str, password: str) -> ApiSession:
        session = self._new_session()
        await session.identity.sign_up(email, password)
        return self._register(session)

    async def sign_in(self, email: str, password: str) -> ApiSession:
        session = self._new_session()
        await session.identity.sign_in(email, password)
        return self._register(session)

    async def sign_out(self, token: str) -> None:
        session = self.get(token)
        await session.identity.sign_out()
        self._sessions.pop(token, None)

    def get(self, token: Optional[str]) -> ApiSession:
        session = self._sessions.get(token or "")
        if session is None:
            raise AuthenticationError("Unauthorized")
        return session


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.sessions


def get_token(
    authorization: Optional[str] = Header(None, alias="Authorization"),
    x_simplescrum_token: Optional[str] = Header(None, alias="X-SimpleScrum-Token"),
) -> Optional[str]:
    """
    Extract the session token.

    Accepted headers:
    - `Authorization: Bearer <token>`
    - `X-SimpleScrum-Token: <token>`
    """
    if x_simplescrum_token:
        return x_simplescrum_token
    if authorization:
        parts = authorization.strip().split(None, 1)
        if len(parts) == 2 and parts[0].lower() == "bearer":
            return parts[1]
    return None


def get_session(
    token: Optional[str] = Depends(get_token),
    registry: SessionRegistry = Depends(get_registry),
) -> ApiSession:
    return registry.get(token)


def get_engine(session: ApiSession = Depends(get_session)) -> ScrumEngine:
    return session.engine
