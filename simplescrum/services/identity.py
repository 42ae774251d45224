"""
SimpleScrum Identity

Local email/password accounts. Every sign-in and sign-out publishes exactly
one SessionChanged event on the session's bus.
"""

import hashlib
import secrets
import uuid
from typing import Optional

from simplescrum.db.records import UserDirectory
from simplescrum.errors import AuthenticationError, ValidationError
from simplescrum.models.domain import UserIdentity
from simplescrum.services.base import Service, ServiceContext
from simplescrum.services.events import EventBus, SessionChanged

_SCHEME = "pbkdf2_sha256"


def hash_password(password: str, *, iterations: int, salt: Optional[str] = None) -> str:
    """Return ``pbkdf2_sha256$<iterations>$<salt>$<hex digest>``."""
    salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt.encode("utf-8"), iterations)
    return f"{_SCHEME}${iterations}${salt}${digest.hex()}"


def verify_password(encoded: str, password: str) -> bool:
    try:
        scheme, iterations, salt, expected = encoded.split("$", 3)
        rounds = int(iterations)
    except ValueError:
        return False
    if scheme != _SCHEME:
        return False
    candidate = hash_password(password, iterations=rounds, salt=salt).split("$", 3)[3]
    return secrets.compare_digest(candidate, expected)


def _normalize_email(email: str) -> str:
    return (email or "").strip().lower()


class LocalIdentityProvider(Service):
    """Identity collaborator backed by the configured user directory."""

    def __init__(self, context: ServiceContext, users: UserDirectory, bus: EventBus) -> None:
        super().__init__(context)
        self.users = users
        self.bus = bus
        self._current: Optional[UserIdentity] = None
        self._session_id: Optional[str] = None

    @property
    def current_user(self) -> Optional[UserIdentity]:
        return self._current

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    async def sign_up(self, email: str, password: str) -> UserIdentity:
        """Create an account and sign it in."""
        email = _normalize_email(email)
        if "@" not in email:
            raise ValidationError("A valid email address is required", metadata={"email": email})
        if len(password or "") < self.config.min_password_length:
            raise ValidationError(
                f"Password must be at least {self.config.min_password_length} characters",
                metadata={"email": email},
            )
        user_id = f"user-{uuid.uuid4().hex[:10]}"
        await self.users.create_user(
            user_id,
            email,
            hash_password(password, iterations=self.config.password_iterations),
        )
        self.logger.info("user_signed_up", extra=self.log_extra(owner_id=user_id))
        return await self._establish(UserIdentity(user_id=user_id, email=email))

    async def sign_in(self, email: str, password: str) -> UserIdentity:
        email = _normalize_email(email)
        record = await self.users.get_user_by_email(email)
        if record is None or not verify_password(str(record.get("password_hash") or ""), password or ""):
            self.logger.warning("sign_in_rejected", extra=self.log_extra(email=email))
            raise AuthenticationError("Invalid email or password", metadata={"email": email})
        return await self._establish(UserIdentity(user_id=str(record["id"]), email=email))

    async def sign_out(self) -> None:
        if self._current is None:
            return
        user = self._current
        self._current = None
        self._session_id = None
        self.logger.info("user_signed_out", extra=self.log_extra(owner_id=user.user_id))
        await self.bus.publish_async(SessionChanged(user=None, session_id=None))

    async def _establish(self, user: UserIdentity) -> UserIdentity:
        if self._current == user:
            return user
        self._current = user
        self._session_id = f"session-{uuid.uuid4().hex[:10]}"
        self.logger.info(
            "user_signed_in",
            extra=self.log_extra(session_id=self._session_id, owner_id=user.user_id),
        )
        await self.bus.publish_async(SessionChanged(user=user, session_id=self._session_id))
        return user
