"""
Tests for local email/password identity and session change events.
"""

import asyncio
from typing import List

import pytest

from simplescrum.db.records import InMemoryUserDirectory
from simplescrum.errors import AuthenticationError, ValidationError
from simplescrum.services.base import ServiceContext
from simplescrum.services.events import EventBus, SessionChanged
from simplescrum.services.identity import LocalIdentityProvider, hash_password, verify_password


def _provider(context: ServiceContext):
    bus = EventBus()
    events: List[SessionChanged] = []
    bus.add_handler(SessionChanged, events.append)
    return LocalIdentityProvider(context, InMemoryUserDirectory(), bus), events


def test_password_hash_round_trip() -> None:
    encoded = hash_password("s3cret!", iterations=1_000)

    assert encoded.startswith("pbkdf2_sha256$1000$")
    assert verify_password(encoded, "s3cret!")
    assert not verify_password(encoded, "wrong")
    assert not verify_password("not-a-hash", "s3cret!")
    assert hash_password("s3cret!", iterations=1_000) != encoded


def test_sign_up_signs_in_and_publishes_once(context: ServiceContext) -> None:
    provider, events = _provider(context)

    user = asyncio.run(provider.sign_up("  Dev@Example.com ", "s3cret!"))

    assert user.email == "dev@example.com"
    assert provider.current_user == user
    assert provider.session_id.startswith("session-")
    assert len(events) == 1
    assert events[0].user == user
    assert events[0].session_id == provider.session_id


def test_duplicate_sign_up_is_rejected(context: ServiceContext) -> None:
    provider, _ = _provider(context)
    asyncio.run(provider.sign_up("dev@example.com", "s3cret!"))

    with pytest.raises(AuthenticationError, match="already exists"):
        asyncio.run(provider.sign_up("dev@example.com", "other-pass"))


@pytest.mark.parametrize("email,password", [("not-an-email", "s3cret!"), ("dev@example.com", "123")])
def test_sign_up_validates_input(context: ServiceContext, email: str, password: str) -> None:
    provider, events = _provider(context)

    with pytest.raises(ValidationError):
        asyncio.run(provider.sign_up(email, password))
    assert events == []


def test_sign_in_with_wrong_password_fails(context: ServiceContext) -> None:
    provider, events = _provider(context)
    asyncio.run(provider.sign_up("dev@example.com", "s3cret!"))
    asyncio.run(provider.sign_out())

    with pytest.raises(AuthenticationError, match="Invalid email or password"):
        asyncio.run(provider.sign_in("dev@example.com", "nope"))
    with pytest.raises(AuthenticationError):
        asyncio.run(provider.sign_in("nobody@example.com", "s3cret!"))
    assert provider.current_user is None
    assert len(events) == 2


def test_sign_out_publishes_empty_session(context: ServiceContext) -> None:
    provider, events = _provider(context)
    asyncio.run(provider.sign_up("dev@example.com", "s3cret!"))

    asyncio.run(provider.sign_out())
    asyncio.run(provider.sign_out())

    assert provider.current_user is None
    assert [e.user is None for e in events] == [False, True]


def test_signing_in_again_as_same_user_is_not_a_change(context: ServiceContext) -> None:
    provider, events = _provider(context)
    asyncio.run(provider.sign_up("dev@example.com", "s3cret!"))

    asyncio.run(provider.sign_in("dev@example.com", "s3cret!"))

    assert len(events) == 1
