"""
Property-based tests for the SQLite record layer.

**Feature: persistence, Property 1: Records are scoped to their owner**
"""

import asyncio
import tempfile
from contextlib import contextmanager
from pathlib import Path

import pytest
from hypothesis import given, settings, strategies as st

from simplescrum.db.database import SQLiteDatabase
from simplescrum.db.records import SQLiteBackend
from simplescrum.errors import AuthenticationError, PersistenceError
from simplescrum.models.domain import EntityKind


@contextmanager
def temp_db_context():
    """Context manager to create a temporary database for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        db = SQLiteDatabase(Path(tmpdir) / "test.db")
        db.init_schema()
        yield db


def _project(project_id: str, name: str = "Webshop") -> dict:
    return {
        "id": project_id,
        "name": name,
        "product_goal": "",
        "current_velocity": 0,
        "created_at": "2024-03-04T10:00:00+00:00",
    }


def test_insert_update_and_list() -> None:
    with temp_db_context() as db:
        db.insert_record(EntityKind.PROJECT, "alice", _project("project-1"))

        updated = db.update_record(
            EntityKind.PROJECT, "alice", "project-1", {"current_velocity": 8, "owner_id": "mallory"}
        )

        assert updated["current_velocity"] == 8
        assert db.list_records(EntityKind.PROJECT, "alice") == [updated]
        assert db.list_records(EntityKind.PROJECT, "mallory") == []


def test_update_of_missing_record_raises_key_error() -> None:
    with temp_db_context() as db:
        with pytest.raises(KeyError):
            db.update_record(EntityKind.PROJECT, "alice", "project-missing", {"name": "x"})


def test_nullable_columns_round_trip() -> None:
    with temp_db_context() as db:
        db.insert_record(EntityKind.PROJECT, "alice", _project("project-1"))
        pbi = {
            "id": "pbi-1",
            "project_id": "project-1",
            "pbi_number": 1,
            "title": "Login",
            "story_points": 5,
            "priority_index": 0,
            "refinement_status": "ready",
            "sprint_id": "sprint-1",
            "status_override": "done",
        }
        db.insert_record(EntityKind.PBI, "alice", pbi)

        cleared = db.update_record(EntityKind.PBI, "alice", "pbi-1", {"sprint_id": None, "status_override": None})

        assert cleared["sprint_id"] is None
        assert cleared["status_override"] is None


def test_record_collection_maps_errors(tmp_path: Path) -> None:
    db = SQLiteDatabase(tmp_path / "test.db")
    db.init_schema()
    backend = SQLiteBackend(db)
    projects = backend.records_for("alice").collection(EntityKind.PROJECT)

    async def scenario():
        await projects.insert(_project("project-1"))
        with pytest.raises(PersistenceError):
            await projects.insert(_project("project-1"))
        with pytest.raises(PersistenceError):
            await projects.update("project-missing", {"name": "x"})
        return await projects.list_all()

    assert [r["id"] for r in asyncio.run(scenario())] == ["project-1"]


def test_duplicate_users_are_rejected(tmp_path: Path) -> None:
    db = SQLiteDatabase(tmp_path / "test.db")
    db.init_schema()
    users = SQLiteBackend(db).users

    async def scenario():
        await users.create_user("user-1", "dev@example.com", "hash")
        with pytest.raises(AuthenticationError):
            await users.create_user("user-2", "dev@example.com", "hash")
        return await users.get_user_by_email("dev@example.com")

    assert asyncio.run(scenario())["id"] == "user-1"


@settings(max_examples=100, deadline=None)
@given(
    owners=st.lists(
        st.sampled_from(["alice", "bob", "carol"]),
        min_size=0,
        max_size=12,
    ),
    reader=st.sampled_from(["alice", "bob", "carol"]),
)
def test_property_records_are_owner_scoped(owners, reader) -> None:
    """
    Property 1: listing a kind for an owner returns exactly that owner's
    records, in insertion order.
    """
    with temp_db_context() as db:
        for index, owner in enumerate(owners):
            db.insert_record(EntityKind.PROJECT, owner, _project(f"project-{index}", owner))

        listed = db.list_records(EntityKind.PROJECT, reader)

        expected = [f"project-{i}" for i, owner in enumerate(owners) if owner == reader]
        assert [r["id"] for r in listed] == expected
        assert all(r["name"] == reader for r in listed)
