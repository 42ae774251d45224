"""
SimpleScrum Record Stores

Async, owner-scoped collections consumed by the persistence dispatcher and
the identity provider. The SQLite implementation runs the blocking database
calls in worker threads; the in-memory one backs ephemeral sessions and
tests.
"""

import asyncio
import sqlite3
from copy import deepcopy
from typing import Any, Dict, List, Optional, Protocol

from simplescrum.config import Config
from simplescrum.db.database import SQLiteDatabase
from simplescrum.errors import AuthenticationError, PersistenceError
from simplescrum.logging import get_logger
from simplescrum.models.domain import EntityKind

logger = get_logger(__name__)


class RecordCollection(Protocol):
    """One entity kind's records for one owner."""

    async def list_all(self) -> List[Dict[str, Any]]: ...

    async def insert(self, fields: Dict[str, Any]) -> Dict[str, Any]: ...

    async def update(self, entity_id: str, fields: Dict[str, Any]) -> Dict[str, Any]: ...


class RecordStore(Protocol):
    def collection(self, kind: str) -> RecordCollection: ...


class UserDirectory(Protocol):
    async def create_user(self, user_id: str, email: str, password_hash: str) -> Dict[str, Any]: ...

    async def get_user_by_email(self, email: str) -> Optional[Dict[str, Any]]: ...


class PersistenceBackend(Protocol):
    name: str
    users: UserDirectory

    def records_for(self, owner_id: str) -> RecordStore: ...


# SQLite

class SQLiteRecordCollection:
    def __init__(self, db: SQLiteDatabase, kind: str, owner_id: str) -> None:
        self.db = db
        self.kind = kind
        self.owner_id = owner_id

    async def _run(self, operation: str, func, *args: Any) -> Any:
        try:
            return await asyncio.to_thread(func, *args)
        except (sqlite3.Error, KeyError) as exc:
            raise PersistenceError(
                f"{operation} {self.kind} failed: {exc}",
                metadata={"kind": self.kind, "operation": operation, "owner_id": self.owner_id},
            ) from exc

    async def list_all(self) -> List[Dict[str, Any]]:
        return await self._run("list", self.db.list_records, self.kind, self.owner_id)

    async def insert(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        return await self._run("insert", self.db.insert_record, self.kind, self.owner_id, fields)

    async def update(self, entity_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        return await self._run(
            "update", self.db.update_record, self.kind, self.owner_id, entity_id, fields
        )


class SQLiteRecordStore:
    def __init__(self, db: SQLiteDatabase, owner_id: str) -> None:
        self.db = db
        self.owner_id = owner_id

    def collection(self, kind: str) -> SQLiteRecordCollection:
        return SQLiteRecordCollection(self.db, kind, self.owner_id)


class SQLiteUserDirectory:
    def __init__(self, db: SQLiteDatabase) -> None:
        self.db = db

    async def create_user(self, user_id: str, email: str, password_hash: str) -> Dict[str, Any]:
        try:
            return await asyncio.to_thread(self.db.create_user, user_id, email, password_hash)
        except sqlite3.IntegrityError as exc:
            raise AuthenticationError(
                f"An account already exists for {email}",
                metadata={"email": email},
            ) from exc
        except sqlite3.Error as exc:
            raise PersistenceError(f"create user failed: {exc}") from exc

    async def get_user_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        try:
            return await asyncio.to_thread(self.db.get_user_by_email, email)
        except sqlite3.Error as exc:
            raise PersistenceError(f"user lookup failed: {exc}") from exc


class SQLiteBackend:
    name = "sqlite"

    def __init__(self, db: SQLiteDatabase) -> None:
        self.db = db
        self.users = SQLiteUserDirectory(db)

    def records_for(self, owner_id: str) -> SQLiteRecordStore:
        return SQLiteRecordStore(self.db, owner_id)


# In-memory

class InMemoryRecordCollection:
    def __init__(self, rows: Dict[str, Dict[str, Any]], kind: str) -> None:
        self._rows = rows
        self.kind = kind

    async def list_all(self) -> List[Dict[str, Any]]:
        return [deepcopy(row) for row in self._rows.values()]

    async def insert(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        entity_id = fields.get("id")
        if not entity_id:
            raise PersistenceError(f"{self.kind} record requires an id", metadata={"kind": self.kind})
        if entity_id in self._rows:
            raise PersistenceError(
                f"{self.kind} {entity_id} already exists",
                metadata={"kind": self.kind, "entity_id": entity_id},
            )
        self._rows[entity_id] = deepcopy(fields)
        return deepcopy(self._rows[entity_id])

    async def update(self, entity_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        row = self._rows.get(entity_id)
        if row is None:
            raise PersistenceError(
                f"{self.kind} {entity_id} not found",
                metadata={"kind": self.kind, "entity_id": entity_id},
            )
        row.update(deepcopy(fields))
        return deepcopy(row)


class InMemoryRecordStore:
    def __init__(self) -> None:
        self._tables: Dict[str, Dict[str, Dict[str, Any]]] = {kind: {} for kind in EntityKind.ALL}

    def collection(self, kind: str) -> InMemoryRecordCollection:
        if kind not in self._tables:
            raise ValueError(f"Unknown entity kind: {kind}")
        return InMemoryRecordCollection(self._tables[kind], kind)


class InMemoryUserDirectory:
    def __init__(self) -> None:
        self._users: Dict[str, Dict[str, Any]] = {}

    async def create_user(self, user_id: str, email: str, password_hash: str) -> Dict[str, Any]:
        if email in self._users:
            raise AuthenticationError(f"An account already exists for {email}", metadata={"email": email})
        self._users[email] = {"id": user_id, "email": email, "password_hash": password_hash}
        return dict(self._users[email])

    async def get_user_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        user = self._users.get(email)
        return dict(user) if user is not None else None


class InMemoryBackend:
    name = "memory"

    def __init__(self) -> None:
        self.users = InMemoryUserDirectory()
        self._stores: Dict[str, InMemoryRecordStore] = {}

    def records_for(self, owner_id: str) -> InMemoryRecordStore:
        if owner_id not in self._stores:
            self._stores[owner_id] = InMemoryRecordStore()
        return self._stores[owner_id]


def open_backend(config: Config) -> PersistenceBackend:
    """Create the persistence backend selected by configuration."""
    if config.is_ephemeral:
        logger.info("persistence_backend_opened", extra={"backend": "memory"})
        return InMemoryBackend()
    db = SQLiteDatabase(config.db_path)
    db.init_schema()
    logger.info("persistence_backend_opened", extra={"backend": "sqlite", "db_path": str(config.db_path)})
    return SQLiteBackend(db)
