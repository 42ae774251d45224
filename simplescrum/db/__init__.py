"""SimpleScrum database layer."""

from simplescrum.db.database import SQLiteDatabase
from simplescrum.db.records import (
    InMemoryBackend,
    InMemoryRecordStore,
    PersistenceBackend,
    RecordCollection,
    RecordStore,
    SQLiteBackend,
    SQLiteRecordStore,
    open_backend,
)

__all__ = [
    "SQLiteDatabase",
    "InMemoryBackend",
    "InMemoryRecordStore",
    "PersistenceBackend",
    "RecordCollection",
    "RecordStore",
    "SQLiteBackend",
    "SQLiteRecordStore",
    "open_backend",
]
