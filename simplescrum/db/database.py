"""
SimpleScrum Database Layer

SQLite persistence for entity records and local user accounts.
Records are plain dicts keyed by column name; entity reconstruction happens
in the models layer.
"""

import sqlite3
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

from simplescrum.logging import get_logger
from simplescrum.models.domain import EntityKind

logger = get_logger(__name__)


# kind -> (table, writable columns, list ordering)
TABLES: Dict[str, Tuple[str, Tuple[str, ...], str]] = {
    EntityKind.PROJECT: (
        "projects",
        ("id", "name", "product_goal", "current_velocity", "created_at"),
        "created_at, rowid",
    ),
    EntityKind.PBI: (
        "pbis",
        (
            "id", "project_id", "pbi_number", "title", "story_points",
            "priority_index", "refinement_status", "sprint_id", "status_override",
        ),
        "project_id, priority_index, rowid",
    ),
    EntityKind.SPRINT: (
        "sprints",
        (
            "id", "project_id", "sprint_number", "sprint_goal", "team_capacity",
            "committed_sp", "completed_sp", "start_date", "end_date", "status",
        ),
        "project_id, sprint_number, rowid",
    ),
    EntityKind.TASK: (
        "tasks",
        (
            "id", "task_id", "sprint_id", "pbi_id", "description", "status",
            "owner", "time_estimate_hours",
        ),
        "rowid",
    ),
    EntityKind.RETROSPECTIVE: (
        "retrospectives",
        ("id", "sprint_id", "went_well", "to_improve", "action_item"),
        "rowid",
    ),
}


def _table_for(kind: str) -> Tuple[str, Tuple[str, ...], str]:
    try:
        return TABLES[kind]
    except KeyError:
        raise ValueError(f"Unknown entity kind: {kind}") from None


def _to_db_value(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


class SQLiteDatabase:
    """
    SQLite-backed persistence for SimpleScrum state.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database transactions."""
        conn = self._connect()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _fetchone(self, query: str, params: Iterable[Any] = ()) -> Optional[sqlite3.Row]:
        conn = self._connect()
        try:
            return conn.execute(query, tuple(params)).fetchone()
        finally:
            conn.close()

    def _fetchall(self, query: str, params: Iterable[Any] = ()) -> List[sqlite3.Row]:
        conn = self._connect()
        try:
            return conn.execute(query, tuple(params)).fetchall()
        finally:
            conn.close()

    def init_schema(self) -> None:
        """Initialize database schema."""
        from simplescrum.db.schema import SCHEMA_SQLITE

        with self._transaction() as conn:
            conn.executescript(SCHEMA_SQLITE)

    @staticmethod
    def _row_to_record(row: sqlite3.Row, columns: Tuple[str, ...]) -> Dict[str, Any]:
        return {column: row[column] for column in columns}

    # Entity records

    def insert_record(self, kind: str, owner_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        table, columns, _ = _table_for(kind)
        names = [c for c in columns if c in fields]
        if "id" not in names:
            raise ValueError(f"{kind} record requires an id")
        placeholders = ", ".join("?" for _ in range(len(names) + 1))
        with self._transaction() as conn:
            conn.execute(
                f"INSERT INTO {table} (owner_id, {', '.join(names)}) VALUES ({placeholders})",
                (owner_id, *(_to_db_value(fields[n]) for n in names)),
            )
        return self.get_record(kind, owner_id, fields["id"])

    def update_record(
        self,
        kind: str,
        owner_id: str,
        entity_id: str,
        fields: Dict[str, Any],
    ) -> Dict[str, Any]:
        table, columns, _ = _table_for(kind)
        updates = ["updated_at = CURRENT_TIMESTAMP"]
        params: List[Any] = []

        allowed = set(columns) - {"id"}
        for key, value in fields.items():
            if key in allowed:
                updates.append(f"{key} = ?")
                params.append(_to_db_value(value))

        if len(updates) == 1:
            return self.get_record(kind, owner_id, entity_id)

        params.extend([entity_id, owner_id])
        with self._transaction() as conn:
            cur = conn.execute(
                f"UPDATE {table} SET {', '.join(updates)} WHERE id = ? AND owner_id = ?",
                tuple(params),
            )
            if cur.rowcount == 0:
                raise KeyError(f"{kind} {entity_id} not found")
        return self.get_record(kind, owner_id, entity_id)

    def get_record(self, kind: str, owner_id: str, entity_id: str) -> Dict[str, Any]:
        table, columns, _ = _table_for(kind)
        row = self._fetchone(
            f"SELECT * FROM {table} WHERE id = ? AND owner_id = ?",
            (entity_id, owner_id),
        )
        if row is None:
            raise KeyError(f"{kind} {entity_id} not found")
        return self._row_to_record(row, columns)

    def list_records(self, kind: str, owner_id: str) -> List[Dict[str, Any]]:
        table, columns, order = _table_for(kind)
        rows = self._fetchall(
            f"SELECT * FROM {table} WHERE owner_id = ? ORDER BY {order}",
            (owner_id,),
        )
        return [self._row_to_record(row, columns) for row in rows]

    # Users

    def create_user(self, user_id: str, email: str, password_hash: str) -> Dict[str, Any]:
        with self._transaction() as conn:
            conn.execute(
                "INSERT INTO users (id, email, password_hash) VALUES (?, ?, ?)",
                (user_id, email, password_hash),
            )
        logger.info("user_created", extra={"owner_id": user_id})
        row = self._fetchone("SELECT * FROM users WHERE id = ?", (user_id,))
        return dict(row) if row is not None else {}

    def get_user_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        row = self._fetchone("SELECT * FROM users WHERE email = ?", (email,))
        return dict(row) if row is not None else None
