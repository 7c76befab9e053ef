"""PostgreSQL storage backend for stylization tasks.

Terms:
- Payload: the whole Task model stored as one JSONB document.
- Expiry: `expires_at` is fixed at creation (`created_at + ttl`); reads treat
  expired rows exactly like missing rows.
- Row lock: `SELECT ... FOR UPDATE` keeps read-modify-write updates atomic.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import UTC, datetime
from typing import Any

from photo_stylizer.errors import StorageError, TaskAlreadyExistsError, TaskNotFoundError
from photo_stylizer.storage.base import TaskMutator
from photo_stylizer.storage.models import Task

logger = logging.getLogger(__name__)


class PostgresTaskStore:
    """Persist task records in PostgreSQL so every instance sees the same state."""

    def __init__(self, database_url: str) -> None:
        if not database_url:
            raise ValueError("database_url is required")
        self.database_url = database_url
        # Serializes connection use from this instance; rows are locked in SQL.
        self._lock = threading.Lock()
        self._psycopg, self._dict_row, self._json_wrapper = self._load_psycopg()

    def migrate(self) -> None:
        """Create the task table and indexes if they do not already exist."""
        with self._lock, self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS stylize_tasks (
                    task_id TEXT PRIMARY KEY,
                    status TEXT NOT NULL,
                    payload JSONB NOT NULL,
                    created_at TIMESTAMPTZ NOT NULL,
                    updated_at TIMESTAMPTZ NOT NULL,
                    expires_at TIMESTAMPTZ NOT NULL
                )
                """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_stylize_tasks_expires_at
                ON stylize_tasks(expires_at)
                """)
            conn.commit()

    def create(self, task: Task) -> Task:
        with self._lock, self._connect() as conn:
            # An expired row with the same id is gone as far as callers know.
            conn.execute(
                "DELETE FROM stylize_tasks WHERE task_id = %s AND expires_at <= %s",
                (task.task_id, _utc_now()),
            )
            cursor = conn.execute(
                """
                INSERT INTO stylize_tasks (
                    task_id,
                    status,
                    payload,
                    created_at,
                    updated_at,
                    expires_at
                ) VALUES (%s, %s, %s, %s, %s, %s)
                ON CONFLICT (task_id) DO NOTHING
                """,
                (
                    task.task_id,
                    task.status,
                    self._json_wrapper(task.model_dump(mode="json")),
                    task.created_at,
                    task.updated_at,
                    task.expires_at,
                ),
            )
            if cursor.rowcount == 0:
                conn.rollback()
                raise TaskAlreadyExistsError(task.task_id)
            conn.commit()
        return task

    def get(self, task_id: str) -> Task:
        with self._lock, self._connect() as conn:
            row = conn.execute(
                "SELECT payload FROM stylize_tasks WHERE task_id = %s AND expires_at > %s",
                (task_id, _utc_now()),
            ).fetchone()
        if row is None:
            raise TaskNotFoundError(task_id)
        return self._row_to_task(row)

    def update(self, task_id: str, mutator: TaskMutator) -> Task:
        """Apply `mutator` to the stored record inside one transaction."""
        with self._lock, self._connect() as conn:
            row = conn.execute(
                """
                SELECT payload FROM stylize_tasks
                WHERE task_id = %s AND expires_at > %s
                FOR UPDATE
                """,
                (task_id, _utc_now()),
            ).fetchone()
            if row is None:
                conn.rollback()
                raise TaskNotFoundError(task_id)
            current = self._row_to_task(row)
            updated = mutator(current.model_copy(deep=True)).model_copy(
                update={
                    "task_id": current.task_id,
                    "created_at": current.created_at,
                    "expires_at": current.expires_at,
                    "updated_at": _utc_now(),
                }
            )
            conn.execute(
                """
                UPDATE stylize_tasks
                SET status = %s,
                    payload = %s,
                    updated_at = %s
                WHERE task_id = %s
                """,
                (
                    updated.status,
                    self._json_wrapper(updated.model_dump(mode="json")),
                    updated.updated_at,
                    task_id,
                ),
            )
            conn.commit()
        return updated

    def purge_expired(self) -> int:
        with self._lock, self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM stylize_tasks WHERE expires_at <= %s",
                (_utc_now(),),
            )
            conn.commit()
        removed = cursor.rowcount or 0
        if removed:
            logger.info("task_store event=purge_expired removed=%d", removed)
        return removed

    def _connect(self) -> Any:
        """Open a psycopg connection that yields dict-like rows."""
        try:
            return self._psycopg.connect(self.database_url, row_factory=self._dict_row)
        except self._psycopg.OperationalError as exc:
            raise StorageError(f"Task store unavailable: {exc}") from exc

    @staticmethod
    def _load_psycopg() -> tuple[Any, Any, Any]:
        """Import psycopg and helpers with a friendly install hint on failure."""
        try:
            import psycopg
            from psycopg.rows import dict_row
            from psycopg.types.json import Json
        except ImportError as exc:  # pragma: no cover - exercised only without dependency
            raise RuntimeError(
                "PostgreSQL backend requires psycopg. Install with: "
                'python -m pip install "psycopg[binary]>=3.2,<4.0"'
            ) from exc
        return psycopg, dict_row, Json

    @staticmethod
    def _row_to_task(row: Any) -> Task:
        payload = row["payload"]
        if isinstance(payload, str):
            payload = json.loads(payload)
        return Task.model_validate(payload)


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)
