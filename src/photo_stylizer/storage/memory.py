"""In-memory storage backends for tests and single-process development.

These keep state inside one Python process, so two server instances never see
each other's tasks. Use the Postgres task store for anything shared.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from datetime import UTC, datetime

from photo_stylizer.errors import StorageError, TaskAlreadyExistsError, TaskNotFoundError
from photo_stylizer.storage.base import TaskMutator
from photo_stylizer.storage.models import Task


def _utc_now() -> datetime:
    return datetime.now(UTC)


class InMemoryTaskStore:
    """Lock-protected dict of task records with expiry."""

    def __init__(self, clock: Callable[[], datetime] = _utc_now) -> None:
        self._clock = clock
        self._tasks: dict[str, Task] = {}
        self._lock = threading.Lock()

    def migrate(self) -> None:
        return None

    def create(self, task: Task) -> Task:
        with self._lock:
            current = self._tasks.get(task.task_id)
            if current is not None and not self._expired(current):
                raise TaskAlreadyExistsError(task.task_id)
            self._tasks[task.task_id] = task.model_copy(deep=True)
        return task.model_copy(deep=True)

    def get(self, task_id: str) -> Task:
        with self._lock:
            return self._live(task_id).model_copy(deep=True)

    def update(self, task_id: str, mutator: TaskMutator) -> Task:
        with self._lock:
            current = self._live(task_id)
            updated = mutator(current.model_copy(deep=True))
            # Identity and lifetime belong to the store, not to the mutator.
            updated = updated.model_copy(
                update={
                    "task_id": current.task_id,
                    "created_at": current.created_at,
                    "expires_at": current.expires_at,
                    "updated_at": self._clock(),
                }
            )
            self._tasks[task_id] = updated
            return updated.model_copy(deep=True)

    def purge_expired(self) -> int:
        with self._lock:
            expired = [task_id for task_id, task in self._tasks.items() if self._expired(task)]
            for task_id in expired:
                del self._tasks[task_id]
        return len(expired)

    def _live(self, task_id: str) -> Task:
        task = self._tasks.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        if self._expired(task):
            del self._tasks[task_id]
            raise TaskNotFoundError(task_id)
        return task

    def _expired(self, task: Task) -> bool:
        return task.expires_at <= self._clock()


class InMemoryObjectStore:
    """Dict-backed object store."""

    def __init__(self) -> None:
        self._objects: dict[str, tuple[bytes, str]] = {}
        self._lock = threading.Lock()

    def put(self, key: str, data: bytes, content_type: str) -> str:
        with self._lock:
            self._objects[key] = (bytes(data), content_type)
        return key

    def get(self, key: str) -> bytes:
        with self._lock:
            item = self._objects.get(key)
        if item is None:
            raise StorageError(f"Object {key} does not exist")
        return item[0]

    def content_type(self, key: str) -> str | None:
        with self._lock:
            item = self._objects.get(key)
        return item[1] if item else None
