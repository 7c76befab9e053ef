"""Storage interfaces for the task lifecycle."""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol

from photo_stylizer.storage.models import Task

# Mutators receive a private copy of the record and return the next version.
TaskMutator = Callable[[Task], Task]


class TaskStore(Protocol):
    """Keyed task records with a fixed lifetime measured from `created_at`.

    `get` and `update` raise `TaskNotFoundError` for ids that were never
    created and for ids whose record expired; callers cannot tell the two apart.
    """

    def migrate(self) -> None: ...

    def create(self, task: Task) -> Task: ...

    def get(self, task_id: str) -> Task: ...

    def update(self, task_id: str, mutator: TaskMutator) -> Task: ...

    def purge_expired(self) -> int: ...


class ObjectStore(Protocol):
    """Blob storage for original and generated images."""

    def put(self, key: str, data: bytes, content_type: str) -> str: ...

    def get(self, key: str) -> bytes: ...
