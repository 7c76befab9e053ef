"""Storage backends and models."""

from photo_stylizer.storage.base import ObjectStore, TaskStore
from photo_stylizer.storage.memory import InMemoryObjectStore, InMemoryTaskStore
from photo_stylizer.storage.models import ReviewResult, Task
from photo_stylizer.storage.postgres import PostgresTaskStore

__all__ = [
    "InMemoryObjectStore",
    "InMemoryTaskStore",
    "ObjectStore",
    "PostgresTaskStore",
    "ReviewResult",
    "Task",
    "TaskStore",
]
