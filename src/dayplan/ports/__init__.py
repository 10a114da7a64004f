"""Ports - interfaces/protocols for external dependencies."""

from .task_repo import StorageError, TaskNotFoundError, TaskRepository
from .instance_store import InstanceStateStore
from .local_state import LocalStateStore

__all__ = [
    "TaskRepository",
    "InstanceStateStore",
    "LocalStateStore",
    "StorageError",
    "TaskNotFoundError",
]
