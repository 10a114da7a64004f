"""Task repository interface."""

from typing import Protocol

from dayplan.core.tasks import Task


class StorageError(Exception):
    """Raised when the backing store cannot complete a read or write."""

    pass


class TaskNotFoundError(LookupError):
    """Raised when a task id does not exist."""

    def __init__(self, task_id: str):
        super().__init__(f"Task not found: {task_id}")
        self.task_id = task_id


class TaskRepository(Protocol):
    """Interface for persisting task definitions in any backend."""

    def fetch_all(self) -> list[Task]:
        """Fetch every task definition."""
        ...

    def get(self, task_id: str) -> Task | None:
        """Fetch one task. Returns None if not found."""
        ...

    def insert(self, task: Task) -> Task:
        """Store a new task and return it with its assigned id."""
        ...

    def save(self, task: Task) -> Task:
        """Overwrite an existing task (last write wins)."""
        ...

    def delete(self, task_id: str) -> None:
        """Remove a task definition."""
        ...
