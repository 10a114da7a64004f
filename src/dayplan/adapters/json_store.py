"""File-based task storage adapter."""

import json
import logging
import os
import tempfile
import time
import uuid
from dataclasses import replace
from pathlib import Path

from dayplan.core.overlay import InstanceKey, with_field
from dayplan.core.tasks import InstanceState, Task
from dayplan.ports.task_repo import StorageError, TaskNotFoundError

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class JsonTaskStore:
    """
    JSON file task storage.

    Implements TaskRepository and InstanceStateStore protocols. Tasks and
    instance overrides live in one document:
    {"tasks": [...], "instances": [{"parentTaskId", "instanceDate", ...}]}.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path).expanduser()

    def _load(self) -> tuple[dict[str, Task], dict[InstanceKey, InstanceState]]:
        if not self.path.exists():
            return {}, {}
        try:
            data = json.loads(self.path.read_text())
            tasks = {t.id: t for t in (Task.from_dict(item) for item in data.get("tasks", []))}
            instances = {
                (item["parentTaskId"], int(item["instanceDate"])): InstanceState.from_dict(item)
                for item in data.get("instances", [])
            }
        except (OSError, json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            raise StorageError(f"Cannot read task store {self.path}: {e}") from e
        return tasks, instances

    def _dump(self, tasks: dict[str, Task], instances: dict[InstanceKey, InstanceState]) -> None:
        payload = {
            "tasks": [t.to_dict() for t in tasks.values()],
            "instances": [
                {"parentTaskId": parent_id, "instanceDate": instance_date, **state.to_dict()}
                for (parent_id, instance_date), state in sorted(instances.items())
            ],
        }
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".tasks-", suffix=".json")
        except OSError as e:
            raise StorageError(f"Cannot write task store {self.path}: {e}") from e
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self.path)
        except OSError as e:
            raise StorageError(f"Cannot write task store {self.path}: {e}") from e
        finally:
            if os.path.exists(tmp):
                os.unlink(tmp)

    # TaskRepository

    def fetch_all(self) -> list[Task]:
        """Fetch every task definition."""
        tasks, _ = self._load()
        return list(tasks.values())

    def get(self, task_id: str) -> Task | None:
        """Fetch one task. Returns None if not found."""
        tasks, _ = self._load()
        return tasks.get(task_id)

    def insert(self, task: Task) -> Task:
        """Store a new task, assigning an id and timestamps."""
        tasks, instances = self._load()
        now = _now_ms()
        stored = replace(task, id=task.id or uuid.uuid4().hex, created_at=now, updated_at=now)
        tasks[stored.id] = stored
        self._dump(tasks, instances)
        logger.debug(f"Inserted task {stored.id}")
        return stored

    def save(self, task: Task) -> Task:
        """Overwrite an existing task (last write wins)."""
        tasks, instances = self._load()
        if task.id not in tasks:
            raise TaskNotFoundError(task.id)
        stored = replace(task, updated_at=_now_ms())
        tasks[stored.id] = stored
        self._dump(tasks, instances)
        return stored

    def delete(self, task_id: str) -> None:
        """Remove a task definition. Missing ids are ignored."""
        tasks, instances = self._load()
        if tasks.pop(task_id, None) is not None:
            self._dump(tasks, instances)
            logger.debug(f"Deleted task {task_id}")

    # InstanceStateStore

    def get_state(self, parent_task_id: str, instance_date: int) -> InstanceState | None:
        """Stored override for one occurrence, or None."""
        _, instances = self._load()
        return instances.get((parent_task_id, instance_date))

    def states_for(self, parent_task_ids: list[str]) -> dict[InstanceKey, InstanceState]:
        """All stored overrides for the given parents."""
        _, instances = self._load()
        wanted = set(parent_task_ids)
        return {key: state for key, state in instances.items() if key[0] in wanted}

    def set_field(self, parent_task_id: str, instance_date: int, field_name: str, value: bool) -> InstanceState:
        """Upsert one boolean of an occurrence; the row is created on first write."""
        tasks, instances = self._load()
        key = (parent_task_id, instance_date)
        state = with_field(instances.get(key, InstanceState()), field_name, value)
        instances[key] = state
        self._dump(tasks, instances)
        return state

    def delete_for_parent(self, parent_task_id: str) -> None:
        """Drop every override owned by a parent task."""
        tasks, instances = self._load()
        remaining = {key: state for key, state in instances.items() if key[0] != parent_task_id}
        if len(remaining) != len(instances):
            self._dump(tasks, remaining)
