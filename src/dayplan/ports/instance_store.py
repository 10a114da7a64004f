"""Instance state store interface."""

from typing import Protocol

from dayplan.core.overlay import InstanceKey
from dayplan.core.tasks import InstanceState


class InstanceStateStore(Protocol):
    """
    Keyed per-occurrence overrides for recurring tasks.

    Rows are keyed by (parent task id, instance day-start). Writes are
    upserts and must be atomic per key.
    """

    def get_state(self, parent_task_id: str, instance_date: int) -> InstanceState | None:
        """Stored override for one occurrence, or None."""
        ...

    def states_for(self, parent_task_ids: list[str]) -> dict[InstanceKey, InstanceState]:
        """All stored overrides for the given parents."""
        ...

    def set_field(self, parent_task_id: str, instance_date: int, field_name: str, value: bool) -> InstanceState:
        """Upsert one boolean of an occurrence and return the resulting state."""
        ...

    def delete_for_parent(self, parent_task_id: str) -> None:
        """Drop every override owned by a parent task."""
        ...
