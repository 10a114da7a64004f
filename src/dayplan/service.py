"""Query and mutation façade over the task and instance stores.

Reads run the pure classifier over stored definitions with instance state
overlaid. Writes route recurring-occurrence operations to the instance
store and everything else to the task repository.
"""

import logging
from dataclasses import dataclass, replace

from .core.overlay import InstanceKey, complete_all_future, next_uncompleted_occurrence
from .core.recurrence import describe_recurrence, next_occurrence_on_or_after
from .core.tasks import InstanceState, Task, TaskType, ValidationError, clear_foreign_fields, validate_task
from .core.timecontext import TimeContext
from .core.views import (
    Concrete,
    Dashboard,
    Entry,
    View,
    Virtual,
    classify,
    filter_entries,
    memberships,
    sort_entries,
)
from .ports.instance_store import InstanceStateStore
from .ports.task_repo import TaskNotFoundError, TaskRepository

logger = logging.getLogger(__name__)


@dataclass
class TaskDetail:
    """A task as shown in an edit form, with its computed placement."""

    task: Task
    views: set[View]
    next_occurrence: int | None = None
    recurrence_summary: str = ""


class TaskService:
    """Single entry point for reading and changing tasks."""

    def __init__(
        self,
        tasks: TaskRepository,
        instances: InstanceStateStore,
        overdue_lookback_days: int = 1,
    ):
        self.tasks = tasks
        self.instances = instances
        self.overdue_lookback_days = max(overdue_lookback_days, 1)

    # ============== Queries ==============

    def _overlay(self, tasks: list[Task]) -> dict[InstanceKey, InstanceState]:
        parents = [t.id for t in tasks if t.is_recurring]
        if not parents:
            return {}
        return self.instances.states_for(parents)

    def list_tasks(
        self,
        view: View | str,
        ctx: TimeContext,
        folder_id: str | None = None,
        tag_ids: list[str] | None = None,
        search: str | None = None,
        not_in_folder: bool = False,
        not_tagged: bool = False,
    ) -> list[Entry]:
        """Entries of a view, filtered and in presentation order."""
        view = View(view)
        tasks = self.tasks.fetch_all()
        entries = classify(tasks, view, ctx, self._overlay(tasks), self.overdue_lookback_days)
        entries = filter_entries(entries, folder_id, tag_ids, search, not_in_folder, not_tagged)
        return sort_entries(entries, view)

    def dashboard(self, ctx: TimeContext, **filters) -> Dashboard:
        """Today and Tomorrow as separate lists, from a single fetch."""
        tasks = self.tasks.fetch_all()
        overlay = self._overlay(tasks)
        lists = {}
        for view in (View.TODAY, View.TOMORROW):
            entries = classify(tasks, view, ctx, overlay, self.overdue_lookback_days)
            lists[view] = sort_entries(filter_entries(entries, **filters), view)
        return Dashboard(today=lists[View.TODAY], tomorrow=lists[View.TOMORROW])

    def get_task(self, task_id: str, ctx: TimeContext) -> TaskDetail:
        """Load a task with its views, next occurrence and decoded recurrence."""
        task = self._require(task_id)
        overlay = self._overlay([task])
        detail = TaskDetail(
            task=task,
            views=memberships(task, ctx, overlay, self.overdue_lookback_days),
        )
        if task.is_recurring:
            detail.next_occurrence = next_occurrence_on_or_after(task, ctx.today_start, ctx.tz)
            detail.recurrence_summary = describe_recurrence(task, ctx.tz)
        return detail

    def all_tags(self) -> list[str]:
        """Every tag used by any task, sorted."""
        return sorted({tag for t in self.tasks.fetch_all() for tag in t.tag_ids})

    # ============== Task mutations ==============

    def _require(self, task_id: str) -> Task:
        task = self.tasks.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    def _require_recurring(self, task_id: str) -> Task:
        task = self._require(task_id)
        if not task.is_recurring:
            raise ValidationError(f"Task {task_id} is not recurring")
        return task

    def _require_single(self, task_id: str) -> Task:
        task = self._require(task_id)
        if task.is_recurring:
            raise ValidationError(f"Task {task_id} is recurring; change its occurrences instead")
        return task

    def create_task(self, task: Task) -> Task:
        """Validate and store a new task. New tasks start incomplete."""
        task = replace(task, is_completed=False)
        validate_task(task)
        created = self.tasks.insert(task)
        logger.info(f"Created {created.task_type.value} task {created.id}: {created.title}")
        return created

    def update_task(self, task_id: str, **changes) -> Task:
        """
        Apply field changes to a task.

        Changing task_type clears the temporal fields of the old type.
        The result is validated before anything is written.
        """
        current = self._require(task_id)
        if "task_type" in changes:
            changes["task_type"] = TaskType(changes["task_type"])
        try:
            updated = replace(current, **changes)
        except TypeError as e:
            raise ValidationError(str(e)) from e
        if updated.task_type is not current.task_type:
            updated = clear_foreign_fields(updated)
        validate_task(updated)
        return self.tasks.save(updated)

    def delete_task(self, task_id: str) -> None:
        """Remove a task and every instance state it owns."""
        task = self._require(task_id)
        self.tasks.delete(task_id)
        if task.is_recurring:
            self.instances.delete_for_parent(task_id)
        logger.info(f"Deleted task {task_id}")

    def delete_all_completed(self) -> int:
        """Remove every completed task. Returns how many were deleted."""
        completed = [t for t in self.tasks.fetch_all() if t.is_completed]
        for task in completed:
            self.tasks.delete(task.id)
            self.instances.delete_for_parent(task.id)
        return len(completed)

    def set_complete(self, task_id: str, value: bool) -> Task:
        """Set completion of a non-recurring task. Completing clears both pins."""
        task = self._require_single(task_id)
        if value:
            task = replace(task, is_completed=True, pinned_today=False, pinned_tomorrow=False)
        else:
            task = replace(task, is_completed=False)
        return self.tasks.save(task)

    def set_pin_today(self, task_id: str, value: bool) -> Task:
        task = self._require_single(task_id)
        return self.tasks.save(replace(task, pinned_today=value))

    def set_pin_tomorrow(self, task_id: str, value: bool) -> Task:
        task = self._require_single(task_id)
        return self.tasks.save(replace(task, pinned_tomorrow=value))

    def toggle_complete(self, task_id: str) -> Task:
        return self.set_complete(task_id, not self._require_single(task_id).is_completed)

    def toggle_pin_today(self, task_id: str) -> Task:
        return self.set_pin_today(task_id, not self._require_single(task_id).pinned_today)

    def toggle_pin_tomorrow(self, task_id: str) -> Task:
        return self.set_pin_tomorrow(task_id, not self._require_single(task_id).pinned_tomorrow)

    # ============== Instance mutations ==============

    def set_instance_field(self, parent_task_id: str, instance_date: int, field_name: str, value: bool) -> InstanceState:
        """Set one boolean of an occurrence. Never touches the parent task."""
        self._require_recurring(parent_task_id)
        return self.instances.set_field(parent_task_id, instance_date, field_name, value)

    def _toggle_instance(self, parent_task_id: str, instance_date: int, field_name: str) -> InstanceState:
        self._require_recurring(parent_task_id)
        current = self.instances.get_state(parent_task_id, instance_date) or InstanceState()
        return self.instances.set_field(
            parent_task_id, instance_date, field_name, not getattr(current, field_name)
        )

    def toggle_instance_complete(self, parent_task_id: str, instance_date: int) -> InstanceState:
        return self._toggle_instance(parent_task_id, instance_date, "completed")

    def toggle_instance_pin_today(self, parent_task_id: str, instance_date: int) -> InstanceState:
        return self._toggle_instance(parent_task_id, instance_date, "pinned_today")

    def toggle_instance_pin_tomorrow(self, parent_task_id: str, instance_date: int) -> InstanceState:
        return self._toggle_instance(parent_task_id, instance_date, "pinned_tomorrow")

    def complete_all_future_occurrences(
        self,
        parent_task_id: str,
        ctx: TimeContext,
        effective_date: int | None = None,
    ) -> Task:
        """
        Freeze a series so nothing occurs on or after effective_date.

        Without an explicit date the cutoff is the next occurrence from today
        that is not already completed. Earlier instance states are kept.
        """
        task = self._require_recurring(parent_task_id)
        if effective_date is None:
            overlay = self.instances.states_for([task.id])
            effective_day = next_uncompleted_occurrence(task, ctx.today, ctx.tz, overlay)
            if effective_day is None:
                logger.info(f"Task {parent_task_id} has no open occurrences left")
                return task
        else:
            effective_day = ctx.local_date(effective_date)

        updated = complete_all_future(task, effective_day, ctx.tz)
        if updated is task:
            return task
        logger.info(f"Stopped series {parent_task_id} from {effective_day.isoformat()}")
        return self.tasks.save(updated)

    # ============== Entry routing ==============

    def toggle_entry_complete(self, entry: Entry) -> Task | InstanceState:
        match entry:
            case Virtual(parent=parent, instance_date=instance_date):
                return self.toggle_instance_complete(parent.id, instance_date)
            case Concrete(task=task):
                return self.toggle_complete(task.id)
        raise TypeError(f"Not a task entry: {entry!r}")

    def toggle_entry_pin_today(self, entry: Entry) -> Task | InstanceState:
        match entry:
            case Virtual(parent=parent, instance_date=instance_date):
                return self.toggle_instance_pin_today(parent.id, instance_date)
            case Concrete(task=task):
                return self.toggle_pin_today(task.id)
        raise TypeError(f"Not a task entry: {entry!r}")

    def toggle_entry_pin_tomorrow(self, entry: Entry) -> Task | InstanceState:
        match entry:
            case Virtual(parent=parent, instance_date=instance_date):
                return self.toggle_instance_pin_tomorrow(parent.id, instance_date)
            case Concrete(task=task):
                return self.toggle_pin_tomorrow(task.id)
        raise TypeError(f"Not a task entry: {entry!r}")

    def set_entry_field(self, entry: Entry, field_name: str, value: bool) -> Task | InstanceState:
        """Idempotent set of completed / pinned_today / pinned_tomorrow on any entry."""
        match entry:
            case Virtual(parent=parent, instance_date=instance_date):
                return self.set_instance_field(parent.id, instance_date, field_name, value)
            case Concrete(task=task):
                setter = {
                    "completed": self.set_complete,
                    "pinned_today": self.set_pin_today,
                    "pinned_tomorrow": self.set_pin_tomorrow,
                }[field_name]
                return setter(task.id, value)
        raise TypeError(f"Not a task entry: {entry!r}")

    def delete_entry(self, entry: Entry) -> None:
        """Delete the task behind an entry. For an occurrence this is the whole series."""
        self.delete_task(entry.tracking_id)
