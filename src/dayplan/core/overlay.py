"""Per-occurrence state overlay for recurring tasks - pure, no I/O."""

from collections.abc import Mapping
from dataclasses import replace
from datetime import date, timedelta, tzinfo

from .recurrence import occurrences_between
from .tasks import InstanceState, Task, TaskType, clear_foreign_fields
from .timecontext import day_start, local_date

InstanceKey = tuple[str, int]

INSTANCE_FIELDS = ("completed", "pinned_today", "pinned_tomorrow")

# Upper bound on how far ahead to look for the next open occurrence
LOOKAHEAD_DAYS = 400


def resolve_state(
    overlay: Mapping[InstanceKey, InstanceState] | None,
    parent_task_id: str,
    instance_date: int,
) -> InstanceState:
    """Stored state for an occurrence, or all-false when nothing was stored."""
    if not overlay:
        return InstanceState()
    return overlay.get((parent_task_id, instance_date), InstanceState())


def with_field(state: InstanceState, field_name: str, value: bool) -> InstanceState:
    """Copy of a state with exactly one boolean set."""
    if field_name not in INSTANCE_FIELDS:
        raise ValueError(f"Unknown instance field: {field_name}")
    return replace(state, **{field_name: value})


def complete_all_future(task: Task, effective_day: date, tz: tzinfo) -> Task:
    """
    Stop a series from producing occurrences on or after effective_day.

    The end date moves to the day before effective_day (never later than an
    existing end). If nothing of the series would remain, the task becomes a
    completed task with no schedule. Stored instance states are not touched.
    """
    start = local_date(task.recurrence_start_date, tz)
    if effective_day <= start:
        return clear_foreign_fields(replace(task, task_type=TaskType.NONE, is_completed=True))

    new_end = day_start(effective_day - timedelta(days=1), tz)
    if task.recurrence_end_date is not None and task.recurrence_end_date < new_end:
        return task
    return replace(task, recurrence_end_date=new_end)


def next_uncompleted_occurrence(
    task: Task,
    from_day: date,
    tz: tzinfo,
    overlay: Mapping[InstanceKey, InstanceState] | None = None,
) -> date | None:
    """First occurrence on or after from_day that is not marked completed."""
    last = from_day + timedelta(days=LOOKAHEAD_DAYS)
    if task.recurrence_end_date is not None:
        last = min(last, local_date(task.recurrence_end_date, tz))
    for day in occurrences_between(task, from_day, last, tz):
        if not resolve_state(overlay, task.id, day_start(day, tz)).completed:
            return day
    return None
