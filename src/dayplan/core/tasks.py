"""Pure task domain logic - no I/O dependencies."""

from dataclasses import dataclass, field, fields, replace
from enum import Enum


class TaskType(str, Enum):
    """Scheduling shape of a task."""

    NONE = "none"
    DEADLINE = "deadline"
    DATE_RANGE = "date_range"
    SCHEDULED_TIME = "scheduled_time"
    RECURRING = "recurring"


class RecurrencePattern(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"
    SPECIFIC_DATES = "specific_dates"


class ValidationError(ValueError):
    """Raised when a task definition is rejected at mutation time."""

    pass


# Field groups owned by each task type
DEADLINE_FIELDS = ("deadline_at",)
RANGE_FIELDS = ("range_start_date", "range_end_date")
SCHEDULED_FIELDS = ("scheduled_at",)
RECURRENCE_FIELDS = (
    "recurrence_pattern",
    "recurrence_days_of_week",
    "recurrence_week_interval",
    "recurrence_day_of_month",
    "recurrence_month",
    "recurrence_day_of_year",
    "recurrence_specific_dates",
    "recurrence_start_date",
    "recurrence_end_date",
)

TYPE_FIELDS: dict[TaskType, tuple[str, ...]] = {
    TaskType.NONE: (),
    TaskType.DEADLINE: DEADLINE_FIELDS,
    TaskType.DATE_RANGE: RANGE_FIELDS,
    TaskType.SCHEDULED_TIME: SCHEDULED_FIELDS,
    TaskType.RECURRING: RECURRENCE_FIELDS,
}

# Python attribute name -> wire (camelCase) name
_WIRE_NAMES = {
    "task_type": "taskType",
    "deadline_at": "deadlineAt",
    "range_start_date": "rangeStartDate",
    "range_end_date": "rangeEndDate",
    "scheduled_at": "scheduledAt",
    "recurrence_pattern": "recurrencePattern",
    "recurrence_days_of_week": "recurrenceDaysOfWeek",
    "recurrence_week_interval": "recurrenceWeekInterval",
    "recurrence_day_of_month": "recurrenceDayOfMonth",
    "recurrence_month": "recurrenceMonth",
    "recurrence_day_of_year": "recurrenceDayOfYear",
    "recurrence_specific_dates": "recurrenceSpecificDates",
    "recurrence_start_date": "recurrenceStartDate",
    "recurrence_end_date": "recurrenceEndDate",
    "is_completed": "isCompleted",
    "pinned_today": "pinnedToday",
    "pinned_tomorrow": "pinnedTomorrow",
    "tag_ids": "tagIds",
    "folder_id": "folderId",
    "created_at": "createdAt",
    "updated_at": "updatedAt",
}


@dataclass
class Task:
    """A stored task definition. Recurring tasks are one row for all occurrences."""

    id: str
    title: str
    task_type: TaskType = TaskType.NONE
    description: str | None = None
    deadline_at: int | None = None
    range_start_date: int | None = None
    range_end_date: int | None = None
    scheduled_at: int | None = None
    recurrence_pattern: RecurrencePattern | None = None
    recurrence_days_of_week: frozenset[int] | None = None
    recurrence_week_interval: int | None = None
    recurrence_day_of_month: int | None = None
    recurrence_month: int | None = None
    recurrence_day_of_year: int | None = None
    recurrence_specific_dates: tuple[int, ...] | None = None
    recurrence_start_date: int | None = None
    recurrence_end_date: int | None = None
    is_completed: bool = False
    pinned_today: bool = False
    pinned_tomorrow: bool = False
    tag_ids: frozenset[str] = field(default_factory=frozenset)
    folder_id: str | None = None
    created_at: int = 0
    updated_at: int = 0

    @property
    def is_recurring(self) -> bool:
        return self.task_type is TaskType.RECURRING

    def earliest_date(self) -> int | None:
        """First date attached to the task, used for bank ordering."""
        for value in (
            self.deadline_at,
            self.scheduled_at,
            self.range_start_date,
            self.recurrence_start_date,
        ):
            if value is not None:
                return value
        return None

    @classmethod
    def from_dict(cls, data: dict) -> "Task":
        """Create Task from a wire/storage record (camelCase keys)."""
        kwargs = {}
        for f in fields(cls):
            wire = _WIRE_NAMES.get(f.name, f.name)
            if wire in data:
                kwargs[f.name] = data[wire]
            elif f.name in data:
                kwargs[f.name] = data[f.name]
        if "id" not in kwargs and "_id" in data:
            kwargs["id"] = data["_id"]

        kwargs["task_type"] = TaskType(kwargs.get("task_type") or "none")
        if kwargs.get("recurrence_pattern"):
            kwargs["recurrence_pattern"] = RecurrencePattern(kwargs["recurrence_pattern"])
        else:
            kwargs["recurrence_pattern"] = None
        if kwargs.get("recurrence_days_of_week") is not None:
            kwargs["recurrence_days_of_week"] = frozenset(kwargs["recurrence_days_of_week"])
        if kwargs.get("recurrence_specific_dates") is not None:
            kwargs["recurrence_specific_dates"] = tuple(sorted(set(kwargs["recurrence_specific_dates"])))
        kwargs["tag_ids"] = frozenset(kwargs.get("tag_ids") or ())
        for flag in ("is_completed", "pinned_today", "pinned_tomorrow"):
            kwargs[flag] = bool(kwargs.get(flag, False))
        return cls(**kwargs)

    def to_dict(self) -> dict:
        """Serialize to a wire/storage record. Unset optional fields are omitted."""
        data: dict = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            if isinstance(value, Enum):
                value = value.value
            elif isinstance(value, frozenset):
                value = sorted(value)
            elif isinstance(value, tuple):
                value = list(value)
            data[_WIRE_NAMES.get(f.name, f.name)] = value
        return data


@dataclass(frozen=True)
class InstanceState:
    """Per-occurrence overlay for a recurring task. Absent rows read as all-false."""

    completed: bool = False
    pinned_today: bool = False
    pinned_tomorrow: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> "InstanceState":
        return cls(
            completed=bool(data.get("completed", False)),
            pinned_today=bool(data.get("pinnedToday", False)),
            pinned_tomorrow=bool(data.get("pinnedTomorrow", False)),
        )

    def to_dict(self) -> dict:
        return {
            "completed": self.completed,
            "pinnedToday": self.pinned_today,
            "pinnedTomorrow": self.pinned_tomorrow,
        }


def is_well_formed(task: Task) -> bool:
    """
    Lenient consistency check used during classification.

    Only looks for the fields a task type cannot work without; never raises.
    """
    match task.task_type:
        case TaskType.NONE:
            return True
        case TaskType.DEADLINE:
            return task.deadline_at is not None
        case TaskType.SCHEDULED_TIME:
            return task.scheduled_at is not None
        case TaskType.DATE_RANGE:
            return (
                task.range_start_date is not None
                and task.range_end_date is not None
                and task.range_end_date >= task.range_start_date
            )
        case TaskType.RECURRING:
            if task.recurrence_pattern is None or task.recurrence_start_date is None:
                return False
            if task.recurrence_end_date is not None and task.recurrence_end_date < task.recurrence_start_date:
                return False
            return True
    return False


def clear_foreign_fields(task: Task) -> Task:
    """Drop temporal fields that belong to a different task type."""
    own = set(TYPE_FIELDS[task.task_type])
    cleared = {
        name: None
        for group in TYPE_FIELDS.values()
        for name in group
        if name not in own
    }
    return replace(task, **cleared)


def validate_task(task: Task) -> None:
    """
    Reject malformed definitions before they are persisted.

    Raises ValidationError naming the offending field.
    """
    if not task.title or not task.title.strip():
        raise ValidationError("title must not be empty")

    own = set(TYPE_FIELDS[task.task_type])
    for group in TYPE_FIELDS.values():
        for name in group:
            if name not in own and getattr(task, name) is not None:
                raise ValidationError(f"{name} is not allowed for taskType={task.task_type.value}")

    match task.task_type:
        case TaskType.DEADLINE:
            if task.deadline_at is None:
                raise ValidationError("deadline task requires deadline_at")
        case TaskType.SCHEDULED_TIME:
            if task.scheduled_at is None:
                raise ValidationError("scheduled_time task requires scheduled_at")
        case TaskType.DATE_RANGE:
            if task.range_start_date is None or task.range_end_date is None:
                raise ValidationError("date_range task requires range_start_date and range_end_date")
            if task.range_end_date < task.range_start_date:
                raise ValidationError("range_end_date must not be before range_start_date")
        case TaskType.RECURRING:
            _validate_recurrence(task)


def _validate_recurrence(task: Task) -> None:
    if task.recurrence_pattern is None:
        raise ValidationError("recurring task requires recurrence_pattern")
    if task.recurrence_start_date is None:
        raise ValidationError("recurring task requires recurrence_start_date")
    if task.recurrence_end_date is not None and task.recurrence_end_date < task.recurrence_start_date:
        raise ValidationError("recurrence_end_date must not be before recurrence_start_date")

    days = task.recurrence_days_of_week or frozenset()
    if any(not 0 <= d <= 6 for d in days):
        raise ValidationError(f"recurrence_days_of_week must be within 0..6, got {sorted(days)}")
    if task.recurrence_week_interval is not None and task.recurrence_week_interval < 1:
        raise ValidationError("recurrence_week_interval must be at least 1")
    if task.recurrence_day_of_month is not None and not 1 <= task.recurrence_day_of_month <= 31:
        raise ValidationError("recurrence_day_of_month must be within 1..31")
    if task.recurrence_month is not None and not 0 <= task.recurrence_month <= 11:
        raise ValidationError("recurrence_month must be within 0..11")
    if task.recurrence_day_of_year is not None and not 1 <= task.recurrence_day_of_year <= 31:
        raise ValidationError("recurrence_day_of_year must be within 1..31")

    match task.recurrence_pattern:
        case RecurrencePattern.WEEKLY:
            if not days:
                raise ValidationError("weekly recurrence requires at least one day of week")
        case RecurrencePattern.SPECIFIC_DATES:
            if not task.recurrence_specific_dates:
                raise ValidationError("specific_dates recurrence requires at least one date")
