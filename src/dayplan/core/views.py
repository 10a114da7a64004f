"""View classifier - places tasks into time-relative views. Pure, no I/O."""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum

from .overlay import InstanceKey, resolve_state
from .recurrence import occurs_on_date
from .tasks import InstanceState, Task, TaskType, is_well_formed
from .timecontext import TimeContext


class View(str, Enum):
    """Named, time-relative task buckets."""

    DASHBOARD = "dashboard"
    TODAY = "today"
    TOMORROW = "tomorrow"
    THIS_WEEK = "this_week"
    NEXT_WEEK = "next_week"
    OVERDUE = "overdue"
    SOMEDAY = "someday"
    BANK = "bank"


DATED_VIEWS = (View.TODAY, View.TOMORROW, View.THIS_WEEK, View.NEXT_WEEK, View.OVERDUE)


@dataclass(frozen=True)
class Concrete:
    """A stored, non-virtual task."""

    task: Task

    @property
    def id(self) -> str:
        return self.task.id

    @property
    def tracking_id(self) -> str:
        return self.task.id

    @property
    def is_completed(self) -> bool:
        return self.task.is_completed

    @property
    def pinned_today(self) -> bool:
        return self.task.pinned_today

    @property
    def pinned_tomorrow(self) -> bool:
        return self.task.pinned_tomorrow

    @property
    def scheduled_at(self) -> int | None:
        return self.task.scheduled_at

    @property
    def title(self) -> str:
        return self.task.title

    @property
    def description(self) -> str | None:
        return self.task.description

    @property
    def folder_id(self) -> str | None:
        return self.task.folder_id

    @property
    def tag_ids(self) -> frozenset[str]:
        return self.task.tag_ids

    @property
    def updated_at(self) -> int:
        return self.task.updated_at


@dataclass(frozen=True)
class Virtual:
    """One occurrence of a recurring task, projected onto a calendar day."""

    parent: Task
    instance_date: int
    state: InstanceState = field(default_factory=InstanceState)

    @property
    def id(self) -> str:
        return f"{self.parent.id}_{self.instance_date}"

    @property
    def tracking_id(self) -> str:
        return self.parent.id

    @property
    def parent_task_id(self) -> str:
        return self.parent.id

    @property
    def is_completed(self) -> bool:
        return self.state.completed

    @property
    def pinned_today(self) -> bool:
        return self.state.pinned_today

    @property
    def pinned_tomorrow(self) -> bool:
        return self.state.pinned_tomorrow

    @property
    def scheduled_at(self) -> int:
        return self.instance_date

    @property
    def title(self) -> str:
        return self.parent.title

    @property
    def description(self) -> str | None:
        return self.parent.description

    @property
    def folder_id(self) -> str | None:
        return self.parent.folder_id

    @property
    def tag_ids(self) -> frozenset[str]:
        return self.parent.tag_ids

    @property
    def updated_at(self) -> int:
        return self.parent.updated_at


Entry = Concrete | Virtual


@dataclass
class Dashboard:
    """Today and Tomorrow, kept as two separate lists."""

    today: list[Entry]
    tomorrow: list[Entry]


def _span(entry: Entry, ctx: TimeContext) -> tuple[date, date] | None:
    """First and last calendar day an entry is attached to, or None if undated."""
    match entry:
        case Virtual(instance_date=instance_date):
            day = ctx.local_date(instance_date)
            return day, day
        case Concrete(task=task):
            match task.task_type:
                case TaskType.DEADLINE:
                    day = ctx.local_date(task.deadline_at)
                    return day, day
                case TaskType.SCHEDULED_TIME:
                    day = ctx.local_date(task.scheduled_at)
                    return day, day
                case TaskType.DATE_RANGE:
                    return ctx.local_date(task.range_start_date), ctx.local_date(task.range_end_date)
    return None


def _in_today(entry: Entry, span: tuple[date, date] | None, ctx: TimeContext) -> bool:
    if entry.pinned_today:
        return True
    if entry.is_completed or span is None:
        return False
    start, end = span
    return start <= ctx.today <= end


def _in_tomorrow(entry: Entry, span: tuple[date, date] | None, ctx: TimeContext) -> bool:
    if entry.pinned_tomorrow:
        return True
    if entry.is_completed or span is None:
        return False
    # Surfaces one day early: today falls within [start-1, end-1]
    start, end = span
    one = timedelta(days=1)
    return start - one <= ctx.today <= end - one


def _in_overdue(entry: Entry, span: tuple[date, date] | None, ctx: TimeContext) -> bool:
    if entry.is_completed or entry.pinned_today or span is None:
        return False
    return span[1] < ctx.today


def _in_week(span: tuple[date, date] | None, week_start: date) -> bool:
    if span is None:
        return False
    start, end = span
    return start <= week_start + timedelta(days=6) and end >= week_start


def entry_in_view(entry: Entry, view: View, ctx: TimeContext) -> bool:
    """Membership test for a single well-formed entry."""
    span = _span(entry, ctx)
    match view:
        case View.TODAY:
            return _in_today(entry, span, ctx)
        case View.TOMORROW:
            return _in_tomorrow(entry, span, ctx)
        case View.OVERDUE:
            return _in_overdue(entry, span, ctx)
        case View.THIS_WEEK:
            return (
                _in_week(span, ctx.week_start_day)
                or _in_today(entry, span, ctx)
                or _in_tomorrow(entry, span, ctx)
            )
        case View.NEXT_WEEK:
            return _in_week(span, ctx.next_week_start_day)
        case View.SOMEDAY:
            return isinstance(entry, Concrete) and entry.task.task_type is TaskType.NONE
        case View.BANK:
            return True
        case View.DASHBOARD:
            return _in_today(entry, span, ctx) or _in_tomorrow(entry, span, ctx)
    return False


def _window(view: View, ctx: TimeContext, overdue_lookback_days: int) -> list[date]:
    """Calendar days whose occurrences can belong to a view."""
    today = ctx.today
    match view:
        case View.TODAY:
            first, count = today, 1
        case View.TOMORROW:
            first, count = today + timedelta(days=1), 1
        case View.OVERDUE:
            first, count = today - timedelta(days=overdue_lookback_days), overdue_lookback_days
        case View.THIS_WEEK:
            first, count = ctx.week_start_day, 7
        case View.NEXT_WEEK:
            first, count = ctx.next_week_start_day, 7
        case View.DASHBOARD:
            first, count = today, 2
        case _:
            return []
    days = [first + timedelta(days=i) for i in range(count)]
    if view is View.THIS_WEEK:
        # On Saturdays tomorrow falls in next week
        days += [d for d in (today, today + timedelta(days=1)) if d not in days]
    return days


def _pinned_days(
    task: Task,
    view: View,
    overlay: Mapping[InstanceKey, InstanceState],
    ctx: TimeContext,
) -> set[date]:
    """Days with a stored pin override relevant to the view."""
    want_today = view in (View.TODAY, View.THIS_WEEK, View.DASHBOARD)
    want_tomorrow = view in (View.TOMORROW, View.THIS_WEEK, View.DASHBOARD)
    days = set()
    for (parent_id, instance_date), state in overlay.items():
        if parent_id != task.id:
            continue
        if (want_today and state.pinned_today) or (want_tomorrow and state.pinned_tomorrow):
            days.add(ctx.local_date(instance_date))
    return days


def expand_recurring(
    task: Task,
    view: View,
    ctx: TimeContext,
    overlay: Mapping[InstanceKey, InstanceState] | None = None,
    overdue_lookback_days: int = 1,
) -> list[Virtual]:
    """Virtual instances of a recurring task that belong to a view."""
    overlay = overlay or {}
    days = set(_window(view, ctx, overdue_lookback_days))
    days |= _pinned_days(task, view, overlay, ctx)

    instances = []
    for day in sorted(days):
        if not occurs_on_date(task, day, ctx.tz):
            continue
        instance_date = ctx.day_start(day)
        entry = Virtual(
            parent=task,
            instance_date=instance_date,
            state=resolve_state(overlay, task.id, instance_date),
        )
        if entry_in_view(entry, view, ctx):
            instances.append(entry)
    return instances


def classify(
    tasks: Iterable[Task],
    view: View,
    ctx: TimeContext,
    overlay: Mapping[InstanceKey, InstanceState] | None = None,
    overdue_lookback_days: int = 1,
) -> list[Entry]:
    """
    Place tasks into a view as of a time context.

    Recurring tasks expand to zero or one virtual instance per relevant day,
    with stored instance state overlaid. Malformed tasks only show in bank.
    Result order carries no meaning; see sort_entries.

    Pure function - no I/O.
    """
    view = View(view)
    entries: list[Entry] = []
    seen: set[str] = set()

    for task in tasks:
        if view is View.BANK:
            entries.append(Concrete(task))
            continue
        if not is_well_formed(task):
            continue

        if task.is_recurring:
            candidates: list[Entry] = list(
                expand_recurring(task, view, ctx, overlay, overdue_lookback_days)
            )
        else:
            concrete = Concrete(task)
            candidates = [concrete] if entry_in_view(concrete, view, ctx) else []

        for entry in candidates:
            if entry.id not in seen:
                seen.add(entry.id)
                entries.append(entry)

    return entries


def classify_dashboard(
    tasks: Iterable[Task],
    ctx: TimeContext,
    overlay: Mapping[InstanceKey, InstanceState] | None = None,
) -> Dashboard:
    """Today and Tomorrow views side by side."""
    tasks = list(tasks)
    return Dashboard(
        today=classify(tasks, View.TODAY, ctx, overlay),
        tomorrow=classify(tasks, View.TOMORROW, ctx, overlay),
    )


def memberships(
    task: Task,
    ctx: TimeContext,
    overlay: Mapping[InstanceKey, InstanceState] | None = None,
    overdue_lookback_days: int = 1,
) -> set[View]:
    """Every view (other than dashboard) a task currently shows up in."""
    return {
        view
        for view in View
        if view is not View.DASHBOARD
        and classify([task], view, ctx, overlay, overdue_lookback_days)
    }


def filter_entries(
    entries: Iterable[Entry],
    folder_id: str | None = None,
    tag_ids: Iterable[str] | None = None,
    search: str | None = None,
    not_in_folder: bool = False,
    not_tagged: bool = False,
) -> list[Entry]:
    """Folder, tag and text filters applied after classification."""
    result = list(entries)
    if folder_id:
        result = [e for e in result if e.folder_id == folder_id]
    if not_in_folder:
        result = [e for e in result if not e.folder_id]
    wanted_tags = set(tag_ids or ())
    if wanted_tags:
        result = [e for e in result if wanted_tags & e.tag_ids]
    if not_tagged:
        result = [e for e in result if not e.tag_ids]
    if search and search.strip():
        needle = search.strip().lower()
        result = [
            e
            for e in result
            if needle in e.title.lower() or (e.description and needle in e.description.lower())
        ]
    return result


def _entry_date(entry: Entry) -> int | None:
    match entry:
        case Virtual(instance_date=instance_date):
            return instance_date
        case Concrete(task=task):
            return task.earliest_date()
    return None


def sort_entries(entries: Iterable[Entry], view: View) -> list[Entry]:
    """
    Presentation order: incomplete first.

    Bank sorts dated entries first by date, then undated by most recent
    update; every other view sorts by most recent update.
    """

    def sort_key(e: Entry) -> tuple:
        if view is View.BANK:
            when = _entry_date(e)
            if when is not None:
                return (e.is_completed, 0, when, 0)
            return (e.is_completed, 1, 0, -e.updated_at)
        return (e.is_completed, -e.updated_at)

    return sorted(entries, key=sort_key)
