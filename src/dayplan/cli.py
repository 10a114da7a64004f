"""dayplan CLI - time-aware task lists."""

import json
import logging
import sys
from datetime import date, datetime, time, tzinfo

import click

from .carryover import CarryoverDetector
from .config import load_config
from .core.carryover import CarryoverAction
from .core.recurrence import occurs_on
from .core.tasks import RecurrencePattern, Task, TaskType, ValidationError
from .core.timecontext import TimeContext, day_start, local_date
from .core.views import Concrete, Entry, View, Virtual
from .ports.task_repo import StorageError, TaskNotFoundError
from .workflows import current_context, get_detector, get_service, local_now

USER_ERRORS = (ValidationError, TaskNotFoundError, StorageError)

WEEKDAYS = {"sun": 0, "mon": 1, "tue": 2, "wed": 3, "thu": 4, "fri": 5, "sat": 6}

VIEW_TITLES = {
    View.TODAY: "Today",
    View.TOMORROW: "Tomorrow",
    View.THIS_WEEK: "This Week",
    View.NEXT_WEEK: "Next Week",
    View.OVERDUE: "Overdue",
    View.SOMEDAY: "Someday",
    View.BANK: "Bank",
}


def _fail(e: Exception) -> None:
    click.echo(f"Error: {e}", err=True)
    sys.exit(1)


def _parse_moment(value: str, tz: tzinfo) -> int:
    """YYYY-MM-DD or YYYY-MM-DDTHH:MM in local time -> epoch ms."""
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        raise click.BadParameter(f"Not a date/time: {value}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz)
    return int(parsed.timestamp() * 1000)


def _parse_day(value: str, tz: tzinfo) -> int:
    """YYYY-MM-DD -> local midnight in epoch ms."""
    try:
        return day_start(date.fromisoformat(value), tz)
    except ValueError:
        raise click.BadParameter(f"Not a date: {value}")


def _parse_weekdays(value: str) -> frozenset[int]:
    days = set()
    for part in value.split(","):
        part = part.strip().lower()[:3]
        if not part:
            continue
        if part not in WEEKDAYS:
            raise click.BadParameter(f"Unknown weekday: {part}")
        days.add(WEEKDAYS[part])
    return frozenset(days)


def _format_when(ms: int | None, tz: tzinfo) -> str:
    if ms is None:
        return ""
    moment = datetime.fromtimestamp(ms / 1000, tz)
    if moment.time() == time(0, 0):
        return moment.date().isoformat()
    return moment.strftime("%Y-%m-%d %H:%M")


def _entry_when(entry: Entry, tz: tzinfo) -> str:
    match entry:
        case Virtual(instance_date=instance_date):
            return f"on {_format_when(instance_date, tz)}"
        case Concrete(task=task):
            match task.task_type:
                case TaskType.DEADLINE:
                    return f"due {_format_when(task.deadline_at, tz)}"
                case TaskType.SCHEDULED_TIME:
                    return f"at {_format_when(task.scheduled_at, tz)}"
                case TaskType.DATE_RANGE:
                    return f"{_format_when(task.range_start_date, tz)} to {_format_when(task.range_end_date, tz)}"
                case TaskType.RECURRING:
                    return "repeats"
    return ""


def _entry_dict(entry: Entry, tz: tzinfo) -> dict:
    data = {
        "id": entry.id,
        "title": entry.title,
        "completed": entry.is_completed,
        "pinnedToday": entry.pinned_today,
        "pinnedTomorrow": entry.pinned_tomorrow,
        "tagIds": sorted(entry.tag_ids),
        "folderId": entry.folder_id,
    }
    match entry:
        case Virtual(parent=parent, instance_date=instance_date):
            data["isRecurringInstance"] = True
            data["parentTaskId"] = parent.id
            data["scheduledAt"] = instance_date
        case Concrete(task=task):
            data["isRecurringInstance"] = False
            data["taskType"] = task.task_type.value
    return data


def _show_entries(entries: list[Entry], tz: tzinfo, empty_msg: str) -> None:
    if not entries:
        click.echo(empty_msg)
        return
    for entry in entries:
        mark = "x" if entry.is_completed else " "
        pins = ""
        if entry.pinned_today:
            pins += " [pinned today]"
        if entry.pinned_tomorrow:
            pins += " [pinned tomorrow]"
        when = _entry_when(entry, tz)
        when = f" ({when})" if when else ""
        click.echo(f"[{mark}] {entry.title}{when}{pins}  {entry.id}")


def _split_entry_id(value: str) -> tuple[str, int | None]:
    """Accept either a task id or an occurrence id of the form <taskId>_<dayStartMs>."""
    task_id, sep, suffix = value.rpartition("_")
    if sep and task_id and suffix.isdigit():
        return task_id, int(suffix)
    return value, None


def _instance_date(task: Task, ctx: TimeContext, explicit: int | None, on: str | None) -> int:
    if on:
        instance_date = _parse_day(on, ctx.tz)
    elif explicit is not None:
        instance_date = explicit
    else:
        instance_date = ctx.today_start
    if not occurs_on(task, instance_date, ctx.tz):
        raise ValidationError(f"{task.title} does not occur on {_format_when(instance_date, ctx.tz)}")
    return instance_date


@click.group()
@click.version_option(package_name="dayplan")
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool):
    """dayplan - time-aware task lists."""
    if debug:
        logging.basicConfig(
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            level=logging.DEBUG,
        )


@main.command("list")
@click.argument("view", type=click.Choice([v.value for v in View]), default=View.DASHBOARD.value)
@click.option("--folder", "folder_id", help="Only tasks in this folder")
@click.option("--tag", "tags", multiple=True, help="Only tasks with any of these tags")
@click.option("--search", help="Text search in title and description")
@click.option("--not-in-folder", is_flag=True, help="Only tasks without a folder")
@click.option("--not-tagged", is_flag=True, help="Only tasks without tags")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def list_cmd(view, folder_id, tags, search, not_in_folder, not_tagged, as_json):
    """List tasks in a view (default: today + tomorrow)."""
    config = load_config()
    ctx = current_context(config)
    filters = {
        "folder_id": folder_id,
        "tag_ids": list(tags),
        "search": search,
        "not_in_folder": not_in_folder,
        "not_tagged": not_tagged,
    }
    try:
        service = get_service(config)
        if view == View.DASHBOARD.value:
            board = service.dashboard(ctx, **filters)
            sections = {View.TODAY: board.today, View.TOMORROW: board.tomorrow}
        else:
            sections = {View(view): service.list_tasks(view, ctx, **filters)}
    except USER_ERRORS as e:
        _fail(e)

    if as_json:
        click.echo(
            json.dumps(
                {v.value: [_entry_dict(e, ctx.tz) for e in entries] for v, entries in sections.items()},
                indent=2,
            )
        )
        return

    first = True
    for v, entries in sections.items():
        if not first:
            click.echo()
        first = False
        click.echo(f"### {VIEW_TITLES[v]}")
        _show_entries(entries, ctx.tz, "Nothing here.")


@main.command()
@click.argument("task_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def show(task_id: str, as_json: bool):
    """Show one task with its views and recurrence."""
    config = load_config()
    ctx = current_context(config)
    task_id, _ = _split_entry_id(task_id)
    try:
        detail = get_service(config).get_task(task_id, ctx)
    except USER_ERRORS as e:
        _fail(e)

    views = sorted(v.value for v in detail.views)
    if as_json:
        data = detail.task.to_dict()
        data["views"] = views
        data["nextOccurrence"] = detail.next_occurrence
        data["recurrenceSummary"] = detail.recurrence_summary
        click.echo(json.dumps(data, indent=2))
        return

    task = detail.task
    click.echo(f"{task.title}  ({task.id})")
    if task.description:
        click.echo(f"  {task.description}")
    click.echo(f"  type: {task.task_type.value}")
    when = _entry_when(Concrete(task), ctx.tz)
    if when and not task.is_recurring:
        click.echo(f"  when: {when}")
    if detail.recurrence_summary:
        click.echo(f"  repeats: {detail.recurrence_summary}")
    if task.is_recurring:
        nxt = _format_when(detail.next_occurrence, ctx.tz) or "none"
        click.echo(f"  next: {nxt}")
    click.echo(f"  views: {', '.join(views) or 'none'}")
    if task.tag_ids:
        click.echo(f"  tags: {', '.join(sorted(task.tag_ids))}")


def _recurrence_fields(tz, repeat, days, every, day_of_month, month, day, dates, start, until) -> dict:
    pattern = RecurrencePattern("specific_dates" if repeat == "dates" else repeat)
    fields = {
        "recurrence_pattern": pattern,
        "recurrence_start_date": _parse_day(start, tz) if start else None,
        "recurrence_end_date": _parse_day(until, tz) if until else None,
    }
    if days:
        fields["recurrence_days_of_week"] = _parse_weekdays(days)
    if pattern is RecurrencePattern.WEEKLY:
        fields["recurrence_week_interval"] = every
    if pattern is RecurrencePattern.MONTHLY:
        fields["recurrence_day_of_month"] = day_of_month or 1
    if pattern is RecurrencePattern.YEARLY:
        fields["recurrence_month"] = (month or 1) - 1
        fields["recurrence_day_of_year"] = day or 1
    if pattern is RecurrencePattern.SPECIFIC_DATES:
        fields["recurrence_specific_dates"] = tuple(
            sorted({_parse_day(d.strip(), tz) for d in (dates or "").split(",") if d.strip()})
        )
    return fields


@main.command()
@click.argument("title")
@click.option("--description", help="Longer description")
@click.option("--deadline", help="Due date/time (YYYY-MM-DD[THH:MM])")
@click.option("--at", "scheduled", help="Scheduled date/time (YYYY-MM-DD[THH:MM])")
@click.option("--range", "date_range", nargs=2, help="Start and end day (YYYY-MM-DD YYYY-MM-DD)")
@click.option(
    "--repeat",
    type=click.Choice(["daily", "weekly", "monthly", "yearly", "dates"]),
    help="Make the task recurring",
)
@click.option("--days", help="Weekdays for daily/weekly, e.g. mon,wed,fri")
@click.option("--every", type=int, default=1, show_default=True, help="Week interval for weekly")
@click.option("--day-of-month", type=int, help="Day of month for monthly (clamped in short months)")
@click.option("--month", type=click.IntRange(1, 12), help="Month for yearly (1-12)")
@click.option("--day", type=int, help="Day of month for yearly")
@click.option("--dates", help="Comma-separated days for --repeat dates")
@click.option("--start", help="First day of the recurrence (default: today)")
@click.option("--until", help="Last day of the recurrence")
@click.option("--tag", "tags", multiple=True, help="Tag (repeatable)")
@click.option("--folder", "folder_id", help="Folder id")
@click.option("--pin-today", is_flag=True, help="Pin to Today")
@click.option("--pin-tomorrow", is_flag=True, help="Pin to Tomorrow")
def add(title, description, deadline, scheduled, date_range, repeat, days, every, day_of_month,
        month, day, dates, start, until, tags, folder_id, pin_today, pin_tomorrow):
    """Create a task."""
    config = load_config()
    ctx = current_context(config)
    tz = ctx.tz

    fields: dict = {}
    task_type = TaskType.NONE
    if deadline:
        task_type = TaskType.DEADLINE
        fields["deadline_at"] = _parse_moment(deadline, tz)
    if scheduled:
        task_type = TaskType.SCHEDULED_TIME if task_type is TaskType.NONE else task_type
        fields["scheduled_at"] = _parse_moment(scheduled, tz)
    if date_range:
        task_type = TaskType.DATE_RANGE if task_type is TaskType.NONE else task_type
        fields["range_start_date"] = _parse_day(date_range[0], tz)
        fields["range_end_date"] = _parse_day(date_range[1], tz)
    if repeat:
        task_type = TaskType.RECURRING if task_type is TaskType.NONE else task_type
        fields.update(
            _recurrence_fields(tz, repeat, days, every, day_of_month, month, day, dates,
                               start or ctx.today.isoformat(), until)
        )

    task = Task(
        id="",
        title=title,
        description=description,
        task_type=task_type,
        tag_ids=frozenset(tags),
        folder_id=folder_id,
        pinned_today=pin_today,
        pinned_tomorrow=pin_tomorrow,
        **fields,
    )
    try:
        created = get_service(config).create_task(task)
    except USER_ERRORS as e:
        _fail(e)
    click.echo(f"Created {created.id}: {created.title}")


@main.command()
@click.argument("task_id")
@click.option("--title", help="New title")
@click.option("--description", help="New description")
@click.option("--deadline", help="Turn into a deadline task (YYYY-MM-DD[THH:MM])")
@click.option("--at", "scheduled", help="Turn into a scheduled task (YYYY-MM-DD[THH:MM])")
@click.option("--range", "date_range", nargs=2, help="Turn into a date range task")
@click.option("--someday", is_flag=True, help="Remove all dates")
@click.option("--until", help="New last day of the recurrence")
@click.option("--tag", "tags", multiple=True, help="Replace tags (repeatable)")
@click.option("--folder", "folder_id", help="Move to folder")
def edit(task_id, title, description, deadline, scheduled, date_range, someday, until, tags, folder_id):
    """Change a task."""
    config = load_config()
    tz = config.tz()
    task_id, _ = _split_entry_id(task_id)

    changes: dict = {}
    if title is not None:
        changes["title"] = title
    if description is not None:
        changes["description"] = description
    if deadline:
        changes.update(task_type=TaskType.DEADLINE, deadline_at=_parse_moment(deadline, tz))
    if scheduled:
        changes.update(task_type=TaskType.SCHEDULED_TIME, scheduled_at=_parse_moment(scheduled, tz))
    if date_range:
        changes.update(
            task_type=TaskType.DATE_RANGE,
            range_start_date=_parse_day(date_range[0], tz),
            range_end_date=_parse_day(date_range[1], tz),
        )
    if someday:
        changes["task_type"] = TaskType.NONE
    if until:
        changes["recurrence_end_date"] = _parse_day(until, tz)
    if tags:
        changes["tag_ids"] = frozenset(tags)
    if folder_id is not None:
        changes["folder_id"] = folder_id or None

    if not changes:
        click.echo("Nothing to change.")
        return
    try:
        updated = get_service(config).update_task(task_id, **changes)
    except USER_ERRORS as e:
        _fail(e)
    click.echo(f"Updated {updated.id}: {updated.title}")


@main.command()
@click.argument("entry_id")
@click.option("--on", "on_day", help="Occurrence day for recurring tasks (default: today)")
def done(entry_id: str, on_day: str | None):
    """Toggle completion of a task or one occurrence."""
    config = load_config()
    ctx = current_context(config)
    task_id, explicit = _split_entry_id(entry_id)
    try:
        service = get_service(config)
        task = service.get_task(task_id, ctx).task
        if task.is_recurring:
            instance_date = _instance_date(task, ctx, explicit, on_day)
            state = service.toggle_instance_complete(task_id, instance_date)
            status = "done" if state.completed else "not done"
            click.echo(f"{task.title} on {_format_when(instance_date, ctx.tz)}: {status}")
        else:
            task = service.toggle_complete(task_id)
            click.echo(f"{task.title}: {'done' if task.is_completed else 'not done'}")
    except USER_ERRORS as e:
        _fail(e)


@main.command()
@click.argument("entry_id")
@click.option("--today", "target", flag_value="today", help="Toggle pin to Today (default)")
@click.option("--tomorrow", "target", flag_value="tomorrow", help="Toggle pin to Tomorrow")
@click.option("--on", "on_day", help="Occurrence day for recurring tasks (default: today)")
def pin(entry_id: str, target: str | None, on_day: str | None):
    """Toggle a pin to Today or Tomorrow."""
    target = target or "today"
    config = load_config()
    ctx = current_context(config)
    task_id, explicit = _split_entry_id(entry_id)
    try:
        service = get_service(config)
        task = service.get_task(task_id, ctx).task
        if task.is_recurring:
            instance_date = _instance_date(task, ctx, explicit, on_day)
            if target == "today":
                state = service.toggle_instance_pin_today(task_id, instance_date)
                pinned = state.pinned_today
            else:
                state = service.toggle_instance_pin_tomorrow(task_id, instance_date)
                pinned = state.pinned_tomorrow
        else:
            if target == "today":
                pinned = service.toggle_pin_today(task_id).pinned_today
            else:
                pinned = service.toggle_pin_tomorrow(task_id).pinned_tomorrow
    except USER_ERRORS as e:
        _fail(e)
    click.echo(f"{task.title}: {'pinned to' if pinned else 'unpinned from'} {target}")


@main.command()
@click.argument("task_id")
@click.option("--from", "from_day", help="First day with no more occurrences (default: next open one)")
def stop(task_id: str, from_day: str | None):
    """Complete all future occurrences of a recurring task."""
    config = load_config()
    ctx = current_context(config)
    task_id, _ = _split_entry_id(task_id)
    effective = _parse_day(from_day, ctx.tz) if from_day else None
    try:
        task = get_service(config).complete_all_future_occurrences(task_id, ctx, effective)
    except USER_ERRORS as e:
        _fail(e)
    if task.task_type is not TaskType.RECURRING:
        click.echo(f"{task.title}: completed")
    elif task.recurrence_end_date is not None:
        click.echo(f"{task.title}: ends {local_date(task.recurrence_end_date, ctx.tz).isoformat()}")
    else:
        click.echo(f"{task.title}: nothing left to stop")


@main.command()
@click.argument("task_id")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
def rm(task_id: str, yes: bool):
    """Delete a task (a recurring task is deleted with all its occurrences)."""
    config = load_config()
    task_id, _ = _split_entry_id(task_id)
    if not yes:
        click.confirm(f"Delete task {task_id}?", abort=True)
    try:
        get_service(config).delete_task(task_id)
    except USER_ERRORS as e:
        _fail(e)
    click.echo(f"Deleted {task_id}")


@main.command("clear-completed")
def clear_completed():
    """Delete every completed task."""
    config = load_config()
    try:
        count = get_service(config).delete_all_completed()
    except USER_ERRORS as e:
        _fail(e)
    click.echo(f"Deleted {count} completed task(s).")


@main.command()
def tags():
    """List every tag in use."""
    config = load_config()
    try:
        all_tags = get_service(config).all_tags()
    except USER_ERRORS as e:
        _fail(e)
    if not all_tags:
        click.echo("No tags.")
        return
    for tag in all_tags:
        click.echo(tag)


def _resolve_interactively(detector: CarryoverDetector, tz: tzinfo) -> None:
    choices = [a.value for a in CarryoverAction]
    for entry in list(detector.items):
        _show_entries([entry], tz, "")
        action = click.prompt(
            "  What now?",
            type=click.Choice(choices),
            default=CarryoverAction.DEFER.value,
        )
        try:
            result = detector.resolve(entry.id, action)
        except USER_ERRORS as e:
            click.echo(f"  Error: {e}", err=True)
            continue
        if result.action is CarryoverAction.RESCHEDULE:
            click.echo(f"  Reschedule with: dayplan edit {entry.tracking_id}")


@main.command()
@click.option("--defer", "mode", flag_value="defer", help="Deal with everything later")
@click.option("--all-done", "mode", flag_value="done", help="Mark everything done")
def carryover(mode: str | None):
    """Check for unfinished items from yesterday's Today list."""
    config = load_config()
    now = local_now(config)
    try:
        detector = get_detector(config)
        items = detector.start_session(now)
    except USER_ERRORS as e:
        _fail(e)

    if not items:
        click.echo("Nothing carried over.")
        return

    click.echo(f"You didn't finish {len(items)} item(s) yesterday:")
    if not mode:
        _resolve_interactively(detector, now.tzinfo)
        return

    if mode == "defer":
        results = detector.defer_all()
    else:
        results = detector.resolve_all(CarryoverAction.COMPLETE)
    for result in results:
        status = "ok" if result.ok else f"failed: {result.error}"
        click.echo(f"  {result.entry.title}: {result.action.value} ({status})")
