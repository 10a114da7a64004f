"""Recurrence engine - decides which calendar days a recurring task occurs on."""

import calendar
from datetime import date, timedelta, tzinfo

from .tasks import RecurrencePattern, Task, is_well_formed
from .timecontext import day_of_week, day_start, local_date, sunday_on_or_before

WEEKDAY_LABELS = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")
MONTH_LABELS = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)


def _clamped_day(year: int, month: int, wanted: int) -> int:
    """Day of month, pulled back to the last valid day of shorter months."""
    return min(wanted, calendar.monthrange(year, month)[1])


def _in_range(task: Task, day: date, tz: tzinfo) -> bool:
    if day < local_date(task.recurrence_start_date, tz):
        return False
    if task.recurrence_end_date is not None and day > local_date(task.recurrence_end_date, tz):
        return False
    return True


def occurs_on_date(task: Task, day: date, tz: tzinfo) -> bool:
    """
    Check whether a recurring task has an occurrence on a calendar day.

    Non-recurring and malformed tasks never occur.
    """
    if not task.is_recurring or not is_well_formed(task):
        return False
    if not _in_range(task, day, tz):
        return False

    days_of_week = task.recurrence_days_of_week or frozenset()

    match task.recurrence_pattern:
        case RecurrencePattern.DAILY:
            # Optional weekday filter (e.g. weekdays only)
            return not days_of_week or day_of_week(day) in days_of_week
        case RecurrencePattern.WEEKLY:
            if day_of_week(day) not in days_of_week:
                return False
            interval = max(task.recurrence_week_interval or 1, 1)
            start_week = sunday_on_or_before(local_date(task.recurrence_start_date, tz))
            weeks = (sunday_on_or_before(day) - start_week).days // 7
            return weeks % interval == 0
        case RecurrencePattern.MONTHLY:
            wanted = task.recurrence_day_of_month or 1
            return day.day == _clamped_day(day.year, day.month, wanted)
        case RecurrencePattern.YEARLY:
            month = (task.recurrence_month or 0) + 1
            if day.month != month:
                return False
            wanted = task.recurrence_day_of_year or 1
            return day.day == _clamped_day(day.year, month, wanted)
        case RecurrencePattern.SPECIFIC_DATES:
            return day in {local_date(ms, tz) for ms in task.recurrence_specific_dates or ()}
    return False


def occurs_on(task: Task, day_start_ms: int, tz: tzinfo) -> bool:
    """Epoch-ms flavour of occurs_on_date; day_start_ms is a local midnight."""
    return occurs_on_date(task, local_date(day_start_ms, tz), tz)


def _scan_horizon(task: Task) -> int:
    """How many days to scan before concluding there is no next occurrence."""
    match task.recurrence_pattern:
        case RecurrencePattern.DAILY:
            return 7
        case RecurrencePattern.WEEKLY:
            return 7 * max(task.recurrence_week_interval or 1, 1) + 7
        case RecurrencePattern.MONTHLY:
            return 62
        case RecurrencePattern.YEARLY:
            return 367
    return 0


def next_occurrence_on_or_after(task: Task, day_start_ms: int, tz: tzinfo) -> int | None:
    """First occurrence day-start on or after a day, or None when the series is exhausted."""
    if not task.is_recurring or not is_well_formed(task):
        return None

    first = max(local_date(day_start_ms, tz), local_date(task.recurrence_start_date, tz))

    if task.recurrence_pattern is RecurrencePattern.SPECIFIC_DATES:
        candidates = sorted(
            d for d in {local_date(ms, tz) for ms in task.recurrence_specific_dates or ()}
            if d >= first and _in_range(task, d, tz)
        )
        return day_start(candidates[0], tz) if candidates else None

    last = first + timedelta(days=_scan_horizon(task))
    if task.recurrence_end_date is not None:
        last = min(last, local_date(task.recurrence_end_date, tz))

    for day in occurrences_between(task, first, last, tz):
        return day_start(day, tz)
    return None


def occurrences_between(task: Task, first_day: date, last_day: date, tz: tzinfo) -> list[date]:
    """Occurrence days in [first_day, last_day], inclusive, in order."""
    found = []
    day = first_day
    while day <= last_day:
        if occurs_on_date(task, day, tz):
            found.append(day)
        day += timedelta(days=1)
    return found


def describe_recurrence(task: Task, tz: tzinfo) -> str:
    """Human-readable summary of a recurrence rule, e.g. "Every 2 weeks on Mon, Wed"."""
    if not task.is_recurring or task.recurrence_pattern is None:
        return ""

    days = ", ".join(WEEKDAY_LABELS[d] for d in sorted(task.recurrence_days_of_week or ()))

    match task.recurrence_pattern:
        case RecurrencePattern.DAILY:
            summary = f"Daily on {days}" if days else "Daily"
        case RecurrencePattern.WEEKLY:
            interval = task.recurrence_week_interval or 1
            every = "Weekly" if interval == 1 else f"Every {interval} weeks"
            summary = f"{every} on {days}" if days else every
        case RecurrencePattern.MONTHLY:
            summary = f"Monthly on day {task.recurrence_day_of_month or 1}"
        case RecurrencePattern.YEARLY:
            month = MONTH_LABELS[task.recurrence_month or 0]
            summary = f"Yearly on {month} {task.recurrence_day_of_year or 1}"
        case RecurrencePattern.SPECIFIC_DATES:
            dates = sorted(local_date(ms, tz) for ms in task.recurrence_specific_dates or ())
            summary = "On " + ", ".join(d.isoformat() for d in dates)
        case _:
            summary = ""

    if task.recurrence_start_date is not None:
        summary += f", from {local_date(task.recurrence_start_date, tz).isoformat()}"
    if task.recurrence_end_date is not None:
        summary += f" until {local_date(task.recurrence_end_date, tz).isoformat()}"
    return summary
