"""Time context - the caller-supplied snapshot of "now". Pure, no clock reads."""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone, tzinfo

DAY_MS = 24 * 60 * 60 * 1000


def local_date(ms: int, tz: tzinfo) -> date:
    """Calendar day an epoch-ms value falls on in the given timezone."""
    return datetime.fromtimestamp(ms / 1000, tz).date()


def day_start(day: date, tz: tzinfo) -> int:
    """Epoch ms of local midnight on a calendar day."""
    return int(datetime.combine(day, time(0, 0), tzinfo=tz).timestamp() * 1000)


def sunday_on_or_before(day: date) -> date:
    """Start of the (Sunday-first) week containing a day."""
    # date.weekday(): Monday=0 ... Sunday=6
    return day - timedelta(days=(day.weekday() + 1) % 7)


def day_of_week(day: date) -> int:
    """Weekday number with Sunday=0 ... Saturday=6."""
    return (day.weekday() + 1) % 7


def day_key(day: date) -> str:
    """yyyy-mm-dd key for a calendar day."""
    return day.isoformat()


def parse_day_key(value: str | None) -> date | None:
    """Parse a yyyy-mm-dd key. Returns None for missing or garbled values."""
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


@dataclass(frozen=True)
class TimeContext:
    """Five epoch-ms markers for today, tomorrow and the current/next week."""

    now: int
    today_start: int
    tomorrow_start: int
    week_start: int
    next_week_start: int
    tz: tzinfo = field(default=timezone.utc, compare=False)

    @property
    def today(self) -> date:
        return local_date(self.today_start, self.tz)

    @property
    def tomorrow(self) -> date:
        return local_date(self.tomorrow_start, self.tz)

    @property
    def week_start_day(self) -> date:
        return local_date(self.week_start, self.tz)

    @property
    def next_week_start_day(self) -> date:
        return local_date(self.next_week_start, self.tz)

    def local_date(self, ms: int) -> date:
        return local_date(ms, self.tz)

    def day_start(self, day: date) -> int:
        return day_start(day, self.tz)


def context_for_day(day: date, tz: tzinfo, now: int | None = None) -> TimeContext:
    """
    Build a context anchored on a calendar day.

    Markers come from calendar arithmetic, so DST transitions never shift
    tomorrow or the week boundaries off local midnight.
    """
    week = sunday_on_or_before(day)
    today_ms = day_start(day, tz)
    return TimeContext(
        now=today_ms if now is None else now,
        today_start=today_ms,
        tomorrow_start=day_start(day + timedelta(days=1), tz),
        week_start=day_start(week, tz),
        next_week_start=day_start(week + timedelta(days=7), tz),
        tz=tz,
    )


def build_time_context(now: datetime) -> TimeContext:
    """Build the context for a timezone-aware wall-clock reading."""
    if now.tzinfo is None:
        raise ValueError("now must be timezone-aware")
    return context_for_day(now.date(), now.tzinfo, now=int(now.timestamp() * 1000))


def yesterday_context(today: date, tz: tzinfo) -> TimeContext:
    """
    Synthetic context for yesterday, used to recompute yesterday's Today view.

    tomorrow_start lands on today's midnight and the week markers follow
    yesterday, so a Sunday rollover still looks at the previous week.
    """
    return context_for_day(today - timedelta(days=1), tz)
