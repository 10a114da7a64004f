"""Day-boundary detection and carryover selection - pure, no I/O."""

from collections.abc import Iterable
from datetime import date, tzinfo
from enum import Enum

from .timecontext import TimeContext, parse_day_key, yesterday_context
from .views import Entry


class CarryoverPhase(Enum):
    """Where a carryover session stands."""

    IDLE = "idle"
    DAY_BOUNDARY_DETECTED = "day_boundary_detected"
    CARRYOVER_COMPUTED = "carryover_computed"
    PRESENTED = "presented"


class CarryoverAction(str, Enum):
    """Ways to deal with a carried-over item."""

    COMPLETE = "complete"
    PIN_TODAY = "pin_today"
    PIN_TOMORROW = "pin_tomorrow"
    RESCHEDULE = "reschedule"
    DELETE = "delete"
    DEFER = "defer"


def detect_boundary(last_opened_day: str | None, today: date, tz: tzinfo) -> TimeContext | None:
    """
    Compare the last-opened marker with today.

    Returns yesterday's synthetic context when a day boundary was crossed,
    None otherwise. A missing or unreadable marker counts as a first run.
    """
    last = parse_day_key(last_opened_day)
    if last is None or last == today:
        return None
    return yesterday_context(today, tz)


def select_carryover(entries: Iterable[Entry], dealt_with: Iterable[str]) -> list[Entry]:
    """Unfinished entries whose tracking id has not been dealt with today."""
    dealt = set(dealt_with)
    return [e for e in entries if not e.is_completed and e.tracking_id not in dealt]
