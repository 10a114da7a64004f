"""Functional core - pure business logic with no I/O."""

from .tasks import (
    InstanceState,
    RecurrencePattern,
    Task,
    TaskType,
    ValidationError,
    is_well_formed,
    validate_task,
)
from .timecontext import TimeContext, build_time_context, context_for_day, yesterday_context
from .recurrence import next_occurrence_on_or_after, occurrences_between, occurs_on, occurs_on_date
from .overlay import InstanceKey, complete_all_future, resolve_state
from .views import Concrete, Dashboard, Entry, View, Virtual, classify, classify_dashboard
from .carryover import CarryoverAction, CarryoverPhase, detect_boundary, select_carryover

__all__ = [
    # Tasks
    "Task",
    "TaskType",
    "RecurrencePattern",
    "InstanceState",
    "ValidationError",
    "is_well_formed",
    "validate_task",
    # Time
    "TimeContext",
    "build_time_context",
    "context_for_day",
    "yesterday_context",
    # Recurrence
    "occurs_on",
    "occurs_on_date",
    "next_occurrence_on_or_after",
    "occurrences_between",
    # Overlay
    "InstanceKey",
    "resolve_state",
    "complete_all_future",
    # Views
    "View",
    "Entry",
    "Concrete",
    "Virtual",
    "Dashboard",
    "classify",
    "classify_dashboard",
    # Carryover
    "CarryoverAction",
    "CarryoverPhase",
    "detect_boundary",
    "select_carryover",
]
