"""Carryover session - yesterday's unfinished Today items, offered once per day."""

import json
import logging
from dataclasses import dataclass
from datetime import datetime

from .core.carryover import CarryoverAction, CarryoverPhase, detect_boundary, select_carryover
from .core.tasks import ValidationError
from .core.timecontext import day_key
from .core.views import Entry, View
from .ports.local_state import LocalStateStore
from .ports.task_repo import StorageError, TaskNotFoundError
from .service import TaskService

logger = logging.getLogger(__name__)

# Failures that leave one item unresolved without ending the session
MUTATION_ERRORS = (StorageError, TaskNotFoundError, ValidationError)

LAST_OPENED_KEY = "lastOpenedDate"
DEALT_WITH_PREFIX = "dealtWith:"


def dealt_with_key(day: str) -> str:
    return f"{DEALT_WITH_PREFIX}{day}"


def load_dealt_with(store: LocalStateStore, day: str) -> set[str]:
    """Tracking ids already handled on a day. Corrupt data reads as empty."""
    raw = store.get(dealt_with_key(day))
    if not raw:
        return set()
    try:
        ids = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning(f"Discarding unreadable dealt-with set for {day}")
        return set()
    if not isinstance(ids, list):
        return set()
    return {str(i) for i in ids}


def mark_dealt_with(store: LocalStateStore, day: str, tracking_id: str) -> None:
    """Add a tracking id to the day's dealt-with set."""
    ids = load_dealt_with(store, day)
    if tracking_id in ids:
        return
    ids.add(tracking_id)
    store.set(dealt_with_key(day), json.dumps(sorted(ids)))


@dataclass
class Resolution:
    """Outcome of resolving one carried-over item."""

    entry: Entry
    action: CarryoverAction
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class CarryoverDetector:
    """
    Day-boundary carryover state machine.

    IDLE -> DAY_BOUNDARY_DETECTED -> CARRYOVER_COMPUTED -> PRESENTED, then
    back to IDLE once every item is resolved or the batch is deferred.
    """

    def __init__(self, store: LocalStateStore, service: TaskService):
        self.store = store
        self.service = service
        self.phase = CarryoverPhase.IDLE
        self.items: list[Entry] = []
        self.today_key = ""

    def start_session(self, now: datetime) -> list[Entry]:
        """
        Run once per session start.

        Returns the items to present (empty when there is nothing to carry
        over). The last-opened marker is updated to today either way.
        """
        tz = now.tzinfo
        if tz is None:
            raise ValueError("now must be timezone-aware")
        today = now.date()
        self.today_key = day_key(today)
        self.items = []

        last_opened = self.store.get(LAST_OPENED_KEY)
        yesterday = detect_boundary(last_opened, today, tz)
        self.store.set(LAST_OPENED_KEY, self.today_key)

        if yesterday is None:
            self.phase = CarryoverPhase.IDLE
            return []

        self.phase = CarryoverPhase.DAY_BOUNDARY_DETECTED
        logger.info(f"Day boundary crossed ({last_opened} -> {self.today_key})")

        entries = self.service.list_tasks(View.TODAY, yesterday)
        self.items = select_carryover(entries, load_dealt_with(self.store, self.today_key))
        self.phase = CarryoverPhase.CARRYOVER_COMPUTED

        if not self.items:
            self.phase = CarryoverPhase.IDLE
            return []

        self.phase = CarryoverPhase.PRESENTED
        logger.info(f"Presenting {len(self.items)} carryover item(s)")
        return list(self.items)

    def _find(self, entry_id: str) -> Entry:
        for entry in self.items:
            if entry.id == entry_id:
                return entry
        raise KeyError(f"Not a presented carryover item: {entry_id}")

    def _apply(self, entry: Entry, action: CarryoverAction) -> None:
        match action:
            case CarryoverAction.COMPLETE:
                self.service.set_entry_field(entry, "completed", True)
            case CarryoverAction.PIN_TODAY:
                self.service.set_entry_field(entry, "pinned_today", True)
            case CarryoverAction.PIN_TOMORROW:
                self.service.set_entry_field(entry, "pinned_tomorrow", True)
            case CarryoverAction.DELETE:
                self.service.delete_entry(entry)
            case CarryoverAction.RESCHEDULE | CarryoverAction.DEFER:
                pass

    def resolve(self, entry_id: str, action: CarryoverAction | str) -> Resolution:
        """
        Deal with one presented item.

        The mutation runs first; a failure is logged and re-raised
        and the item stays presented. Reschedule marks the item immediately
        and leaves editing to the caller (edit entry.tracking_id).
        """
        if self.phase is not CarryoverPhase.PRESENTED:
            raise RuntimeError(f"No carryover items presented (phase={self.phase.value})")
        action = CarryoverAction(action)
        entry = self._find(entry_id)

        if action is CarryoverAction.RESCHEDULE:
            mark_dealt_with(self.store, self.today_key, entry.tracking_id)

        try:
            self._apply(entry, action)
        except MUTATION_ERRORS as e:
            logger.error(f"Carryover {action.value} failed for {entry.id}: {e}")
            raise

        mark_dealt_with(self.store, self.today_key, entry.tracking_id)
        self.items = [e for e in self.items if e.id != entry.id]
        if not self.items:
            self.phase = CarryoverPhase.IDLE
        return Resolution(entry=entry, action=action)

    def resolve_all(self, action: CarryoverAction | str = CarryoverAction.COMPLETE) -> list[Resolution]:
        """
        Apply one action to every presented item, one at a time.

        Failures are reported per item and nothing is rolled back. Items
        that failed stay presented.
        """
        results = []
        for entry in list(self.items):
            try:
                results.append(self.resolve(entry.id, action))
            except MUTATION_ERRORS as e:
                results.append(Resolution(entry=entry, action=CarryoverAction(action), error=e))
        return results

    def defer_all(self) -> list[Resolution]:
        """Deal with everything later: mark all items handled without changing tasks."""
        return self.resolve_all(CarryoverAction.DEFER)
