"""Tests for day-boundary carryover."""

import json
from datetime import date, datetime
from unittest.mock import MagicMock

import pytest

from dayplan.carryover import (
    LAST_OPENED_KEY,
    CarryoverDetector,
    dealt_with_key,
    load_dealt_with,
    mark_dealt_with,
)
from dayplan.core.carryover import CarryoverAction, CarryoverPhase, detect_boundary, select_carryover
from dayplan.core.tasks import TaskType
from dayplan.core.views import Concrete, View
from dayplan.ports.task_repo import StorageError, TaskNotFoundError

from .fakes import UTC, MemoryLocalState, at, recurring, task

JAN_1 = date(2024, 1, 1)
JAN_2 = date(2024, 1, 2)
MORNING_JAN_2 = datetime(2024, 1, 2, 8, 0, tzinfo=UTC)


def due(day, title, **kwargs):
    return task(id="", title=title, task_type=TaskType.DEADLINE, deadline_at=at(day, 12), **kwargs)


@pytest.fixture
def local():
    return MemoryLocalState({LAST_OPENED_KEY: "2024-01-01"})


@pytest.fixture
def detector(local, service):
    return CarryoverDetector(local, service)


class TestDetectBoundary:
    def test_same_day(self):
        assert detect_boundary("2024-01-02", JAN_2, UTC) is None

    def test_first_run(self):
        assert detect_boundary(None, JAN_2, UTC) is None

    def test_garbled_marker_is_first_run(self):
        assert detect_boundary("not a date", JAN_2, UTC) is None

    def test_next_day_gives_yesterday_context(self):
        ctx = detect_boundary("2024-01-01", JAN_2, UTC)
        assert ctx.today == JAN_1
        assert ctx.tomorrow == JAN_2

    def test_gap_of_several_days_still_uses_yesterday(self):
        ctx = detect_boundary("2023-12-20", JAN_2, UTC)
        assert ctx.today == JAN_1


class TestSelectCarryover:
    def test_drops_completed_and_dealt_with(self):
        entries = [
            Concrete(task(id="a")),
            Concrete(task(id="b", is_completed=True)),
            Concrete(task(id="c")),
        ]
        assert [e.id for e in select_carryover(entries, {"c"})] == ["a"]


class TestDealtWithSet:
    def test_round_trip(self):
        store = MemoryLocalState()
        mark_dealt_with(store, "2024-01-02", "x")
        mark_dealt_with(store, "2024-01-02", "y")
        mark_dealt_with(store, "2024-01-02", "x")
        assert json.loads(store.data[dealt_with_key("2024-01-02")]) == ["x", "y"]

    def test_corrupt_value_reads_empty(self):
        store = MemoryLocalState({dealt_with_key("2024-01-02"): "{oops"})
        assert load_dealt_with(store, "2024-01-02") == set()

    def test_non_list_reads_empty(self):
        store = MemoryLocalState({dealt_with_key("2024-01-02"): '{"x": 1}'})
        assert load_dealt_with(store, "2024-01-02") == set()


class TestStartSession:
    def test_yesterdays_unfinished_task_is_offered(self, detector, service):
        x = service.create_task(due(JAN_1, "X"))
        items = detector.start_session(MORNING_JAN_2)

        assert [e.id for e in items] == [x.id]
        assert detector.phase is CarryoverPhase.PRESENTED

    def test_completed_yesterday_is_not_offered(self, detector, service):
        x = service.create_task(due(JAN_1, "X"))
        service.toggle_complete(x.id)
        assert detector.start_session(MORNING_JAN_2) == []
        assert detector.phase is CarryoverPhase.IDLE

    def test_last_opened_always_updated(self, local, detector):
        detector.start_session(MORNING_JAN_2)
        assert local.data[LAST_OPENED_KEY] == "2024-01-02"

    def test_first_run_offers_nothing(self, service):
        service.create_task(due(JAN_1, "X"))
        local = MemoryLocalState()
        detector = CarryoverDetector(local, service)
        assert detector.start_session(MORNING_JAN_2) == []
        assert local.data[LAST_OPENED_KEY] == "2024-01-02"

    def test_same_day_reopen_offers_nothing(self, service):
        service.create_task(due(JAN_1, "X"))
        detector = CarryoverDetector(MemoryLocalState({LAST_OPENED_KEY: "2024-01-02"}), service)
        assert detector.start_session(MORNING_JAN_2) == []

    def test_task_due_today_is_not_offered(self, detector, service):
        # Yesterday's tomorrow is today; only yesterday's Today view counts
        service.create_task(due(JAN_2, "Later"))
        assert detector.start_session(MORNING_JAN_2) == []

    def test_recurring_instance_tracked_by_parent(self, detector, service):
        parent = service.create_task(recurring(id=""))
        (item,) = detector.start_session(MORNING_JAN_2)
        assert item.tracking_id == parent.id
        assert item.instance_date == at(JAN_1)

    def test_naive_now_rejected(self, detector):
        with pytest.raises(ValueError):
            detector.start_session(datetime(2024, 1, 2, 8, 0))


class TestResolve:
    def test_complete_marks_and_is_not_offered_again(self, local, detector, service):
        x = service.create_task(due(JAN_1, "X"))
        (item,) = detector.start_session(MORNING_JAN_2)

        detector.resolve(item.id, CarryoverAction.COMPLETE)

        assert service.tasks.get(x.id).is_completed is True
        assert json.loads(local.data["dealtWith:2024-01-02"]) == [x.id]
        assert detector.phase is CarryoverPhase.IDLE

        # Same-day rerun, even after the marker is rolled back
        local.data[LAST_OPENED_KEY] = "2024-01-01"
        service.set_complete(x.id, False)
        assert detector.start_session(MORNING_JAN_2) == []

    def test_complete_clears_pins(self, detector, service):
        x = service.create_task(due(JAN_1, "X", pinned_today=True))
        (item,) = detector.start_session(MORNING_JAN_2)
        detector.resolve(item.id, "complete")
        stored = service.tasks.get(x.id)
        assert stored.is_completed is True
        assert stored.pinned_today is False

    def test_pin_today_on_instance(self, detector, service):
        parent = service.create_task(recurring(id=""))
        (item,) = detector.start_session(MORNING_JAN_2)

        detector.resolve(item.id, CarryoverAction.PIN_TODAY)

        assert service.instances.get_state(parent.id, at(JAN_1)).pinned_today is True
        assert service.tasks.get(parent.id).pinned_today is False

    def test_pin_tomorrow(self, detector, service):
        x = service.create_task(due(JAN_1, "X"))
        (item,) = detector.start_session(MORNING_JAN_2)
        detector.resolve(item.id, CarryoverAction.PIN_TOMORROW)
        assert service.tasks.get(x.id).pinned_tomorrow is True

    def test_delete(self, detector, service):
        x = service.create_task(due(JAN_1, "X"))
        (item,) = detector.start_session(MORNING_JAN_2)
        detector.resolve(item.id, CarryoverAction.DELETE)
        assert service.tasks.get(x.id) is None

    def test_reschedule_marks_without_changing_task(self, local, detector, service):
        x = service.create_task(due(JAN_1, "X"))
        (item,) = detector.start_session(MORNING_JAN_2)

        result = detector.resolve(item.id, CarryoverAction.RESCHEDULE)

        assert result.ok
        assert service.tasks.get(x.id).deadline_at == at(JAN_1, 12)
        assert load_dealt_with(local, "2024-01-02") == {x.id}

    def test_unknown_item(self, detector, service):
        service.create_task(due(JAN_1, "X"))
        detector.start_session(MORNING_JAN_2)
        with pytest.raises(KeyError):
            detector.resolve("nope", CarryoverAction.COMPLETE)

    def test_not_presented(self, detector):
        with pytest.raises(RuntimeError):
            detector.resolve("x", CarryoverAction.COMPLETE)

    def test_storage_failure_keeps_item_unmarked(self, local):
        entry = Concrete(task(id="x", task_type=TaskType.DEADLINE, deadline_at=at(JAN_1, 12)))
        service = MagicMock()
        service.list_tasks.return_value = [entry]
        service.set_entry_field.side_effect = StorageError("backend down")
        detector = CarryoverDetector(local, service)
        detector.start_session(MORNING_JAN_2)

        with pytest.raises(StorageError):
            detector.resolve("x", CarryoverAction.COMPLETE)

        assert load_dealt_with(local, "2024-01-02") == set()
        assert detector.items == [entry]
        assert detector.phase is CarryoverPhase.PRESENTED
        service.list_tasks.assert_called_once()
        assert service.list_tasks.call_args[0][0] is View.TODAY
        assert service.list_tasks.call_args[0][1].today == JAN_1


class TestBatch:
    def test_resolve_all_reports_per_item(self, local):
        ok = Concrete(task(id="ok"))
        bad = Concrete(task(id="bad"))
        service = MagicMock()
        service.list_tasks.return_value = [ok, bad]

        def fail_on_bad(entry, field, value):
            if entry.id == "bad":
                raise StorageError("nope")

        service.set_entry_field.side_effect = fail_on_bad
        detector = CarryoverDetector(local, service)
        detector.start_session(MORNING_JAN_2)

        results = detector.resolve_all()

        assert [(r.entry.id, r.ok) for r in results] == [("ok", True), ("bad", False)]
        assert load_dealt_with(local, "2024-01-02") == {"ok"}
        assert [e.id for e in detector.items] == ["bad"]

    def test_resolve_all_continues_past_deleted_task(self, local, detector, service):
        gone = service.create_task(due(JAN_1, "Gone"))
        kept = service.create_task(due(JAN_1, "Kept"))
        detector.start_session(MORNING_JAN_2)
        service.delete_task(gone.id)

        results = detector.resolve_all()

        by_id = {r.entry.id: r for r in results}
        assert by_id[gone.id].ok is False
        assert isinstance(by_id[gone.id].error, TaskNotFoundError)
        assert by_id[kept.id].ok is True
        assert service.tasks.get(kept.id).is_completed is True
        assert [e.id for e in detector.items] == [gone.id]
        assert load_dealt_with(local, "2024-01-02") == {kept.id}

    def test_defer_all_changes_nothing(self, local, detector, service):
        a = service.create_task(due(JAN_1, "A"))
        b = service.create_task(due(JAN_1, "B"))
        detector.start_session(MORNING_JAN_2)

        results = detector.defer_all()

        assert all(r.ok for r in results)
        assert load_dealt_with(local, "2024-01-02") == {a.id, b.id}
        assert service.tasks.get(a.id).is_completed is False
        assert detector.phase is CarryoverPhase.IDLE
