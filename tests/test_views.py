"""Tests for the view classifier."""

from datetime import date, timedelta

import pytest

from dayplan.core.recurrence import occurs_on_date
from dayplan.core.tasks import InstanceState, RecurrencePattern, TaskType
from dayplan.core.timecontext import DAY_MS, context_for_day
from dayplan.core.views import (
    Concrete,
    View,
    Virtual,
    classify,
    classify_dashboard,
    filter_entries,
    memberships,
    sort_entries,
)

from .fakes import UTC, at, recurring, task


def ids(entries):
    return sorted(e.id for e in entries)


def deadline(day, hour=12, **kwargs):
    return task(task_type=TaskType.DEADLINE, deadline_at=at(day, hour), **kwargs)


class TestDeadlines:
    def test_due_later_today_is_in_today(self, ctx):
        t = task(task_type=TaskType.DEADLINE, deadline_at=ctx.today_start + 20 * 3600 * 1000)
        assert ids(classify([t], View.TODAY, ctx)) == ["t1"]
        assert classify([t], View.OVERDUE, ctx) == []

    def test_due_yesterday_is_overdue_not_today(self, ctx):
        t = task(task_type=TaskType.DEADLINE, deadline_at=ctx.today_start - DAY_MS)
        assert ids(classify([t], View.OVERDUE, ctx)) == ["t1"]
        assert classify([t], View.TODAY, ctx) == []

    def test_due_tomorrow_surfaces_in_tomorrow(self, ctx, today):
        t = deadline(today + timedelta(days=1))
        assert ids(classify([t], View.TOMORROW, ctx)) == ["t1"]
        assert classify([t], View.TODAY, ctx) == []

    def test_due_today_is_not_in_tomorrow(self, ctx, today):
        assert classify([deadline(today)], View.TOMORROW, ctx) == []

    def test_completed_hidden_from_today_and_overdue(self, ctx, today):
        done_today = deadline(today, id="a", is_completed=True)
        done_late = deadline(today - timedelta(days=3), id="b", is_completed=True)
        assert classify([done_today, done_late], View.TODAY, ctx) == []
        assert classify([done_today, done_late], View.OVERDUE, ctx) == []

    def test_scheduled_time_uses_local_day(self, ctx, today):
        t = task(task_type=TaskType.SCHEDULED_TIME, scheduled_at=at(today, 23, 59))
        assert ids(classify([t], View.TODAY, ctx)) == ["t1"]


class TestPins:
    def test_pinned_today_beats_completed(self, ctx):
        t = task(is_completed=True, pinned_today=True)
        assert ids(classify([t], View.TODAY, ctx)) == ["t1"]

    def test_pinned_tomorrow_without_dates(self, ctx):
        t = task(pinned_tomorrow=True)
        assert ids(classify([t], View.TOMORROW, ctx)) == ["t1"]
        assert classify([t], View.TODAY, ctx) == []

    def test_pinned_today_keeps_overdue_task_out_of_overdue(self, ctx, today):
        t = deadline(today - timedelta(days=2), pinned_today=True)
        assert ids(classify([t], View.TODAY, ctx)) == ["t1"]
        assert classify([t], View.OVERDUE, ctx) == []


class TestDateRanges:
    def range_task(self, first, last, **kwargs):
        return task(
            task_type=TaskType.DATE_RANGE,
            range_start_date=at(first),
            range_end_date=at(last),
            **kwargs,
        )

    def test_today_inside_range(self, ctx, today):
        t = self.range_task(today - timedelta(days=2), today + timedelta(days=2))
        assert ids(classify([t], View.TODAY, ctx)) == ["t1"]
        assert ids(classify([t], View.TOMORROW, ctx)) == ["t1"]

    def test_range_ending_today_not_in_tomorrow(self, ctx, today):
        t = self.range_task(today - timedelta(days=2), today)
        assert classify([t], View.TOMORROW, ctx) == []

    def test_range_ended_yesterday_is_overdue(self, ctx, today):
        t = self.range_task(today - timedelta(days=5), today - timedelta(days=1))
        assert ids(classify([t], View.OVERDUE, ctx)) == ["t1"]

    def test_range_overlapping_week_boundary(self, ctx):
        # Sat 2024-01-13 .. Mon 2024-01-15 touches both weeks
        t = self.range_task(date(2024, 1, 13), date(2024, 1, 15))
        assert ids(classify([t], View.THIS_WEEK, ctx)) == ["t1"]
        assert ids(classify([t], View.NEXT_WEEK, ctx)) == ["t1"]


class TestWeeks:
    def test_sunday_to_saturday(self, ctx):
        sunday = deadline(date(2024, 1, 7), id="sun")
        saturday = deadline(date(2024, 1, 13), id="sat")
        next_sunday = deadline(date(2024, 1, 14), id="next")
        tasks = [sunday, saturday, next_sunday]

        assert ids(classify(tasks, View.THIS_WEEK, ctx)) == ["sat", "sun"]
        assert ids(classify(tasks, View.NEXT_WEEK, ctx)) == ["next"]

    def test_completed_tasks_still_listed(self, ctx):
        t = deadline(date(2024, 1, 12), is_completed=True)
        assert ids(classify([t], View.THIS_WEEK, ctx)) == ["t1"]

    def test_this_week_includes_pinned_undated_task(self, ctx):
        t = task(pinned_today=True)
        assert ids(classify([t], View.THIS_WEEK, ctx)) == ["t1"]

    def test_saturday_week_includes_tomorrow(self):
        saturday = context_for_day(date(2024, 1, 13), UTC)
        daily = recurring()
        sunday_task = task(id="d", task_type=TaskType.SCHEDULED_TIME, scheduled_at=at(date(2024, 1, 14), 9))
        sunday_instance = f"r1_{at(date(2024, 1, 14))}"

        tomorrow = ids(classify([daily, sunday_task], View.TOMORROW, saturday))
        week = ids(classify([daily, sunday_task], View.THIS_WEEK, saturday))

        assert tomorrow == ["d", sunday_instance]
        assert "d" in week
        assert sunday_instance in week


class TestSomedayAndBank:
    def test_someday_holds_undated_tasks(self, ctx, today):
        undated = task(id="u")
        done = task(id="d", is_completed=True)
        dated = deadline(today, id="x")
        assert ids(classify([undated, done, dated], View.SOMEDAY, ctx)) == ["d", "u"]

    def test_bank_holds_everything(self, ctx, today):
        tasks = [task(id="u"), deadline(today, id="x"), recurring(id="r")]
        assert ids(classify(tasks, View.BANK, ctx)) == ["r", "u", "x"]
        assert all(isinstance(e, Concrete) for e in classify(tasks, View.BANK, ctx))

    def test_malformed_only_in_bank(self, ctx):
        broken = task(task_type=TaskType.DEADLINE, pinned_today=True)
        for view in View:
            found = classify([broken], view, ctx)
            assert (found != []) is (view is View.BANK), view

    def test_view_accepts_plain_string(self, ctx):
        assert ids(classify([task()], "someday", ctx)) == ["t1"]


class TestRecurringExpansion:
    def test_daily_yields_one_instance_per_day(self, ctx):
        t = recurring()
        today_entries = classify([t], View.TODAY, ctx)
        assert [e.id for e in today_entries] == [f"r1_{ctx.today_start}"]
        week = classify([t], View.THIS_WEEK, ctx)
        assert len(week) == 7
        assert all(isinstance(e, Virtual) for e in week)

    def test_instance_carries_parent_identity(self, ctx):
        (entry,) = classify([recurring(title="Stretch")], View.TODAY, ctx)
        assert entry.parent_task_id == "r1"
        assert entry.tracking_id == "r1"
        assert entry.title == "Stretch"
        assert entry.scheduled_at == ctx.today_start

    def test_recurring_never_listed_in_someday(self, ctx):
        assert classify([recurring()], View.SOMEDAY, ctx) == []

    def test_weekly_only_on_matching_days(self, ctx):
        t = recurring(
            pattern=RecurrencePattern.WEEKLY,
            recurrence_days_of_week=frozenset({1, 5}),
        )
        week = classify([t], View.THIS_WEEK, ctx)
        assert [ctx.local_date(e.instance_date) for e in week] == [date(2024, 1, 8), date(2024, 1, 12)]
        # Wednesday is not a match
        assert classify([t], View.TODAY, ctx) == []

    def test_every_instance_is_a_real_occurrence(self, ctx):
        t = recurring(pattern=RecurrencePattern.MONTHLY, recurrence_day_of_month=12)
        for view in (View.TODAY, View.TOMORROW, View.THIS_WEEK, View.NEXT_WEEK, View.OVERDUE):
            for entry in classify([t], view, ctx, overdue_lookback_days=30):
                assert occurs_on_date(t, ctx.local_date(entry.instance_date), UTC)

    def test_completed_instance_hidden_from_today(self, ctx):
        t = recurring()
        overlay = {("r1", ctx.today_start): InstanceState(completed=True)}
        assert classify([t], View.TODAY, ctx, overlay) == []
        # Other days unaffected
        assert len(classify([t], View.TOMORROW, ctx, overlay)) == 1

    def test_overlay_does_not_touch_parent(self, ctx):
        t = recurring()
        overlay = {("r1", ctx.today_start): InstanceState(completed=True)}
        classify([t], View.THIS_WEEK, ctx, overlay)
        assert t.is_completed is False

    def test_pinned_past_instance_stays_in_today(self, ctx, today):
        t = recurring()
        past = at(today - timedelta(days=5))
        overlay = {("r1", past): InstanceState(pinned_today=True)}
        found = [e.instance_date for e in classify([t], View.TODAY, ctx, overlay)]
        assert sorted(found) == [past, ctx.today_start]

    def test_overdue_lookback(self, ctx):
        t = recurring()
        assert len(classify([t], View.OVERDUE, ctx)) == 1
        assert len(classify([t], View.OVERDUE, ctx, overdue_lookback_days=3)) == 3

    def test_overdue_excludes_completed_instances(self, ctx):
        t = recurring()
        yesterday = ctx.today_start - DAY_MS
        overlay = {("r1", yesterday): InstanceState(completed=True)}
        assert classify([t], View.OVERDUE, ctx, overlay) == []

    def test_series_before_start_has_no_instances(self, ctx, today):
        t = recurring(start=today + timedelta(days=3))
        assert classify([t], View.TODAY, ctx) == []
        assert classify([t], View.OVERDUE, ctx, overdue_lookback_days=10) == []

    def test_duplicate_tasks_listed_once(self, ctx):
        t = recurring()
        assert len(classify([t, t], View.TODAY, ctx)) == 1


class TestDashboard:
    def test_today_and_tomorrow_split(self, ctx, today):
        due_today = deadline(today, id="a")
        due_tomorrow = deadline(today + timedelta(days=1), id="b")
        board = classify_dashboard([due_today, due_tomorrow, recurring()], ctx)
        assert ids(board.today) == ["a", f"r1_{ctx.today_start}"]
        assert ids(board.tomorrow) == ["b", f"r1_{ctx.tomorrow_start}"]

    def test_dashboard_view_is_union(self, ctx, today):
        tasks = [deadline(today, id="a"), deadline(today + timedelta(days=1), id="b"), task(id="c")]
        assert ids(classify(tasks, View.DASHBOARD, ctx)) == ["a", "b"]


class TestMemberships:
    def test_deadline_today(self, ctx, today):
        views = memberships(deadline(today), ctx)
        assert views == {View.TODAY, View.THIS_WEEK, View.BANK}

    def test_undated(self, ctx):
        assert memberships(task(), ctx) == {View.SOMEDAY, View.BANK}


class TestFilterEntries:
    @pytest.fixture
    def entries(self):
        return [
            Concrete(task(id="a", title="Buy milk", folder_id="home", tag_ids=frozenset({"errand"}))),
            Concrete(task(id="b", title="Write report", description="Quarterly numbers", tag_ids=frozenset({"work"}))),
            Concrete(task(id="c", title="Call mom")),
        ]

    def test_folder(self, entries):
        assert ids(filter_entries(entries, folder_id="home")) == ["a"]

    def test_not_in_folder(self, entries):
        assert ids(filter_entries(entries, not_in_folder=True)) == ["b", "c"]

    def test_tags_match_any(self, entries):
        assert ids(filter_entries(entries, tag_ids=["work", "errand"])) == ["a", "b"]

    def test_not_tagged(self, entries):
        assert ids(filter_entries(entries, not_tagged=True)) == ["c"]

    def test_search_is_case_insensitive_and_checks_description(self, entries):
        assert ids(filter_entries(entries, search="MILK")) == ["a"]
        assert ids(filter_entries(entries, search="quarterly")) == ["b"]

    def test_blank_search_keeps_all(self, entries):
        assert len(filter_entries(entries, search="   ")) == 3


class TestSortEntries:
    def test_incomplete_first_then_recent(self):
        entries = [
            Concrete(task(id="old", updated_at=1)),
            Concrete(task(id="done", updated_at=9, is_completed=True)),
            Concrete(task(id="new", updated_at=5)),
        ]
        assert [e.id for e in sort_entries(entries, View.TODAY)] == ["new", "old", "done"]

    def test_bank_dated_before_undated(self, today):
        entries = [
            Concrete(task(id="undated", updated_at=50)),
            Concrete(deadline(today + timedelta(days=2), id="later")),
            Concrete(deadline(today, id="sooner")),
        ]
        assert [e.id for e in sort_entries(entries, View.BANK)] == ["sooner", "later", "undated"]
