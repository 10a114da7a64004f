"""Shared fixtures: a fixed Wednesday, 2024-01-10, in UTC."""

from datetime import date

import pytest

from dayplan.adapters.json_store import JsonTaskStore
from dayplan.core.timecontext import context_for_day
from dayplan.service import TaskService

from .fakes import UTC


@pytest.fixture
def today():
    return date(2024, 1, 10)


@pytest.fixture
def ctx(today):
    return context_for_day(today, UTC)


@pytest.fixture
def store(tmp_path):
    return JsonTaskStore(tmp_path / "tasks.json")


@pytest.fixture
def service(store):
    return TaskService(store, store)
