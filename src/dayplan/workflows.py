"""Shared wiring between the CLI and the carryover session.

Resolves adapters from config and reads the wall clock on behalf of the
caller; nothing below this layer ever asks for the current time.
"""

from datetime import datetime

from .adapters.http_store import HttpTaskStore
from .adapters.json_store import JsonTaskStore
from .adapters.local_state import FileLocalState
from .carryover import CarryoverDetector
from .config import Config
from .core.timecontext import TimeContext, build_time_context
from .service import TaskService


def get_store(config: Config) -> JsonTaskStore | HttpTaskStore:
    """Resolve the task/instance store from config."""
    if config.store == "http":
        return HttpTaskStore(config.api_base_url, config.api_token)
    return JsonTaskStore(config.tasks_path)


def get_service(config: Config) -> TaskService:
    store = get_store(config)
    return TaskService(store, store, overdue_lookback_days=config.overdue_lookback_days)


def get_local_state(config: Config) -> FileLocalState:
    return FileLocalState(config.local_state_path)


def get_detector(config: Config, service: TaskService | None = None) -> CarryoverDetector:
    return CarryoverDetector(get_local_state(config), service or get_service(config))


def local_now(config: Config) -> datetime:
    """Wall-clock reading in the configured timezone."""
    return datetime.now(config.tz())


def current_context(config: Config, now: datetime | None = None) -> TimeContext:
    """Time context for right now (or for a given aware datetime)."""
    return build_time_context(now or local_now(config))
