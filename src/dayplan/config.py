"""Configuration management for dayplan."""

import logging
import os
from dataclasses import dataclass
from datetime import timezone, tzinfo
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

DAYPLAN_HOME = Path(os.environ.get("DAYPLAN_HOME", Path.home() / "dayplan"))
CONFIG_FILE = DAYPLAN_HOME / "config" / "dayplan.conf"
DATA_DIR = DAYPLAN_HOME / "data"


@dataclass
class Config:
    """dayplan configuration."""

    timezone: str = "America/Toronto"
    store: str = "file"  # "file" or "http"
    tasks_file: str = ""
    local_state_file: str = ""
    api_base_url: str = ""
    api_token: str = ""
    overdue_lookback_days: int = 1

    @property
    def tasks_path(self) -> Path:
        if self.tasks_file:
            return Path(self.tasks_file).expanduser()
        return DATA_DIR / "tasks.json"

    @property
    def local_state_path(self) -> Path:
        if self.local_state_file:
            return Path(self.local_state_file).expanduser()
        return DATA_DIR / "local_state.json"

    def tz(self) -> tzinfo:
        """Resolve the configured timezone, falling back to UTC."""
        try:
            return ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            logger.warning(f"Unknown timezone {self.timezone!r}, using UTC: {e}")
            return timezone.utc


def _unquote(value: str) -> str:
    # Handle quoted values with inline comments: "value" # comment
    if value.startswith('"') or value.startswith("'"):
        quote = value[0]
        end_quote = value.find(quote, 1)
        if end_quote != -1:
            return value[1:end_quote]
        return value[1:]
    # Unquoted: strip inline comments
    if "#" in value:
        value = value.split("#")[0].strip()
    return value


def load_config(path: Path | None = None) -> Config:
    """Load configuration from dayplan.conf file."""
    config = Config()
    path = path or CONFIG_FILE

    if not path.exists():
        return config

    for line in path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue

        if "=" not in line:
            continue

        key, _, value = line.partition("=")
        key = key.strip().lower()
        value = _unquote(value.strip())

        match key:
            case "timezone":
                config.timezone = value
            case "store":
                if value in ("file", "http"):
                    config.store = value
                else:
                    logger.warning(f"Unknown STORE {value!r}, keeping {config.store!r}")
            case "tasks_file":
                config.tasks_file = value
            case "local_state_file":
                config.local_state_file = value
            case "api_base_url":
                config.api_base_url = value
            case "api_token":
                config.api_token = value
            case "overdue_lookback_days":
                try:
                    config.overdue_lookback_days = max(int(value), 1)
                except ValueError:
                    logger.warning(f"Invalid OVERDUE_LOOKBACK_DAYS: {value}")

    return config
