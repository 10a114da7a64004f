"""File-based client-local state adapter."""

import json
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


class FileLocalState:
    """
    Device-local key/value storage in a single JSON object.

    Implements LocalStateStore protocol. A missing or corrupt file reads as
    empty; the worst outcome is a carryover prompt showing up again.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path).expanduser()

    def _read_all(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable local state {self.path}: {e}")
            return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def get(self, key: str) -> str | None:
        """Read a value. Returns None if missing."""
        return self._read_all().get(key)

    def set(self, key: str, value: str) -> None:
        """Write a value."""
        data = self._read_all()
        data[key] = value
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(data, indent=2, sort_keys=True))
        except OSError as e:
            logger.warning(f"Failed to persist local state {key}: {e}")
