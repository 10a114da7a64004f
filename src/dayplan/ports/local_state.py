"""Client-local key/value store interface."""

from typing import Protocol


class LocalStateStore(Protocol):
    """Small device-local string store. Losing it only causes re-prompting."""

    def get(self, key: str) -> str | None:
        """Read a value. Returns None if missing."""
        ...

    def set(self, key: str, value: str) -> None:
        """Write a value."""
        ...
