"""Adapters - I/O implementations of ports."""

from .http_store import AuthenticationError, HttpTaskStore
from .json_store import JsonTaskStore
from .local_state import FileLocalState

__all__ = [
    "HttpTaskStore",
    "AuthenticationError",
    "JsonTaskStore",
    "FileLocalState",
]
