"""Database package - connection, models, and repositories."""

from .connection import DatabaseConnection
from .repositories.session_state import (
    StateKey,
    SessionStateRepository,
    InMemorySessionStateRepository,
    DuckDBSessionStateRepository
)
from .repositories.history import HistoryRepository

__all__ = [
    "DatabaseConnection",
    "StateKey",
    "SessionStateRepository",
    "InMemorySessionStateRepository",
    "DuckDBSessionStateRepository",
    "HistoryRepository",
]
