"""Repository layer for data access."""

from .base import BaseRepository
from .session_state import (
    StateKey,
    CONTINUITY_KEYS,
    SessionStateRepository,
    InMemorySessionStateRepository,
    DuckDBSessionStateRepository
)
from .history import HistoryRepository

__all__ = [
    "BaseRepository",
    "StateKey",
    "CONTINUITY_KEYS",
    "SessionStateRepository",
    "InMemorySessionStateRepository",
    "DuckDBSessionStateRepository",
    "HistoryRepository",
]
