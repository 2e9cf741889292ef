"""Durable local session state repositories."""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional

import duckdb

from .base import BaseRepository
from ...exceptions import PersistenceFailure


class StateKey(str, Enum):
    """Keys kept in the durable local store."""

    PARTICIPANT_ID = "participant_id"
    CONVERSATION_ID = "conversation_id"
    MESSAGES = "messages"
    WORKFLOW_STATE = "workflow_state"
    SESSION_TIMESTAMP = "session_timestamp"


# Keys that let a reload resume the same remote conversation
CONTINUITY_KEYS = (
    StateKey.CONVERSATION_ID,
    StateKey.MESSAGES,
    StateKey.WORKFLOW_STATE,
)


class SessionStateRepository(ABC):
    """String-to-string durable store for one participant's session.

    Implementations raise PersistenceFailure on I/O errors; callers decide
    whether a failure matters.
    """

    @abstractmethod
    def get(self, key: StateKey) -> Optional[str]:
        """Read a value, or None when absent."""
        pass

    @abstractmethod
    def set(self, key: StateKey, value: str) -> None:
        """Write a value."""
        pass

    @abstractmethod
    def delete(self, *keys: StateKey) -> None:
        """Remove keys; missing keys are ignored."""
        pass

    def touch(self) -> None:
        """Record the session timestamp (epoch milliseconds)."""
        now_ms = int(datetime.now(timezone.utc).timestamp() * 1000)
        self.set(StateKey.SESSION_TIMESTAMP, str(now_ms))


class InMemorySessionStateRepository(SessionStateRepository):
    """In-memory implementation for testing and development."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self._values: Dict[str, str] = dict(initial or {})

    def get(self, key: StateKey) -> Optional[str]:
        return self._values.get(StateKey(key).value)

    def set(self, key: StateKey, value: str) -> None:
        self._values[StateKey(key).value] = value

    def delete(self, *keys: StateKey) -> None:
        for key in keys:
            self._values.pop(StateKey(key).value, None)

    def dump(self) -> Dict[str, str]:
        """Copy of everything stored."""
        return dict(self._values)


class DuckDBSessionStateRepository(BaseRepository, SessionStateRepository):
    """Repository for the session_state table."""

    def get(self, key: StateKey) -> Optional[str]:
        """
        Get a stored value.

        Args:
            key: State key

        Returns:
            Stored string or None
        """
        try:
            result = self.conn.execute(
                "SELECT value FROM session_state WHERE key = ?",
                [StateKey(key).value]
            ).fetchone()
            return result[0] if result else None
        except duckdb.Error as e:
            self.logger.error(f"Failed to read session state {key}: {e}")
            raise PersistenceFailure(f"Failed to read {StateKey(key).value}") from e

    def set(self, key: StateKey, value: str) -> None:
        """
        Store a value, replacing any previous one.

        Args:
            key: State key
            value: String value
        """
        try:
            self.conn.execute(
                "INSERT OR REPLACE INTO session_state (key, value, updated_at) VALUES (?, ?, ?)",
                [StateKey(key).value, value, self.to_db_time(datetime.now(timezone.utc))]
            )
            self.conn.commit()
        except duckdb.Error as e:
            self.logger.error(f"Failed to write session state {key}: {e}")
            raise PersistenceFailure(f"Failed to write {StateKey(key).value}") from e

    def delete(self, *keys: StateKey) -> None:
        """
        Remove stored values.

        Args:
            keys: State keys to remove
        """
        if not keys:
            return
        try:
            for key in keys:
                self.conn.execute("DELETE FROM session_state WHERE key = ?", [StateKey(key).value])
            self.conn.commit()
        except duckdb.Error as e:
            self.logger.error(f"Failed to delete session state {keys}: {e}")
            raise PersistenceFailure("Failed to delete session state") from e
