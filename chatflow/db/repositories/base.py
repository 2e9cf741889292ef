"""Base repository class."""

from datetime import datetime, timezone
from typing import Optional

import duckdb
from ...utils.logger import get_app_logger


class BaseRepository:
    """Base class for all repositories."""

    def __init__(self, conn: duckdb.DuckDBPyConnection):
        """
        Initialize repository with database connection.

        Args:
            conn: DuckDB connection instance
        """
        self.conn = conn
        self.logger = get_app_logger()

    @staticmethod
    def to_db_time(value: datetime) -> datetime:
        """DuckDB TIMESTAMP columns hold naive UTC."""
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    @staticmethod
    def from_db_time(value: Optional[datetime]) -> Optional[datetime]:
        """Attach UTC to a naive TIMESTAMP read back from DuckDB."""
        if value is None:
            return None
        return value.replace(tzinfo=timezone.utc)
