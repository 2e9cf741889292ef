"""History repository for database operations."""

import json
from typing import Optional, List

import duckdb

from .base import BaseRepository
from ..database_models.history import HistoryConversationDO, HistoryMessageDO
from ...exceptions import PersistenceFailure


_CONVERSATION_COLUMNS = (
    "id, title, last_message, last_message_time, message_count, "
    "workflow_state, external_id, created_at, updated_at"
)


class HistoryRepository(BaseRepository):
    """Repository for history conversation and message CRUD operations."""

    def _to_conversation(self, row) -> HistoryConversationDO:
        return HistoryConversationDO(
            id=row[0],
            title=row[1],
            last_message=row[2] or "",
            last_message_time=self.from_db_time(row[3]),
            message_count=row[4],
            workflow_state=row[5],
            external_id=row[6],
            created_at=self.from_db_time(row[7]),
            updated_at=self.from_db_time(row[8])
        )

    def save(self, conversation: HistoryConversationDO, messages: List[HistoryMessageDO]) -> None:
        """
        Insert or replace a conversation and all of its messages.

        Args:
            conversation: HistoryConversationDO instance
            messages: Messages in transcript order
        """
        try:
            self.conn.execute("BEGIN TRANSACTION")
            self.conn.execute("DELETE FROM history_messages WHERE conversation_id = ?", [conversation.id])
            self.conn.execute("DELETE FROM history_conversations WHERE id = ?", [conversation.id])
            self.conn.execute(f"""
                INSERT INTO history_conversations ({_CONVERSATION_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, [
                conversation.id,
                conversation.title,
                conversation.last_message,
                self.to_db_time(conversation.last_message_time),
                conversation.message_count,
                conversation.workflow_state,
                conversation.external_id,
                self.to_db_time(conversation.created_at),
                self.to_db_time(conversation.updated_at)
            ])
            for message in messages:
                self.conn.execute("""
                    INSERT INTO history_messages (conversation_id, position, message_id, role, content, metadata, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                """, [
                    conversation.id,
                    message.position,
                    message.message_id,
                    message.role,
                    message.content,
                    json.dumps(message.metadata, default=str),
                    self.to_db_time(message.created_at)
                ])
            self.conn.execute("COMMIT")
            self.logger.info(f"Saved history conversation {conversation.id} ({len(messages)} messages)")
        except duckdb.Error as e:
            self.conn.execute("ROLLBACK")
            self.logger.error(f"Failed to save history conversation {conversation.id}: {e}")
            raise PersistenceFailure(f"Failed to save conversation {conversation.id}") from e

    def get(self, conversation_id: str) -> Optional[HistoryConversationDO]:
        """
        Get conversation by ID.

        Args:
            conversation_id: History conversation ID

        Returns:
            HistoryConversationDO instance or None
        """
        try:
            result = self.conn.execute(f"""
                SELECT {_CONVERSATION_COLUMNS}
                FROM history_conversations
                WHERE id = ?
            """, [conversation_id]).fetchone()
            return self._to_conversation(result) if result else None
        except duckdb.Error as e:
            self.logger.error(f"Failed to get history conversation {conversation_id}: {e}")
            raise PersistenceFailure(f"Failed to get conversation {conversation_id}") from e

    def list_all(self) -> List[HistoryConversationDO]:
        """
        List all conversations.

        Returns:
            List of HistoryConversationDO instances, most recent first
        """
        try:
            results = self.conn.execute(f"""
                SELECT {_CONVERSATION_COLUMNS}
                FROM history_conversations
                ORDER BY updated_at DESC
            """).fetchall()
            return [self._to_conversation(row) for row in results]
        except duckdb.Error as e:
            self.logger.error(f"Failed to list history conversations: {e}")
            raise PersistenceFailure("Failed to list conversations") from e

    def get_messages(self, conversation_id: str) -> List[HistoryMessageDO]:
        """
        Get messages for a conversation.

        Args:
            conversation_id: History conversation ID

        Returns:
            List of HistoryMessageDO instances (transcript order)
        """
        try:
            results = self.conn.execute("""
                SELECT conversation_id, position, message_id, role, content, metadata, created_at
                FROM history_messages
                WHERE conversation_id = ?
                ORDER BY position ASC
            """, [conversation_id]).fetchall()

            return [
                HistoryMessageDO(
                    conversation_id=row[0],
                    position=row[1],
                    message_id=row[2],
                    role=row[3],
                    content=row[4],
                    metadata=json.loads(row[5]) if row[5] else {},
                    created_at=self.from_db_time(row[6])
                )
                for row in results
            ]
        except duckdb.Error as e:
            self.logger.error(f"Failed to get history messages for {conversation_id}: {e}")
            raise PersistenceFailure(f"Failed to get messages of {conversation_id}") from e

    def delete(self, conversation_id: str) -> bool:
        """
        Delete a conversation and its messages.

        Args:
            conversation_id: History conversation ID

        Returns:
            True if a conversation row was removed
        """
        try:
            existing = self.conn.execute(
                "SELECT 1 FROM history_conversations WHERE id = ?", [conversation_id]
            ).fetchone()
            self.conn.execute("DELETE FROM history_messages WHERE conversation_id = ?", [conversation_id])
            self.conn.execute("DELETE FROM history_conversations WHERE id = ?", [conversation_id])
            self.conn.commit()
            if existing:
                self.logger.info(f"Deleted history conversation {conversation_id}")
            return existing is not None
        except duckdb.Error as e:
            self.logger.error(f"Failed to delete history conversation {conversation_id}: {e}")
            raise PersistenceFailure(f"Failed to delete conversation {conversation_id}") from e
