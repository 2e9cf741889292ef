"""Durable conversation history stores."""

import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx

from ..config import Settings, settings as default_settings
from ..db.connection import DatabaseConnection
from ..db.database_models.history import HistoryConversationDO, HistoryMessageDO
from ..db.repositories.history import HistoryRepository
from ..exceptions import PersistenceFailure
from ..models.history import ConversationDetail, ConversationHistoryItem
from ..models.message import Message, utc_now
from ..models.workflow import WorkflowState
from ..utils.logger import get_app_logger


class HistoryStore(ABC):
    """Conversation snapshot storage consumed by the history synchronizer.

    Implementations raise PersistenceFailure when the backend fails.
    """

    @abstractmethod
    async def list_conversations(self) -> List[ConversationHistoryItem]:
        """List snapshots, most recent first, without their messages."""
        pass

    @abstractmethod
    async def save_conversation(
        self,
        title: str,
        messages: List[Message],
        workflow_state: Optional[WorkflowState],
        external_id: Optional[str] = None,
        item_id: Optional[str] = None
    ) -> str:
        """Save a snapshot, replacing ``item_id`` when given; return the item id."""
        pass

    @abstractmethod
    async def load_conversation_detail(self, item_id: str) -> Optional[ConversationDetail]:
        """Fetch a full snapshot, or None when it does not exist."""
        pass

    @abstractmethod
    async def delete_conversation(self, item_id: str) -> None:
        """Remove a snapshot and its messages."""
        pass

    async def close(self):
        pass


def _parse_workflow(raw: Any) -> Optional[WorkflowState]:
    """Rebuild a WorkflowState from JSON text or a decoded mapping."""
    if not raw:
        return None
    if isinstance(raw, str):
        return WorkflowState.model_validate_json(raw)
    return WorkflowState.model_validate(raw)


class DuckDBHistoryStore(HistoryStore):
    """History kept in local DuckDB tables."""

    def __init__(self, db: DatabaseConnection):
        self.db = db
        self.repo = HistoryRepository(db.conn)
        self.logger = get_app_logger()

    async def list_conversations(self) -> List[ConversationHistoryItem]:
        return [
            ConversationHistoryItem(
                id=row.id,
                title=row.title,
                last_message=row.last_message,
                last_message_time=row.last_message_time,
                message_count=row.message_count,
                workflow_state=_parse_workflow(row.workflow_state),
                external_id=row.external_id
            )
            for row in self.repo.list_all()
        ]

    async def save_conversation(
        self,
        title: str,
        messages: List[Message],
        workflow_state: Optional[WorkflowState],
        external_id: Optional[str] = None,
        item_id: Optional[str] = None
    ) -> str:
        now = utc_now()
        existing = self.repo.get(item_id) if item_id else None
        conversation = HistoryConversationDO(
            id=item_id or str(uuid.uuid4()),
            title=title,
            last_message=messages[-1].content if messages else "",
            last_message_time=now,
            message_count=len(messages),
            workflow_state=workflow_state.model_dump_json() if workflow_state else None,
            external_id=external_id,
            created_at=existing.created_at if existing else now,
            updated_at=now
        )
        rows = [
            HistoryMessageDO(
                conversation_id=conversation.id,
                position=position,
                message_id=message.id,
                role=message.role.value,
                content=message.content,
                metadata=message.metadata,
                created_at=message.timestamp
            )
            for position, message in enumerate(messages)
        ]
        self.repo.save(conversation, rows)
        return conversation.id

    async def load_conversation_detail(self, item_id: str) -> Optional[ConversationDetail]:
        conversation = self.repo.get(item_id)
        if conversation is None:
            return None
        messages = [
            Message(
                id=row.message_id,
                role=row.role,
                content=row.content,
                timestamp=row.created_at,
                metadata=row.metadata
            )
            for row in self.repo.get_messages(item_id)
        ]
        return ConversationDetail(
            id=conversation.id,
            title=conversation.title,
            messages=messages,
            workflow_state=_parse_workflow(conversation.workflow_state),
            external_id=conversation.external_id
        )

    async def delete_conversation(self, item_id: str) -> None:
        self.repo.delete(item_id)

    async def close(self):
        self.db.close()


class RestHistoryStore(HistoryStore):
    """History kept behind a PostgREST-style API (``chat_conversations`` / ``chat_messages``)."""

    CONVERSATIONS = "/rest/v1/chat_conversations"
    MESSAGES = "/rest/v1/chat_messages"

    def __init__(
        self,
        settings: Settings = default_settings,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.logger = get_app_logger()
        self._owns_client = client is None
        if client is None:
            headers = {"Content-Type": "application/json"}
            if settings.history_api_key:
                headers["apikey"] = settings.history_api_key
                headers["Authorization"] = f"Bearer {settings.history_api_key}"
            client = httpx.AsyncClient(
                base_url=settings.history_api_base or "",
                headers=headers,
                timeout=httpx.Timeout(30.0)
            )
        self.client = client

    async def _call(self, method: str, path: str, **kwargs) -> Any:
        try:
            response = await self.client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPError as e:
            self.logger.error(f"History backend {method} {path} failed: {e}")
            raise PersistenceFailure(f"History backend request failed: {e}") from e
        if not response.content:
            return None
        return response.json()

    @staticmethod
    def _to_item(row: Dict[str, Any]) -> ConversationHistoryItem:
        return ConversationHistoryItem(
            id=str(row["id"]),
            title=row.get("title") or "",
            last_message=row.get("last_message") or "",
            last_message_time=row.get("last_message_time") or utc_now(),
            message_count=row.get("message_count") or 0,
            workflow_state=_parse_workflow(row.get("workflow_state")),
            external_id=row.get("dify_conversation_id") or row.get("external_id")
        )

    async def list_conversations(self) -> List[ConversationHistoryItem]:
        rows = await self._call("GET", self.CONVERSATIONS, params={"order": "updated_at.desc"})
        items = [self._to_item(row) for row in rows or []]
        self.logger.info(f"Loaded {len(items)} history conversations")
        return items

    async def save_conversation(
        self,
        title: str,
        messages: List[Message],
        workflow_state: Optional[WorkflowState],
        external_id: Optional[str] = None,
        item_id: Optional[str] = None
    ) -> str:
        now = utc_now().isoformat()
        data = {
            "title": title,
            "last_message": messages[-1].content if messages else "",
            "last_message_time": now,
            "message_count": len(messages),
            "workflow_state": workflow_state.model_dump(mode="json") if workflow_state else None,
            "dify_conversation_id": external_id,
            "updated_at": now
        }
        prefer = {"Prefer": "return=representation"}

        if item_id:
            await self._call("PATCH", self.CONVERSATIONS, params={"id": f"eq.{item_id}"}, json=data, headers=prefer)
            await self._call("DELETE", self.MESSAGES, params={"conversation_id": f"eq.{item_id}"})
        else:
            data["created_at"] = now
            rows = await self._call("POST", self.CONVERSATIONS, json=data, headers=prefer)
            if not rows:
                raise PersistenceFailure("History backend did not return the saved conversation")
            item_id = str(rows[0]["id"])

        if messages:
            await self._call("POST", self.MESSAGES, json=[
                {
                    "conversation_id": item_id,
                    "message_id": message.id,
                    "role": message.role.value,
                    "content": message.content,
                    "metadata": message.metadata,
                    "created_at": message.timestamp.isoformat()
                }
                for message in messages
            ])

        self.logger.info(f"Saved history conversation {item_id} ({len(messages)} messages)")
        return item_id

    async def load_conversation_detail(self, item_id: str) -> Optional[ConversationDetail]:
        rows = await self._call("GET", self.CONVERSATIONS, params={"id": f"eq.{item_id}"})
        if not rows:
            return None
        row = rows[0]

        message_rows = await self._call(
            "GET",
            self.MESSAGES,
            params={"conversation_id": f"eq.{item_id}", "order": "created_at.asc"}
        )
        messages = [
            Message(
                id=str(m.get("message_id") or m.get("id") or uuid.uuid4().hex),
                role=m["role"],
                content=m.get("content") or "",
                timestamp=m.get("created_at") or utc_now(),
                metadata=m.get("metadata") or {}
            )
            for m in message_rows or []
        ]
        return ConversationDetail(
            id=str(row["id"]),
            title=row.get("title") or "",
            messages=messages,
            workflow_state=_parse_workflow(row.get("workflow_state")),
            external_id=row.get("dify_conversation_id") or row.get("external_id")
        )

    async def delete_conversation(self, item_id: str) -> None:
        await self._call("DELETE", self.MESSAGES, params={"conversation_id": f"eq.{item_id}"})
        await self._call("DELETE", self.CONVERSATIONS, params={"id": f"eq.{item_id}"})
        self.logger.info(f"Deleted history conversation {item_id}")

    async def close(self):
        if self._owns_client:
            await self.client.aclose()


def create_history_store(settings: Settings = default_settings) -> HistoryStore:
    """Build the configured history backend."""
    if settings.history_backend == "rest":
        if not settings.history_api_base:
            raise ValueError("history_api_base is required for the rest history backend")
        return RestHistoryStore(settings)
    return DuckDBHistoryStore(DatabaseConnection(settings.history_db_path))
