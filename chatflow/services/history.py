"""History synchronizer: conversation snapshots independent of the live session."""

import time
from typing import List, Optional

from ..config import Settings, settings as default_settings
from ..exceptions import PersistenceFailure
from ..models.history import ConversationDetail, ConversationHistoryItem
from ..models.message import Message, MessageRole
from ..utils.logger import get_app_logger
from .history_store import HistoryStore
from .session_store import ConversationSessionStore


class HistorySynchronizer:
    """
    Saves, lists, loads and deletes conversation snapshots.

    Snapshots are written only at save boundaries (new conversation, session
    close). The listing is cached for ``history_cache_ttl`` seconds.
    """

    def __init__(
        self,
        store: HistoryStore,
        session_store: ConversationSessionStore,
        settings: Settings = default_settings
    ):
        self.store = store
        self.session_store = session_store
        self.settings = settings
        self.logger = get_app_logger()
        self.current_item_id: Optional[str] = None
        self._cache: Optional[List[ConversationHistoryItem]] = None
        self._cache_time = 0.0

    def make_title(self, messages: List[Message]) -> str:
        """Truncated first user message."""
        limit = self.settings.history_title_length
        for message in messages:
            if message.role == MessageRole.USER and message.content.strip():
                text = message.content.strip()
                return text if len(text) <= limit else text[:limit] + "..."
        return "New conversation"

    async def save(self) -> Optional[str]:
        """
        Snapshot the live session.

        No-op when a listed item already has the same external id and
        message count. Backend failures are logged and swallowed.

        Returns:
            The history item id, or None when nothing was saved
        """
        session = self.session_store.snapshot()
        if not session.messages:
            return None

        external_id = session.conversation_id
        message_count = len(session.messages)

        try:
            items = await self.list()
        except PersistenceFailure as e:
            self.logger.warning(f"Could not list history before saving: {e}")
            items = list(self._cache or [])

        for item in items:
            if item.external_id == external_id and item.message_count == message_count:
                self.logger.info(f"History item {item.id} is up to date, skipping save")
                return item.id

        target_id = self.current_item_id if any(i.id == self.current_item_id for i in items) else None
        title = self.make_title(session.messages)
        workflow = session.workflow if session.workflow.is_workflow else None

        try:
            item_id = await self.store.save_conversation(
                title, session.messages, workflow, external_id=external_id, item_id=target_id
            )
        except PersistenceFailure as e:
            self.logger.warning(f"Could not save conversation to history: {e}")
            return None

        item = ConversationHistoryItem(
            id=item_id,
            title=title,
            last_message=session.messages[-1].content,
            message_count=message_count,
            workflow_state=workflow,
            external_id=external_id
        )
        self._remember(item, replace=target_id is not None)
        self.current_item_id = item_id
        self.logger.info(f"Saved conversation {item_id} to history: {title!r} ({message_count} messages)")
        return item_id

    async def list(self, force_refresh: bool = False) -> List[ConversationHistoryItem]:
        """
        List history items, newest first.

        Args:
            force_refresh: Bypass the cache

        Returns:
            A copy of the cached or freshly fetched list
        """
        fresh = time.monotonic() - self._cache_time < self.settings.history_cache_ttl
        if not force_refresh and self._cache is not None and fresh:
            return list(self._cache)

        items = await self.store.list_conversations()
        self._cache, self._cache_time = items, time.monotonic()
        self.logger.debug(f"History cache refreshed with {len(items)} items")
        return list(items)

    async def load(self, item_id: str) -> Optional[ConversationDetail]:
        """Fetch a snapshot's full detail and fill in the cached item."""
        detail = await self.store.load_conversation_detail(item_id)
        if detail is None:
            self.logger.warning(f"History item {item_id} not found")
            return None

        for item in self._cache or []:
            if item.id == item_id:
                item.messages = list(detail.messages)
                item.workflow_state = detail.workflow_state
        return detail

    async def delete(self, item_id: str) -> None:
        """Delete a snapshot; deleting the active one resets the live session."""
        await self.store.delete_conversation(item_id)
        if self._cache is not None:
            self._cache = [item for item in self._cache if item.id != item_id]

        if item_id == self.current_item_id:
            self.current_item_id = None
            self.logger.info(f"Deleted the active history item {item_id}, resetting session")
            self.session_store.reset_for_new_conversation()
        else:
            self.logger.info(f"Deleted history item {item_id}")

    def _remember(self, item: ConversationHistoryItem, replace: bool) -> None:
        if self._cache is None:
            return
        if replace:
            self._cache = [item if cached.id == item.id else cached for cached in self._cache]
        else:
            self._cache = [item] + self._cache
