"""Chat session facade wiring the session components together."""

from typing import Any, Callable, Dict, List, Optional

import httpx

from ..config import Settings, settings as default_settings
from ..db.connection import DatabaseConnection
from ..db.repositories.session_state import DuckDBSessionStateRepository, SessionStateRepository
from ..exceptions import NothingToRetryError, SubmissionInProgressError
from ..models.history import ConversationDetail, ConversationHistoryItem
from ..models.message import Message, MessageRole
from ..models.session import ConversationSession, ResolvedIdentity
from ..utils.logger import get_app_logger
from .billing import BillingCollaborator, create_billing_collaborator
from .delivery import DeliveryController
from .history import HistorySynchronizer
from .history_store import HistoryStore, create_history_store
from .identity import IdentityResolver
from .session_store import ConversationSessionStore
from .stream_decoder import StreamDecoder
from .workflow_client import WorkflowServiceClient
from .workflow_tracker import WorkflowProgressTracker


class ChatSession:
    """One participant's chat session against the workflow service."""

    def __init__(
        self,
        state_repo: SessionStateRepository,
        client: WorkflowServiceClient,
        history_store: HistoryStore,
        billing: Optional[BillingCollaborator] = None,
        settings: Settings = default_settings,
        inputs: Optional[Dict[str, Any]] = None
    ):
        self.settings = settings
        self.logger = get_app_logger()
        self.client = client
        self.history_store = history_store
        self.billing = billing
        self._state_db: Optional[DatabaseConnection] = None

        self.identity = IdentityResolver(state_repo, settings)
        self.store = ConversationSessionStore(state_repo, self.identity)
        self.tracker = WorkflowProgressTracker(self.store)
        self.decoder = StreamDecoder(self.store, self.tracker, settings)
        self.delivery = DeliveryController(
            client, self.store, self.decoder, settings, billing=billing, inputs=inputs
        )
        self.history = HistorySynchronizer(history_store, self.store, settings)

    @classmethod
    def from_settings(
        cls,
        settings: Settings = default_settings,
        http_client: Optional[httpx.AsyncClient] = None
    ) -> "ChatSession":
        """Build a session backed by DuckDB state and the configured collaborators."""
        state_db = DatabaseConnection(settings.state_db_path)
        session = cls(
            state_repo=DuckDBSessionStateRepository(state_db.conn),
            client=WorkflowServiceClient(settings, client=http_client),
            history_store=create_history_store(settings),
            billing=create_billing_collaborator(settings),
            settings=settings
        )
        session._state_db = state_db
        return session

    # -- lifecycle -----------------------------------------------------

    def start(self, authenticated_id: Optional[str] = None) -> ResolvedIdentity:
        """Resolve the participant and restore any previous conversation."""
        resolved = self.identity.initialize(authenticated_id)
        self.store.load(resolved)
        return resolved

    async def close(self):
        """Save the session to history and release clients."""
        if not self.delivery.in_flight:
            await self.history.save()
        await self.client.close()
        await self.history_store.close()
        if self.billing:
            await self.billing.close()
        if self._state_db:
            self._state_db.close()
            self._state_db = None

    # -- messaging -----------------------------------------------------

    async def send(self, text: str) -> Message:
        """Deliver a user message and return the assistant reply."""
        return await self.delivery.send(text)

    async def retry_last_message(self) -> Message:
        """Resubmit the last user message without adding it to the transcript again."""
        last_user = self._require_last_user_message()
        self.logger.info(f"Retrying last message {last_user.id}")
        return await self.delivery.send(last_user.content, append_user_message=False)

    async def regenerate_last_response(self) -> Message:
        """
        Ask for a new answer to the last user message.

        The service cannot regenerate in place, so the last reply is dropped
        and the question is resubmitted as a fresh remote conversation.
        """
        self._ensure_idle()
        last_user = self._require_last_user_message()
        last_reply = self.store.last_message(MessageRole.ASSISTANT)
        ids = [m.id for m in self.store.messages]
        if last_reply and ids.index(last_reply.id) > ids.index(last_user.id):
            self.store.remove_message(last_reply.id)

        self.store.clear_conversation_id()
        self.tracker.start_new_run()
        self.logger.info(f"Regenerating response to {last_user.id} in a fresh conversation")
        return await self.delivery.send(last_user.content, append_user_message=False)

    async def new_conversation(self) -> None:
        """Save the current conversation to history and start over."""
        self._ensure_idle()
        await self.history.save()
        self.history.current_item_id = None
        self.store.reset_for_new_conversation()

    # -- history -------------------------------------------------------

    async def list_history(self, force_refresh: bool = False) -> List[ConversationHistoryItem]:
        return await self.history.list(force_refresh=force_refresh)

    async def restore_from_history(self, item_id: str) -> Optional[ConversationDetail]:
        """
        Make a history item the live conversation.

        Returns:
            The loaded detail, or None when the item does not exist
        """
        self._ensure_idle()
        detail = await self.history.load(item_id)
        if detail is None:
            return None

        self.store.replace_transcript(detail.messages)
        # Switching conversations is the one place a known id is replaced wholesale
        self.store.clear_conversation_id()
        self.store.set_conversation_id(detail.external_id)
        self.tracker.restore(detail.workflow_state)
        self.store.set_error(None)
        self.history.current_item_id = item_id
        self.logger.info(
            f"Restored history item {item_id} ({len(detail.messages)} messages, "
            f"conversation={detail.external_id})"
        )
        return detail

    async def delete_history(self, item_id: str) -> None:
        await self.history.delete(item_id)

    # -- observation ---------------------------------------------------

    def progress(self) -> float:
        return self.tracker.progress()

    def snapshot(self) -> ConversationSession:
        return self.store.snapshot()

    def subscribe(self, listener: Callable[[ConversationSession], None]) -> Callable[[], None]:
        return self.store.subscribe(listener)

    def _ensure_idle(self) -> None:
        if self.delivery.in_flight:
            raise SubmissionInProgressError("A message is already being delivered")

    def _require_last_user_message(self) -> Message:
        last_user = self.store.last_message(MessageRole.USER)
        if last_user is None:
            raise NothingToRetryError("There is no message to resubmit")
        return last_user
