"""Conversation session store: the single source of truth for an active session."""

from typing import Any, Callable, List, Optional

from ..db.repositories.session_state import CONTINUITY_KEYS, SessionStateRepository, StateKey
from ..exceptions import PersistenceFailure
from ..models.message import Message, MessageRole, dump_messages
from ..models.session import ConversationSession, ErrorEntry, ResolvedIdentity
from ..models.workflow import WorkflowState
from ..utils.logger import get_app_logger
from .identity import IdentityResolver


SessionListener = Callable[[ConversationSession], None]


class ConversationSessionStore:
    """
    Holds the live transcript, conversation id and workflow state.

    Every mutation is mirrored to the durable state repository and announced
    to subscribers with a snapshot. Durable writes that fail are logged and
    never interrupt the mutation.
    """

    def __init__(self, state_repo: SessionStateRepository, identity: IdentityResolver):
        self.state_repo = state_repo
        self.identity = identity
        self.logger = get_app_logger()
        self.session = ConversationSession()
        self._listeners: List[SessionListener] = []

    # -- lifecycle -----------------------------------------------------

    def load(self, resolved: ResolvedIdentity) -> None:
        """Adopt the outcome of identity resolution."""
        self.session = ConversationSession(
            participant_id=resolved.participant_id,
            conversation_id=resolved.conversation_id,
            messages=list(resolved.messages),
            workflow=resolved.workflow or WorkflowState()
        )
        self._notify()

    def reset_for_new_conversation(self) -> None:
        """
        Clear the session so the remote workflow restarts at its first stage.

        A new participant id is minted even when one exists, so the service
        cannot resume the previous workflow for this participant.
        """
        participant_id = self.identity.mint()

        self.session = ConversationSession(participant_id=participant_id)
        self._delete(*CONTINUITY_KEYS)
        self.logger.info(f"Reset session for new conversation (participant={participant_id})")
        self._notify()

    # -- accessors -----------------------------------------------------

    @property
    def conversation_id(self) -> Optional[str]:
        return self.session.conversation_id

    @property
    def participant_id(self) -> Optional[str]:
        return self.session.participant_id

    @property
    def messages(self) -> List[Message]:
        return self.session.messages

    @property
    def workflow(self) -> WorkflowState:
        return self.session.workflow

    def known_conversation_id(self) -> Optional[str]:
        """Live conversation id, falling back to the persisted one."""
        if self.session.conversation_id:
            return self.session.conversation_id
        try:
            return self.state_repo.get(StateKey.CONVERSATION_ID) or None
        except PersistenceFailure as e:
            self.logger.warning(f"Could not read persisted conversation id: {e}")
            return None

    def get_message(self, message_id: str) -> Optional[Message]:
        return self.session.get_message(message_id)

    def last_message(self, role: MessageRole) -> Optional[Message]:
        """Most recent message with the given role."""
        for message in reversed(self.session.messages):
            if message.role == role:
                return message
        return None

    # -- mutations -----------------------------------------------------

    def append_or_replace_message(self, message_id: str, **patch: Any) -> Message:
        """
        Upsert a message by id, keeping first-insertion order.

        Metadata in ``patch`` is merged into the existing metadata.

        Args:
            message_id: Message id
            **patch: Message fields to set; ``role`` is required for a new message

        Returns:
            The stored message
        """
        messages = self.session.messages
        for index, existing in enumerate(messages):
            if existing.id == message_id:
                if "metadata" in patch:
                    patch["metadata"] = {**existing.metadata, **patch["metadata"]}
                message = existing.model_copy(update=patch)
                messages[index] = message
                break
        else:
            message = Message(id=message_id, **patch)
            messages.append(message)

        self._persist_messages()
        self._notify()
        return message

    def append_content(self, message_id: str, delta: str, role: MessageRole = MessageRole.ASSISTANT) -> Message:
        """Append a text delta to a message, creating it on the first delta."""
        existing = self.session.get_message(message_id)
        content = (existing.content if existing else "") + delta
        if existing:
            return self.append_or_replace_message(message_id, content=content)
        return self.append_or_replace_message(message_id, role=role, content=content)

    def remove_message(self, message_id: str) -> bool:
        """Drop a message; only used when regenerating a response."""
        before = len(self.session.messages)
        self.session.messages = [m for m in self.session.messages if m.id != message_id]
        if len(self.session.messages) == before:
            return False
        self._persist_messages()
        self._notify()
        return True

    def replace_transcript(self, messages: List[Message]) -> None:
        """Swap in a whole transcript, e.g. one loaded from history."""
        self.session.messages = list(messages)
        self._persist_messages()
        self._notify()

    def set_conversation_id(self, conversation_id: Optional[str]) -> bool:
        """
        Record the conversation id learned from the service.

        A later id wins over an earlier one; an empty id never clears a known one.

        Returns:
            True if the stored id changed
        """
        if not conversation_id or conversation_id == self.session.conversation_id:
            return False

        previous = self.session.conversation_id
        self.session.conversation_id = conversation_id
        self._write(StateKey.CONVERSATION_ID, conversation_id)
        self.logger.info(f"Conversation id learned: {previous} -> {conversation_id}")
        self._notify()
        return True

    def clear_conversation_id(self) -> None:
        """Forget the conversation id so the next request starts fresh."""
        # A persisted id may exist even when none was learned in this session
        self._delete(StateKey.CONVERSATION_ID)
        if self.session.conversation_id is None:
            return
        self.logger.info(f"Clearing conversation id {self.session.conversation_id}")
        self.session.conversation_id = None
        self._notify()

    def set_workflow(self, workflow: WorkflowState) -> None:
        """Replace the workflow state and mirror it to durable storage."""
        self.session.workflow = workflow
        self._write(StateKey.WORKFLOW_STATE, workflow.model_dump_json(by_alias=True))
        self._notify()

    def set_loading(self, is_loading: bool) -> None:
        self.session.is_loading = is_loading
        self._notify()

    def set_retry_count(self, retry_count: int) -> None:
        self.session.retry_count = retry_count
        self._notify()

    def set_error(self, error: Optional[ErrorEntry]) -> None:
        self.session.error = error
        self._notify()

    # -- observation ---------------------------------------------------

    def snapshot(self) -> ConversationSession:
        """Deep copy of the current session."""
        return self.session.model_copy(deep=True)

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        """
        Register a listener called with a snapshot after every mutation.

        Returns:
            A callable that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                self.logger.exception("Session listener failed")

    # -- persistence ---------------------------------------------------

    def _persist_messages(self) -> None:
        self._write(StateKey.MESSAGES, dump_messages(self.session.messages))

    def _write(self, key: StateKey, value: str) -> None:
        try:
            self.state_repo.set(key, value)
            self.state_repo.touch()
        except PersistenceFailure as e:
            self.logger.warning(f"Could not persist {key.value}: {e}")

    def _delete(self, *keys: StateKey) -> None:
        try:
            self.state_repo.delete(*keys)
        except PersistenceFailure as e:
            self.logger.warning(f"Could not clear session state: {e}")
