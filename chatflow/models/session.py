"""Live conversation session models."""

from typing import List, Optional
from pydantic import BaseModel, Field

from .message import Message
from .workflow import WorkflowState
from ..exceptions import ErrorCategory


RETRY_LAST_MESSAGE = "retry_last_message"
START_NEW_CONVERSATION = "start_new_conversation"


class ErrorEntry(BaseModel):
    """The single error shown to the user after delivery gives up."""

    category: ErrorCategory = Field(description="Translated failure category")
    message: str = Field(description="User-facing message")
    retry_count: int = Field(default=0, description="Retries performed before giving up")
    actions: List[str] = Field(
        default_factory=lambda: [RETRY_LAST_MESSAGE, START_NEW_CONVERSATION],
        description="Corrective actions offered to the user"
    )


class ConversationSession(BaseModel):
    """Single source of truth for one active conversation."""

    conversation_id: Optional[str] = Field(None, description="Remote conversation id, once learned")
    participant_id: Optional[str] = Field(None, description="Participant identifier sent as `user`")
    messages: List[Message] = Field(default_factory=list, description="Transcript in insertion order")
    workflow: WorkflowState = Field(default_factory=WorkflowState, description="Workflow progress")
    retry_count: int = Field(default=0, description="Retries performed by the send in progress")
    is_loading: bool = Field(default=False, description="Whether a send is in flight")
    error: Optional[ErrorEntry] = Field(None, description="Last delivery failure")

    def get_message(self, message_id: str) -> Optional[Message]:
        """Find a message by id."""
        for message in self.messages:
            if message.id == message_id:
                return message
        return None


class ResolvedIdentity(BaseModel):
    """Outcome of identity resolution at session start."""

    participant_id: str = Field(description="Participant identifier to use for this session")
    is_authenticated: bool = Field(default=False, description="Whether the id came from an authenticated login")
    is_continuation: bool = Field(default=False, description="Whether continuity artifacts were restored")
    conversation_id: Optional[str] = Field(None, description="Restored remote conversation id")
    messages: List[Message] = Field(default_factory=list, description="Restored transcript")
    workflow: Optional[WorkflowState] = Field(None, description="Restored workflow progress")
