"""Gateway API request/response models."""

from typing import Optional, List
from pydantic import BaseModel, Field

from .message import Message
from .session import ErrorEntry
from .workflow import WorkflowState
from .history import ConversationHistoryItem


class SendMessageRequest(BaseModel):
    """Request model for sending a message."""

    content: str = Field(description="Message content", min_length=1)


class SessionStateResponse(BaseModel):
    """Response model for the live session."""

    participant_id: Optional[str] = Field(None, description="Participant identifier")
    conversation_id: Optional[str] = Field(None, description="Remote conversation id")
    messages: List[Message] = Field(description="Transcript")
    workflow: WorkflowState = Field(description="Workflow progress")
    progress: float = Field(description="Completed nodes / total nodes")
    retry_count: int = Field(description="Retries performed by the current send")
    is_loading: bool = Field(description="Whether a send is in flight")
    error: Optional[ErrorEntry] = Field(None, description="Last delivery failure")


class HistoryListResponse(BaseModel):
    """Response model for listing history."""

    conversations: List[ConversationHistoryItem] = Field(description="History items, newest first")
    total: int = Field(description="Total number of items")
