"""Conversation history models."""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field

from .message import Message, utc_now
from .workflow import WorkflowState


class ConversationHistoryItem(BaseModel):
    """Persisted snapshot of a conversation, as listed in history."""

    id: str = Field(description="History item id assigned by the history store")
    title: str = Field(description="Truncated first user message")
    last_message: str = Field(default="", description="Preview of the last message")
    last_message_time: datetime = Field(default_factory=utc_now, description="Time of the snapshot")
    message_count: int = Field(default=0, description="Number of messages in the snapshot")
    messages: Optional[List[Message]] = Field(None, description="Full transcript; None until loaded")
    workflow_state: Optional[WorkflowState] = Field(None, description="Workflow progress at save time")
    external_id: Optional[str] = Field(None, description="Remote workflow conversation id")


class ConversationDetail(BaseModel):
    """Full snapshot returned by the history store."""

    id: str = Field(description="History item id")
    title: str = Field(description="Conversation title")
    messages: List[Message] = Field(default_factory=list, description="Transcript")
    workflow_state: Optional[WorkflowState] = Field(None, description="Workflow progress")
    external_id: Optional[str] = Field(None, description="Remote workflow conversation id")
