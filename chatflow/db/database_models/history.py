"""History database models."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Any, Optional


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class HistoryConversationDO:
    """History conversation data object - maps to history_conversations table."""

    id: str
    title: str
    last_message: str = ""
    last_message_time: datetime = field(default_factory=_utcnow)
    message_count: int = 0
    workflow_state: Optional[str] = None  # serialized WorkflowState JSON
    external_id: Optional[str] = None
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)


@dataclass
class HistoryMessageDO:
    """History message data object - maps to history_messages table."""

    conversation_id: str
    position: int
    message_id: str
    role: str
    content: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=_utcnow)
