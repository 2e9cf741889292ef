"""Pydantic models for the session core and the gateway API."""

from .message import Message, MessageRole, dump_messages, load_messages
from .workflow import NodeStatus, WorkflowNode, WorkflowState
from .session import ConversationSession, ErrorEntry, ResolvedIdentity
from .history import ConversationHistoryItem, ConversationDetail
from .chat import (
    ChatRequest,
    BlockingResponse,
    ResponseMode,
    StreamEvent,
    StreamEventType,
    UsageRecord
)

__all__ = [
    "Message",
    "MessageRole",
    "dump_messages",
    "load_messages",
    "NodeStatus",
    "WorkflowNode",
    "WorkflowState",
    "ConversationSession",
    "ErrorEntry",
    "ResolvedIdentity",
    "ConversationHistoryItem",
    "ConversationDetail",
    "ChatRequest",
    "BlockingResponse",
    "ResponseMode",
    "StreamEvent",
    "StreamEventType",
    "UsageRecord",
]
