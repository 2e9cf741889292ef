"""Session services package."""

from .identity import IdentityResolver
from .session_store import ConversationSessionStore
from .workflow_tracker import WorkflowProgressTracker
from .stream_decoder import StreamDecoder, DecodeResult
from .workflow_client import WorkflowServiceClient, ChatResponse
from .delivery import DeliveryController
from .history_store import HistoryStore, DuckDBHistoryStore, RestHistoryStore, create_history_store
from .history import HistorySynchronizer
from .billing import (
    BillingCollaborator,
    HttpBillingClient,
    LoggingBillingCollaborator,
    create_billing_collaborator
)
from .chat_session import ChatSession

__all__ = [
    "IdentityResolver",
    "ConversationSessionStore",
    "WorkflowProgressTracker",
    "StreamDecoder",
    "DecodeResult",
    "WorkflowServiceClient",
    "ChatResponse",
    "DeliveryController",
    "HistoryStore",
    "DuckDBHistoryStore",
    "RestHistoryStore",
    "create_history_store",
    "HistorySynchronizer",
    "BillingCollaborator",
    "HttpBillingClient",
    "LoggingBillingCollaborator",
    "create_billing_collaborator",
    "ChatSession",
]
