"""Error taxonomy for message delivery and persistence."""

from enum import Enum
from typing import Any, Iterable, Optional


class ErrorCategory(str, Enum):
    """User-facing failure categories."""

    CONNECTIVITY = "connectivity"
    TIMEOUT = "timeout"
    SERVER = "server"
    AUTH = "auth"
    NOT_FOUND = "not_found"
    GENERIC = "generic"


class ChatflowError(Exception):
    """Base exception for chatflow errors."""

    def __init__(self, message: str, status_code: Optional[int] = None, details: Any = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details


class NetworkFailure(ChatflowError):
    """The workflow service could not be reached."""


class RequestTimeout(ChatflowError):
    """The request deadline expired before the call settled."""


class RemoteError(ChatflowError):
    """The workflow service answered with a non-success status."""


class RemoteConversationInvalid(RemoteError):
    """The service does not know the conversation id that was sent."""


class RemoteTransient(RemoteError):
    """5xx, 408 or 429: worth retrying after a backoff."""


class RemoteRejected(RemoteError):
    """Any other 4xx: retrying will not help."""


class StreamDecodeFailure(ChatflowError):
    """The event stream could not be consumed or reported an error event."""


class PersistenceFailure(ChatflowError):
    """A durable store read or write failed."""


class SubmissionInProgressError(ChatflowError):
    """A message is already being delivered for this session."""


class NothingToRetryError(ChatflowError):
    """The transcript has no user message to resubmit."""


class DeliveryError(ChatflowError):
    """The single translated error surfaced to callers after delivery gave up."""

    def __init__(
        self,
        category: ErrorCategory,
        message: str,
        retry_count: int = 0,
        status_code: Optional[int] = None,
        cause: Optional[BaseException] = None
    ):
        super().__init__(message, status_code=status_code)
        self.category = category
        self.retry_count = retry_count
        self.cause = cause


RETRIABLE_STATUS_CODES = frozenset({408, 429})


def is_retriable_status(status_code: int) -> bool:
    """Check whether an HTTP status belongs to the transient class."""
    return status_code >= 500 or status_code in RETRIABLE_STATUS_CODES


def classify_http_error(status_code: int, body: Any, not_found_patterns: Iterable[str]) -> RemoteError:
    """
    Map a failed HTTP response onto the error taxonomy.

    Args:
        status_code: HTTP status
        body: Decoded JSON body, or raw text when the body is not JSON
        not_found_patterns: Texts that identify an unknown conversation

    Returns:
        The matching RemoteError subclass instance (not raised)
    """
    if isinstance(body, dict):
        text = str(body.get("message") or body.get("error") or body.get("detail") or "")
    else:
        text = str(body or "")
    message = text or f"HTTP {status_code}"

    if status_code == 404 and any(pattern in text for pattern in not_found_patterns):
        return RemoteConversationInvalid(message, status_code=status_code, details=body)
    if is_retriable_status(status_code):
        return RemoteTransient(message, status_code=status_code, details=body)
    return RemoteRejected(message, status_code=status_code, details=body)


def translate_error(
    exc: BaseException,
    retry_count: int = 0,
    workflow_active: bool = False,
    node_count: int = 0
) -> DeliveryError:
    """
    Translate any delivery failure into one user-facing DeliveryError.

    Args:
        exc: The failure that ended delivery
        retry_count: Retries performed before giving up
        workflow_active: Whether a workflow was in progress (affects the timeout text)
        node_count: Number of workflow nodes observed so far

    Returns:
        DeliveryError carrying the category and a readable message
    """
    if isinstance(exc, DeliveryError):
        return exc

    status_code = getattr(exc, "status_code", None)

    if isinstance(exc, NetworkFailure):
        category = ErrorCategory.CONNECTIVITY
        message = "Network connection failed, please check your connection and retry"
    elif isinstance(exc, RequestTimeout):
        category = ErrorCategory.TIMEOUT
        if workflow_active:
            message = (
                f"Workflow timed out while {node_count} node(s) were in progress. "
                "Complex workflows may need more time; please simplify the request or retry later"
            )
        else:
            message = "Request timed out, please retry later"
    elif isinstance(exc, RemoteConversationInvalid):
        category = ErrorCategory.NOT_FOUND
        message = "The conversation no longer exists, please start a new conversation"
    elif isinstance(exc, RemoteTransient):
        category = ErrorCategory.SERVER
        message = f"Server error ({status_code}), please retry later"
    elif isinstance(exc, RemoteRejected) and status_code in (401, 403):
        category = ErrorCategory.AUTH
        message = "Authentication failed or access denied"
    elif isinstance(exc, RemoteRejected) and status_code == 404:
        category = ErrorCategory.NOT_FOUND
        message = "Service not available"
    elif isinstance(exc, StreamDecodeFailure):
        category = ErrorCategory.GENERIC
        message = f"Unable to process the server response: {exc}"
    else:
        category = ErrorCategory.GENERIC
        message = f"Error: {exc}"

    return DeliveryError(
        category=category,
        message=message,
        retry_count=retry_count,
        status_code=status_code,
        cause=exc
    )
