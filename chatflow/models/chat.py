"""Workflow service wire models."""

from enum import Enum
from typing import Optional, Dict, Any
from pydantic import BaseModel, ConfigDict, Field


class ResponseMode(str, Enum):
    """How the service should deliver the answer."""

    STREAMING = "streaming"
    BLOCKING = "blocking"


class ChatRequest(BaseModel):
    """Outbound request to the workflow service."""

    query: str = Field(description="User message text")
    user: str = Field(description="Participant identifier")
    conversation_id: Optional[str] = Field(None, description="Conversation to continue; None starts fresh")
    response_mode: ResponseMode = Field(default=ResponseMode.STREAMING, description="streaming or blocking")
    inputs: Dict[str, Any] = Field(default_factory=dict, description="Application variables")


class BlockingResponse(BaseModel):
    """Single-unit answer from the workflow service."""

    model_config = ConfigDict(extra="allow")

    answer: str = Field(default="", description="Full answer text")
    conversation_id: Optional[str] = Field(None, description="Conversation id assigned by the service")
    message_id: Optional[str] = Field(None, description="Service message id")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Usage and other metadata")


class StreamEventType(str, Enum):
    """Event discriminator values found in stream frames."""

    MESSAGE = "message"
    AGENT_MESSAGE = "agent_message"
    NODE_STARTED = "node_started"
    NODE_FINISHED = "node_finished"
    ERROR = "error"
    MESSAGE_END = "message_end"
    WORKFLOW_FINISHED = "workflow_finished"


TOKEN_EVENTS = frozenset({StreamEventType.MESSAGE, StreamEventType.AGENT_MESSAGE})
TERMINAL_EVENTS = frozenset({StreamEventType.MESSAGE_END, StreamEventType.WORKFLOW_FINISHED})


class StreamEvent(BaseModel):
    """One decoded stream frame."""

    model_config = ConfigDict(extra="allow")

    event: str = Field(description="Event discriminator")
    conversation_id: Optional[str] = Field(None, description="Conversation id, when the frame carries one")
    message_id: Optional[str] = Field(None, description="Service message id")
    answer: Optional[str] = Field(None, description="Answer fragment for token events")
    message: Optional[str] = Field(None, description="Error text for error events")
    data: Dict[str, Any] = Field(default_factory=dict, description="Node payload")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Usage metadata on terminal events")

    @property
    def event_type(self) -> Optional[StreamEventType]:
        """Typed discriminator, or None for events this client does not handle."""
        try:
            return StreamEventType(self.event)
        except ValueError:
            return None


def token_count(value: Any) -> int:
    """Read a token count from an untyped payload; anything unreadable counts as 0."""
    try:
        return max(int(float(value)), 0)
    except (TypeError, ValueError, OverflowError):
        return 0


class UsageRecord(BaseModel):
    """Usage forwarded to the billing collaborator after a reply."""

    model: str = Field(default="unknown", description="Model that produced the reply")
    model_provider: Optional[str] = Field(None, description="Model provider")
    prompt_tokens: int = Field(default=0, description="Prompt tokens")
    completion_tokens: int = Field(default=0, description="Completion tokens")
    total_tokens: int = Field(default=0, description="Total tokens")
    total_price: Optional[str] = Field(None, description="Price reported by the service")
    currency: Optional[str] = Field(None, description="Price currency")
    conversation_id: Optional[str] = Field(None, description="Conversation id")
    message_id: Optional[str] = Field(None, description="Service message id")

    @classmethod
    def from_usage(cls, usage: Dict[str, Any], **extra: Any) -> "UsageRecord":
        """Build a record from a service ``usage`` mapping plus known context."""
        prompt = token_count(usage.get("prompt_tokens"))
        completion = token_count(usage.get("completion_tokens"))
        total = token_count(usage.get("total_tokens")) or prompt + completion
        price = usage.get("total_price")
        currency = usage.get("currency")
        fields: Dict[str, Any] = dict(
            prompt_tokens=prompt,
            completion_tokens=completion,
            total_tokens=total,
            total_price=str(price) if price is not None else None,
            currency=str(currency) if currency is not None else None,
        )
        if isinstance(usage.get("model"), str) and usage["model"]:
            fields["model"] = usage["model"]
        fields.update({k: v for k, v in extra.items() if v is not None})
        return cls(**fields)
