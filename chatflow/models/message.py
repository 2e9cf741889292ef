"""Transcript message models."""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Any, Iterable, List
from pydantic import BaseModel, Field


# Placeholder greeting shown by presentation layers; never part of a restored transcript
WELCOME_MESSAGE_ID = "welcome"


def utc_now() -> datetime:
    """Return current UTC time."""
    return datetime.now(timezone.utc)


class MessageRole(str, Enum):
    """Author of a transcript message."""

    USER = "user"
    ASSISTANT = "assistant"


class Message(BaseModel):
    """
    One transcript entry.

    Assistant content is mutated in place while a stream is delivering it.
    """

    id: str = Field(description="Unique identifier within the session")
    role: MessageRole = Field(description="Message role (user/assistant)")
    content: str = Field(default="", description="Message content")
    timestamp: datetime = Field(default_factory=utc_now, description="Message timestamp")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Service message id, usage, model")


def dump_messages(messages: Iterable[Message]) -> str:
    """Serialize a transcript to a JSON array string."""
    return json.dumps([message.model_dump(mode="json") for message in messages])


def load_messages(raw: str) -> List[Message]:
    """
    Deserialize a transcript written by ``dump_messages``.

    Welcome placeholders are dropped.

    Raises:
        ValueError: The string is not a valid serialized transcript
    """
    items = json.loads(raw)
    if not isinstance(items, list):
        raise ValueError("Serialized transcript is not a list")
    messages = [Message.model_validate(item) for item in items]
    return [message for message in messages if message.id != WELCOME_MESSAGE_ID]
