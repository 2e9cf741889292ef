"""Decoding of workflow event streams into session updates."""

from dataclasses import dataclass, field
from typing import Any, AsyncIterable, Dict, Optional

from pydantic import ValidationError

from ..config import Settings, settings as default_settings
from ..exceptions import StreamDecodeFailure
from ..models.chat import StreamEvent, StreamEventType, TERMINAL_EVENTS, TOKEN_EVENTS, UsageRecord, token_count
from ..utils.field_paths import first_non_empty
from ..utils.logger import get_app_logger
from ..utils.stream_parser import EventFrameParser
from .session_store import ConversationSessionStore
from .workflow_tracker import WorkflowProgressTracker


@dataclass
class DecodeResult:
    """What one stream delivered."""

    answer: str = ""
    message_id: Optional[str] = None
    conversation_id: Optional[str] = None
    model: Optional[str] = None
    usage: Optional[UsageRecord] = None
    event_count: int = 0
    terminated: bool = False
    # usage totals from the terminal event, or summed from node execution metadata
    usage_data: Dict[str, Any] = field(default_factory=dict)
    node_tokens: int = 0


class StreamDecoder:
    """
    Turns a raw event-frame byte stream into session and workflow updates.

    Malformed frames are skipped. An error event is remembered and raised
    only after the stream ends, so content already delivered is kept.
    """

    def __init__(
        self,
        store: ConversationSessionStore,
        tracker: WorkflowProgressTracker,
        settings: Settings = default_settings
    ):
        self.store = store
        self.tracker = tracker
        self.settings = settings
        self.logger = get_app_logger()

    async def decode(self, chunks: AsyncIterable[bytes], reply_id: str) -> DecodeResult:
        """
        Consume a stream until the reader signals completion.

        Args:
            chunks: Raw body chunks
            reply_id: Local id of the assistant message receiving token deltas

        Returns:
            DecodeResult with the assembled answer and the usage record to report

        Raises:
            StreamDecodeFailure: The stream carried an error event or could not be read
        """
        parser = EventFrameParser()
        result = DecodeResult()
        error_text: Optional[str] = None

        async for chunk in chunks:
            for frame in parser.feed(chunk):
                captured = self._handle_frame(frame, reply_id, result)
                if captured is not None and error_text is None:
                    error_text = captured

        parser.discard_pending()
        result.conversation_id = self.store.conversation_id
        self._annotate_reply(reply_id, result)

        if error_text is not None:
            self.logger.warning(f"Stream reported an error after {result.event_count} events: {error_text}")
            raise StreamDecodeFailure(error_text, details={"answer": result.answer})

        if parser.skipped_frames:
            self.logger.warning(f"Skipped {parser.skipped_frames} malformed frame(s)")

        result.usage = self._build_usage(result)
        self.logger.info(
            f"Stream completed: {result.event_count} events, {len(result.answer)} chars, "
            f"conversation={result.conversation_id}"
        )
        return result

    def _handle_frame(self, frame: Dict[str, Any], reply_id: str, result: DecodeResult) -> Optional[str]:
        """Apply one frame; return error text for error events."""
        try:
            event = StreamEvent.model_validate(frame)
        except ValidationError as e:
            self.logger.warning(f"Skipping frame without a valid event: {e.errors()[:1]}")
            return None

        result.event_count += 1
        # The only place a conversation id is learned mid-stream
        self.store.set_conversation_id(event.conversation_id)
        if event.message_id:
            result.message_id = event.message_id

        event_type = event.event_type
        if event_type in TOKEN_EVENTS:
            if event.answer:
                result.answer += event.answer
                self.store.append_content(reply_id, event.answer)
        elif event_type == StreamEventType.NODE_STARTED:
            self.tracker.node_started(event.data)
        elif event_type == StreamEventType.NODE_FINISHED:
            self.tracker.node_finished(event.data)
            self._collect_node_metadata(frame, event, result)
        elif event_type == StreamEventType.ERROR:
            return event.message or str(frame.get("error") or "Stream error")
        elif event_type in TERMINAL_EVENTS:
            result.terminated = True
            usage = event.metadata.get("usage") or event.data.get("usage")
            if isinstance(usage, dict):
                result.usage_data = usage
            if result.model is None:
                result.model, _ = first_non_empty(frame, self.settings.model_field_paths)
        else:
            self.logger.debug(f"Ignoring stream event {event.event}")
        return None

    def _collect_node_metadata(self, frame: Dict[str, Any], event: StreamEvent, result: DecodeResult) -> None:
        model, path = first_non_empty(frame, self.settings.model_field_paths)
        if model:
            result.model = model
            self.logger.debug(f"Model {model} found at {path}")
        execution = event.data.get("execution_metadata")
        if isinstance(execution, dict):
            result.node_tokens += token_count(execution.get("total_tokens"))

    def _annotate_reply(self, reply_id: str, result: DecodeResult) -> None:
        if self.store.get_message(reply_id) is None:
            return
        metadata: Dict[str, Any] = {}
        if result.message_id:
            metadata["message_id"] = result.message_id
        if result.model:
            metadata["model"] = result.model
        if metadata:
            self.store.append_or_replace_message(reply_id, metadata=metadata)

    def _build_usage(self, result: DecodeResult) -> Optional[UsageRecord]:
        usage_data = result.usage_data
        if not usage_data and result.node_tokens:
            usage_data = {"total_tokens": result.node_tokens}
        if not usage_data:
            return None
        try:
            return UsageRecord.from_usage(
                usage_data,
                model=result.model,
                conversation_id=result.conversation_id,
                message_id=result.message_id
            )
        except ValidationError as e:
            self.logger.warning(f"Ignoring unreadable usage {usage_data!r}: {e}")
            return None
