"""Delivery of one user message: transport selection, deadline, retry and fallback."""

import asyncio
import uuid
from typing import Any, Dict, Optional

from pydantic import ValidationError

from ..config import Settings, settings as default_settings
from ..exceptions import (
    ChatflowError,
    DeliveryError,
    RemoteConversationInvalid,
    RemoteTransient,
    RequestTimeout,
    StreamDecodeFailure,
    SubmissionInProgressError,
    translate_error
)
from ..models.chat import BlockingResponse, ChatRequest, ResponseMode, UsageRecord
from ..models.message import Message, MessageRole
from ..models.session import ErrorEntry
from ..utils.field_paths import first_non_empty
from ..utils.logger import get_app_logger
from .billing import BillingCollaborator, report_usage
from .session_store import ConversationSessionStore
from .stream_decoder import DecodeResult, StreamDecoder
from .workflow_client import WorkflowServiceClient


class DeliveryController:
    """
    Sends one user query and obtains exactly one assistant response.

    Only one send may be outstanding per session; a second one is rejected
    with SubmissionInProgressError until the first settles.
    """

    def __init__(
        self,
        client: WorkflowServiceClient,
        store: ConversationSessionStore,
        decoder: StreamDecoder,
        settings: Settings = default_settings,
        billing: Optional[BillingCollaborator] = None,
        inputs: Optional[Dict[str, Any]] = None
    ):
        self.client = client
        self.store = store
        self.decoder = decoder
        self.settings = settings
        self.billing = billing
        self.inputs = inputs or {}
        self.logger = get_app_logger()
        self._in_flight = False

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    async def send(self, text: str, append_user_message: bool = True) -> Message:
        """
        Deliver a user message.

        Args:
            text: Message text
            append_user_message: False when resubmitting a message already in the transcript

        Returns:
            The assistant message holding the reply

        Raises:
            SubmissionInProgressError: Another send is outstanding
            DeliveryError: Delivery gave up; the same error is recorded in the session store
        """
        if self._in_flight:
            raise SubmissionInProgressError("A message is already being delivered")

        self._in_flight = True
        try:
            return await self._deliver(text, append_user_message)
        finally:
            self._in_flight = False
            self.store.set_loading(False)

    async def _deliver(self, text: str, append_user_message: bool) -> Message:
        self.store.set_error(None)
        self.store.set_retry_count(0)
        self.store.set_loading(True)

        known_id = self.store.known_conversation_id()
        # Declared new only when nothing ties this send to an earlier turn
        is_new = not self.store.messages and not known_id
        conversation_id = None if is_new else known_id
        self.logger.info(
            f"Sending message (new_conversation={is_new}, conversation_id={conversation_id})"
        )

        if append_user_message:
            self.store.append_or_replace_message(
                f"user-{uuid.uuid4().hex}", role=MessageRole.USER, content=text
            )
        reply_id = f"assistant-{uuid.uuid4().hex}"

        budget = self.settings.get_retry_budget()
        retries = 0
        while True:
            try:
                result = await self._attempt(text, conversation_id, reply_id)
                break
            except RemoteConversationInvalid as e:
                if retries >= budget:
                    raise self._fail(e, retries) from e
                retries += 1
                self.store.set_retry_count(retries)
                self.logger.warning(
                    f"Conversation {conversation_id} not found, restarting as new "
                    f"(retry {retries}/{budget})"
                )
                self.store.clear_conversation_id()
                conversation_id = None
            except RemoteTransient as e:
                if retries >= budget:
                    raise self._fail(e, retries) from e
                delay = self.settings.get_backoff_delay(retries)
                retries += 1
                self.store.set_retry_count(retries)
                self.logger.warning(
                    f"Transient failure ({e.status_code}): {e.message}; "
                    f"retry {retries}/{budget} in {delay:.1f}s"
                )
                await asyncio.sleep(delay)
            except ChatflowError as e:
                raise self._fail(e, retries) from e

        self.store.set_retry_count(0)
        # Outside the deadline: a slow billing backend must not time out a delivered reply
        await report_usage(self.billing, result.usage)
        reply = self.store.get_message(reply_id)
        if reply is None:
            reply = self.store.append_or_replace_message(
                reply_id, role=MessageRole.ASSISTANT, content=result.answer
            )
        return reply

    async def _attempt(self, text: str, conversation_id: Optional[str], reply_id: str) -> DecodeResult:
        """One request, plus at most one blocking fallback when the stream fails."""
        mode = ResponseMode.STREAMING if self.settings.enable_streaming else ResponseMode.BLOCKING
        request = self._build_request(text, conversation_id, mode)
        try:
            return await self._with_deadline(self._request(request, reply_id))
        except StreamDecodeFailure as e:
            # Never restart here: reuse whatever id the stream already taught us
            fallback_id = self.store.conversation_id or conversation_id
            self.logger.warning(
                f"Stream failed ({e.message}); falling back to blocking mode with "
                f"conversation_id={fallback_id}"
            )
            fallback = self._build_request(text, fallback_id, ResponseMode.BLOCKING)
            try:
                return await self._with_deadline(self._request(fallback, reply_id))
            except ChatflowError as fallback_error:
                raise StreamDecodeFailure(
                    f"Streaming failed ({e.message}) and blocking fallback failed ({fallback_error.message})"
                ) from fallback_error

    async def _with_deadline(self, operation) -> DecodeResult:
        timeout = self.settings.get_timeout(self.store.workflow.has_active_workflow())
        try:
            return await asyncio.wait_for(operation, timeout=timeout)
        except asyncio.TimeoutError as e:
            raise RequestTimeout(f"No response within {timeout:.0f}s") from e

    async def _request(self, request: ChatRequest, reply_id: str) -> DecodeResult:
        async with self.client.open_chat(request) as response:
            if response.is_streamable:
                return await self.decoder.decode(response.aiter_bytes(), reply_id)
            data = await response.json()
        return await self._apply_blocking(data, reply_id)

    async def _apply_blocking(self, data: Dict[str, Any], reply_id: str) -> DecodeResult:
        """Feed a blocking answer through the same message path streaming uses."""
        try:
            body = BlockingResponse.model_validate(data)
        except ValidationError as e:
            raise StreamDecodeFailure(f"Invalid blocking response: {e}") from e

        self.store.set_conversation_id(body.conversation_id)

        model, _ = first_non_empty(data, self.settings.model_field_paths)
        metadata: Dict[str, Any] = {}
        if body.message_id:
            metadata["message_id"] = body.message_id
        if model:
            metadata["model"] = model
        self.store.append_or_replace_message(
            reply_id, role=MessageRole.ASSISTANT, content=body.answer, metadata=metadata
        )

        usage = None
        usage_data = body.metadata.get("usage")
        if isinstance(usage_data, dict):
            try:
                usage = UsageRecord.from_usage(
                    usage_data,
                    model=model,
                    conversation_id=self.store.conversation_id,
                    message_id=body.message_id
                )
            except ValidationError as e:
                self.logger.warning(f"Ignoring unreadable usage {usage_data!r}: {e}")

        self.logger.info(
            f"Blocking response applied: {len(body.answer)} chars, "
            f"conversation={self.store.conversation_id}"
        )
        return DecodeResult(
            answer=body.answer,
            message_id=body.message_id,
            conversation_id=self.store.conversation_id,
            model=model,
            usage=usage,
            terminated=True
        )

    def _build_request(self, text: str, conversation_id: Optional[str], mode: ResponseMode) -> ChatRequest:
        return ChatRequest(
            query=text,
            user=self.store.participant_id or "",
            conversation_id=conversation_id,
            response_mode=mode,
            inputs=dict(self.inputs)
        )

    def _fail(self, exc: ChatflowError, retries: int) -> DeliveryError:
        workflow = self.store.workflow
        error = translate_error(
            exc,
            retry_count=retries,
            workflow_active=workflow.has_active_workflow(),
            node_count=len(workflow.nodes)
        )
        self.store.set_error(ErrorEntry(category=error.category, message=error.message, retry_count=retries))
        self.logger.error(f"Delivery failed after {retries} retries [{error.category.value}]: {exc}")
        return error
