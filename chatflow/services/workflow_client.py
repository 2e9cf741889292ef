"""HTTP client for the remote workflow chat service."""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from ..config import Settings, settings as default_settings
from ..exceptions import (
    NetworkFailure,
    RequestTimeout,
    StreamDecodeFailure,
    classify_http_error
)
from ..models.chat import ChatRequest
from ..utils.logger import get_app_logger


EVENT_STREAM_CONTENT_TYPE = "text/event-stream"


class ChatResponse:
    """A successful response from the chat endpoint, read either as a stream or as JSON."""

    def __init__(self, response: httpx.Response):
        self._response = response

    @property
    def status_code(self) -> int:
        return self._response.status_code

    @property
    def is_streamable(self) -> bool:
        """True when the body is an event stream."""
        content_type = self._response.headers.get("content-type", "")
        return content_type.split(";")[0].strip().lower() == EVENT_STREAM_CONTENT_TYPE

    async def aiter_bytes(self) -> AsyncIterator[bytes]:
        """
        Iterate over raw body chunks.

        Raises:
            StreamDecodeFailure: The connection broke while reading the body
        """
        try:
            async for chunk in self._response.aiter_bytes():
                yield chunk
        except httpx.HTTPError as e:
            raise StreamDecodeFailure(f"Stream read failed: {e}") from e

    async def json(self) -> Dict[str, Any]:
        """
        Read the whole body and decode it as a JSON object.

        Raises:
            StreamDecodeFailure: The body is not a JSON object
        """
        try:
            await self._response.aread()
            data = self._response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise StreamDecodeFailure(f"Invalid response body: {e}") from e
        if not isinstance(data, dict):
            raise StreamDecodeFailure("Response body is not a JSON object")
        return data


class WorkflowServiceClient:
    """Client for the workflow service chat endpoint."""

    def __init__(
        self,
        settings: Settings = default_settings,
        client: Optional[httpx.AsyncClient] = None
    ):
        """
        Initialize the client.

        Args:
            settings: Application settings
            client: Pre-built httpx client (tests pass one bound to an ASGI app)
        """
        self.settings = settings
        self.logger = get_app_logger()
        self._owns_client = client is None

        if client is None:
            headers = {"Content-Type": "application/json"}
            if settings.workflow_api_key:
                headers["Authorization"] = f"Bearer {settings.workflow_api_key}"
            client = httpx.AsyncClient(
                base_url=settings.workflow_api_base,
                headers=headers,
                timeout=httpx.Timeout(settings.workflow_timeout, connect=10.0)
            )
        self.client = client

    @asynccontextmanager
    async def open_chat(self, request: ChatRequest) -> AsyncIterator[ChatResponse]:
        """
        POST a chat request and yield the successful response.

        Non-2xx responses are read and classified before the context is entered.

        Args:
            request: Outbound chat request

        Raises:
            RemoteError: The service answered with a non-success status
            RequestTimeout: httpx gave up waiting
            NetworkFailure: The service could not be reached
        """
        payload = request.model_dump(mode="json")
        self.logger.debug(
            f"POST {self.settings.chat_endpoint} mode={request.response_mode.value} "
            f"conversation_id={request.conversation_id}"
        )

        try:
            async with self.client.stream("POST", self.settings.chat_endpoint, json=payload) as response:
                if response.status_code >= 400:
                    await response.aread()
                    try:
                        body = response.json()
                    except ValueError:
                        body = response.text
                    error = classify_http_error(
                        response.status_code, body, self.settings.conversation_not_found_patterns
                    )
                    self.logger.warning(
                        f"Workflow service returned {response.status_code}: {error.message}"
                    )
                    raise error
                yield ChatResponse(response)
        except httpx.TimeoutException as e:
            raise RequestTimeout(f"Workflow service timed out: {e}") from e
        except httpx.TransportError as e:
            raise NetworkFailure(f"Workflow service unreachable: {e}") from e

    async def close(self):
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
