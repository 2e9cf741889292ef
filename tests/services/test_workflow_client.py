"""Tests for WorkflowServiceClient."""

import httpx
import pytest

from chatflow.exceptions import (
    NetworkFailure,
    RemoteConversationInvalid,
    RemoteRejected,
    RemoteTransient,
    RequestTimeout,
    StreamDecodeFailure
)
from chatflow.models.chat import ChatRequest, ResponseMode
from chatflow.services.workflow_client import WorkflowServiceClient

from fakes import sse


def _request(**overrides):
    fields = dict(query="Hello", user="anonymous-1", response_mode=ResponseMode.STREAMING)
    fields.update(overrides)
    return ChatRequest(**fields)


def _client_raising(error_cls, test_settings):
    def handler(request):
        raise error_cls("boom", request=request)

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://workflow.test")
    return WorkflowServiceClient(test_settings, client=http_client)


class TestWorkflowServiceClient:
    """Tests for WorkflowServiceClient.open_chat"""

    class TestSuccess:
        """Successful responses."""

        async def test_event_stream(self, workflow_client, fake_service):
            fake_service.stream(sse({"event": "message", "answer": "Hi"}))
            async with workflow_client.open_chat(_request()) as response:
                assert response.status_code == 200
                assert response.is_streamable is True
                body = b"".join([chunk async for chunk in response.aiter_bytes()])
            assert b'"answer": "Hi"' in body

        async def test_json_body(self, workflow_client, fake_service):
            fake_service.json({"answer": "Hi", "conversation_id": "c1"})
            async with workflow_client.open_chat(_request(response_mode=ResponseMode.BLOCKING)) as response:
                assert response.is_streamable is False
                data = await response.json()
            assert data["conversation_id"] == "c1"

        async def test_non_object_body(self, workflow_client, fake_service):
            fake_service.json(["not", "an", "object"])
            async with workflow_client.open_chat(_request()) as response:
                with pytest.raises(StreamDecodeFailure):
                    await response.json()

        async def test_request_payload(self, workflow_client, fake_service):
            fake_service.json({"answer": ""})
            async with workflow_client.open_chat(_request(conversation_id="c1", inputs={"lang": "en"})):
                pass
            sent = fake_service.requests[0]
            assert sent["conversation_id"] == "c1"
            assert sent["inputs"] == {"lang": "en"}
            assert sent["response_mode"] == "streaming"

    class TestErrors:
        """Non-success statuses and transport failures."""

        @pytest.mark.parametrize("status, message, expected", [
            (404, "Conversation Not Exists.", RemoteConversationInvalid),
            (404, "no such route", RemoteRejected),
            (400, "bad request", RemoteRejected),
            (401, "invalid key", RemoteRejected),
            (429, "slow down", RemoteTransient),
            (503, "unavailable", RemoteTransient),
        ])
        async def test_status_classified(self, workflow_client, fake_service, status, message, expected):
            fake_service.fail(status, message)
            with pytest.raises(expected) as exc_info:
                async with workflow_client.open_chat(_request()):
                    pass
            assert exc_info.value.status_code == status
            assert exc_info.value.message == message

        async def test_connection_refused(self, test_settings):
            client = _client_raising(httpx.ConnectError, test_settings)
            with pytest.raises(NetworkFailure):
                async with client.open_chat(_request()):
                    pass
            await client.client.aclose()

        async def test_transport_timeout(self, test_settings):
            client = _client_raising(httpx.ReadTimeout, test_settings)
            with pytest.raises(RequestTimeout):
                async with client.open_chat(_request()):
                    pass
            await client.client.aclose()

    class TestLifecycle:
        """Client ownership."""

        async def test_owned_client_closed(self, test_settings):
            async with WorkflowServiceClient(test_settings) as client:
                assert client.client.headers["Authorization"] == "Bearer test-key"
            assert client.client.is_closed

        async def test_borrowed_client_left_open(self, workflow_client):
            await workflow_client.close()
            assert not workflow_client.client.is_closed
