"""Tests for usage reporting."""

import httpx
import pytest
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from chatflow.models.chat import UsageRecord
from chatflow.services.billing import (
    HttpBillingClient,
    LoggingBillingCollaborator,
    create_billing_collaborator,
    report_usage,
    usage_points
)

from fakes import RecordingBilling


class FakeBillingBackend:
    def __init__(self, status: int = 200):
        self.received = []
        self.app = FastAPI()

        @self.app.post("/usage")
        async def usage(request: Request):
            self.received.append(await request.json())
            return JSONResponse(status_code=status, content={"ok": status < 400})


@pytest.fixture
def record():
    return UsageRecord(model="gpt-4o", total_tokens=25, conversation_id="c1", message_id="m1")


async def _billing_client(backend, test_settings):
    test_settings.billing_endpoint = "http://billing.test/usage"
    client = httpx.AsyncClient(transport=httpx.ASGITransport(app=backend.app))
    return HttpBillingClient(test_settings, client=client), client


class TestUsagePoints:
    """SUT: usage_points"""

    @pytest.mark.parametrize("tokens, points", [(1, 1), (10, 1), (11, 2), (25, 3), (0, 0)])
    def test_rounds_up(self, tokens, points):
        assert usage_points(tokens) == points


class TestHttpBillingClient:
    """Tests for HttpBillingClient"""

    async def test_posts_record_with_points(self, record, test_settings):
        backend = FakeBillingBackend()
        billing, client = await _billing_client(backend, test_settings)

        await billing.process_usage(record)
        await client.aclose()

        assert backend.received[0]["total_tokens"] == 25
        assert backend.received[0]["points"] == 3
        assert backend.received[0]["model"] == "gpt-4o"

    async def test_rejection_raises(self, record, test_settings):
        backend = FakeBillingBackend(status=402)
        billing, client = await _billing_client(backend, test_settings)
        with pytest.raises(httpx.HTTPStatusError):
            await billing.process_usage(record)
        await client.aclose()


class TestReportUsage:
    """SUT: report_usage"""

    async def test_forwards_record(self, record):
        billing = RecordingBilling()
        await report_usage(billing, record)
        assert billing.records == [record]

    async def test_zero_usage_skipped(self):
        billing = RecordingBilling()
        await report_usage(billing, UsageRecord(total_tokens=0))
        await report_usage(billing, None)
        assert billing.records == []

    async def test_failure_swallowed(self, record, test_settings):
        await report_usage(RecordingBilling(fail=True), record)

        backend = FakeBillingBackend(status=500)
        billing, client = await _billing_client(backend, test_settings)
        await report_usage(billing, record)
        await client.aclose()
        assert len(backend.received) == 1

    async def test_no_collaborator(self, record):
        await report_usage(None, record)


class TestCreateBillingCollaborator:
    """SUT: create_billing_collaborator"""

    async def test_logging_without_endpoint(self, test_settings):
        assert isinstance(create_billing_collaborator(test_settings), LoggingBillingCollaborator)

    async def test_http_with_endpoint(self, test_settings):
        test_settings.billing_endpoint = "http://billing.test/usage"
        billing = create_billing_collaborator(test_settings)
        assert isinstance(billing, HttpBillingClient)
        await billing.close()
