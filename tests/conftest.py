"""Shared fixtures for session tests."""

import httpx
import pytest

from chatflow.config import Settings
from chatflow.db.connection import DatabaseConnection
from chatflow.db.repositories.session_state import InMemorySessionStateRepository
from chatflow.services.chat_session import ChatSession
from chatflow.services.history_store import DuckDBHistoryStore
from chatflow.services.workflow_client import WorkflowServiceClient

from fakes import FakeWorkflowService, RecordingBilling


@pytest.fixture
def test_settings():
    """Settings with no backoff delay, short timeouts and no log file."""
    return Settings(
        _env_file=None,
        workflow_api_base="http://workflow.test",
        workflow_api_key="test-key",
        backoff_base=0.0,
        backoff_max=0.0,
        request_timeout=5.0,
        workflow_timeout=5.0,
        log_level="WARNING",
        log_file=None,
        state_db_path=":memory:",
        history_db_path=":memory:"
    )


@pytest.fixture
def fake_service():
    return FakeWorkflowService()


@pytest.fixture
def state_repo():
    return InMemorySessionStateRepository()


@pytest.fixture
def billing():
    return RecordingBilling()


@pytest.fixture
async def workflow_client(fake_service, test_settings):
    """WorkflowServiceClient bound to the fake service over ASGI."""
    http_client = httpx.AsyncClient(
        transport=httpx.ASGITransport(app=fake_service.app),
        base_url="http://workflow.test"
    )
    yield WorkflowServiceClient(test_settings, client=http_client)
    await http_client.aclose()


@pytest.fixture
def history_db():
    """Provide a fresh in-memory history database."""
    db = DatabaseConnection(":memory:")
    yield db
    db.close()


@pytest.fixture
def chat_session(state_repo, workflow_client, billing, test_settings, history_db):
    """A started ChatSession over the fake service and in-memory stores."""
    session = ChatSession(
        state_repo=state_repo,
        client=workflow_client,
        history_store=DuckDBHistoryStore(history_db),
        billing=billing,
        settings=test_settings
    )
    session.start()
    return session
