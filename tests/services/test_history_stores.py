"""Tests for the DuckDB and REST history stores."""

import httpx
import pytest
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response

from chatflow.exceptions import PersistenceFailure
from chatflow.models.message import Message, MessageRole
from chatflow.models.workflow import NodeStatus, WorkflowNode, WorkflowState
from chatflow.services.history_store import (
    DuckDBHistoryStore,
    RestHistoryStore,
    create_history_store
)


def _messages():
    return [
        Message(id="u1", role=MessageRole.USER, content="Plan a trip"),
        Message(id="a1", role=MessageRole.ASSISTANT, content="Where to?", metadata={"model": "gpt-4o"})
    ]


def _workflow():
    return WorkflowState(
        is_workflow=True,
        nodes=[WorkflowNode(node_id="n1", node_name="Plan", status=NodeStatus.COMPLETED)],
        total_nodes=1,
        completed_nodes=1
    )


def _eq(value):
    return value[3:] if value and value.startswith("eq.") else value


class FakePostgrest:
    """In-memory stand-in for the chat_conversations / chat_messages tables."""

    def __init__(self):
        self.conversations = {}
        self.messages = []
        self.broken = False
        self.app = FastAPI()
        app = self.app

        @app.middleware("http")
        async def outage(request: Request, call_next):
            if self.broken:
                return JSONResponse(status_code=500, content={"message": "database unavailable"})
            return await call_next(request)

        @app.get("/rest/v1/chat_conversations")
        async def list_conversations(request: Request):
            item_id = _eq(request.query_params.get("id"))
            rows = [row for row in self.conversations.values() if item_id is None or row["id"] == item_id]
            return sorted(rows, key=lambda row: row["updated_at"], reverse=True)

        @app.post("/rest/v1/chat_conversations")
        async def create_conversation(request: Request):
            row = await request.json()
            row["id"] = str(len(self.conversations) + 1)
            self.conversations[row["id"]] = row
            return JSONResponse(status_code=201, content=[row])

        @app.patch("/rest/v1/chat_conversations")
        async def update_conversation(request: Request):
            row = self.conversations[_eq(request.query_params["id"])]
            row.update(await request.json())
            return [row]

        @app.delete("/rest/v1/chat_conversations")
        async def delete_conversation(request: Request):
            self.conversations.pop(_eq(request.query_params["id"]), None)
            return Response(status_code=204)

        @app.get("/rest/v1/chat_messages")
        async def list_messages(request: Request):
            conversation_id = _eq(request.query_params["conversation_id"])
            rows = [m for m in self.messages if m["conversation_id"] == conversation_id]
            return sorted(rows, key=lambda m: m["created_at"])

        @app.post("/rest/v1/chat_messages")
        async def create_messages(request: Request):
            self.messages.extend(await request.json())
            return Response(status_code=201)

        @app.delete("/rest/v1/chat_messages")
        async def delete_messages(request: Request):
            conversation_id = _eq(request.query_params["conversation_id"])
            self.messages = [m for m in self.messages if m["conversation_id"] != conversation_id]
            return Response(status_code=204)


@pytest.fixture
def postgrest():
    return FakePostgrest()


@pytest.fixture
async def rest_store(postgrest, test_settings):
    client = httpx.AsyncClient(
        transport=httpx.ASGITransport(app=postgrest.app),
        base_url="http://history.test"
    )
    yield RestHistoryStore(test_settings, client=client)
    await client.aclose()


@pytest.fixture
def duckdb_store(history_db):
    return DuckDBHistoryStore(history_db)


class TestDuckDBHistoryStore:
    """Tests for DuckDBHistoryStore"""

    async def test_save_and_load(self, duckdb_store):
        item_id = await duckdb_store.save_conversation(
            "Plan a trip", _messages(), _workflow(), external_id="conv-1"
        )

        detail = await duckdb_store.load_conversation_detail(item_id)

        assert detail.title == "Plan a trip"
        assert detail.external_id == "conv-1"
        assert [m.id for m in detail.messages] == ["u1", "a1"]
        assert detail.messages[1].metadata == {"model": "gpt-4o"}
        assert detail.workflow_state.completed_nodes == 1

    async def test_listing_omits_messages(self, duckdb_store):
        await duckdb_store.save_conversation("Plan a trip", _messages(), None)
        items = await duckdb_store.list_conversations()
        assert len(items) == 1
        assert items[0].messages is None
        assert items[0].message_count == 2
        assert items[0].last_message == "Where to?"

    async def test_save_over_existing_item(self, duckdb_store):
        item_id = await duckdb_store.save_conversation("Plan a trip", _messages()[:1], None)
        assert await duckdb_store.save_conversation("Plan a trip", _messages(), None, item_id=item_id) == item_id
        items = await duckdb_store.list_conversations()
        assert len(items) == 1
        assert items[0].message_count == 2

    async def test_delete(self, duckdb_store):
        item_id = await duckdb_store.save_conversation("Plan a trip", _messages(), None)
        await duckdb_store.delete_conversation(item_id)
        assert await duckdb_store.load_conversation_detail(item_id) is None


class TestRestHistoryStore:
    """Tests for RestHistoryStore against a fake PostgREST backend"""

    async def test_save_and_load(self, rest_store, postgrest):
        item_id = await rest_store.save_conversation(
            "Plan a trip", _messages(), _workflow(), external_id="conv-1"
        )

        assert postgrest.conversations[item_id]["dify_conversation_id"] == "conv-1"
        detail = await rest_store.load_conversation_detail(item_id)
        assert detail.external_id == "conv-1"
        assert [m.content for m in detail.messages] == ["Plan a trip", "Where to?"]
        assert detail.workflow_state.get_node("n1").status == NodeStatus.COMPLETED

    async def test_update_replaces_messages(self, rest_store, postgrest):
        item_id = await rest_store.save_conversation("Plan a trip", _messages(), None)
        extra = _messages() + [Message(id="u2", role=MessageRole.USER, content="Lisbon")]

        assert await rest_store.save_conversation("Plan a trip", extra, None, item_id=item_id) == item_id

        assert len(postgrest.conversations) == 1
        assert postgrest.conversations[item_id]["message_count"] == 3
        assert len(postgrest.messages) == 3

    async def test_list(self, rest_store):
        await rest_store.save_conversation("First", _messages(), None, external_id="c1")
        items = await rest_store.list_conversations()
        assert [item.title for item in items] == ["First"]
        assert items[0].external_id == "c1"

    async def test_missing_item(self, rest_store):
        assert await rest_store.load_conversation_detail("404") is None

    async def test_delete(self, rest_store, postgrest):
        item_id = await rest_store.save_conversation("Plan a trip", _messages(), None)
        await rest_store.delete_conversation(item_id)
        assert postgrest.conversations == {}
        assert postgrest.messages == []

    async def test_backend_failure(self, rest_store, postgrest):
        postgrest.broken = True
        with pytest.raises(PersistenceFailure):
            await rest_store.list_conversations()


class TestCreateHistoryStore:
    """SUT: create_history_store"""

    async def test_duckdb_default(self, test_settings):
        store = create_history_store(test_settings)
        assert isinstance(store, DuckDBHistoryStore)
        await store.close()

    def test_rest_requires_base_url(self, test_settings):
        test_settings.history_backend = "rest"
        with pytest.raises(ValueError):
            create_history_store(test_settings)

    async def test_rest(self, test_settings):
        test_settings.history_backend = "rest"
        test_settings.history_api_base = "http://history.test"
        store = create_history_store(test_settings)
        assert isinstance(store, RestHistoryStore)
        await store.close()
