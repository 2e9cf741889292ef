"""Tests for HistoryRepository."""

import pytest
from datetime import datetime, timedelta, timezone

from chatflow.db.connection import DatabaseConnection
from chatflow.db.repositories.history import HistoryRepository
from chatflow.db.database_models.history import HistoryConversationDO, HistoryMessageDO


@pytest.fixture
def db_conn(tmp_path):
    """Provide a fresh database connection."""
    db = DatabaseConnection(str(tmp_path / "history.db"))
    yield db
    db.close()


@pytest.fixture
def repo(db_conn):
    """Provide a HistoryRepository."""
    return HistoryRepository(db_conn.conn)


def _make_conv(**overrides):
    """Factory for HistoryConversationDO with sensible defaults."""
    defaults = dict(id="h1", title="Hello", last_message="Hi!", message_count=2, external_id="ext-1")
    defaults.update(overrides)
    return HistoryConversationDO(**defaults)


def _make_messages(conversation_id="h1"):
    return [
        HistoryMessageDO(conversation_id=conversation_id, position=0, message_id="u1", role="user", content="Hello"),
        HistoryMessageDO(conversation_id=conversation_id, position=1, message_id="a1", role="assistant",
                         content="Hi!", metadata={"model": "gpt-4o"}),
    ]


class TestHistoryRepository:
    """Tests for HistoryRepository."""

    class TestSave:
        """SUT: HistoryRepository.save"""

        def test_fields_persisted(self, repo):
            """Saved conversation should be retrievable with all fields."""
            repo.save(_make_conv(workflow_state='{"is_workflow": true}'), _make_messages())
            result = repo.get("h1")
            assert result.title == "Hello"
            assert result.message_count == 2
            assert result.external_id == "ext-1"
            assert result.workflow_state == '{"is_workflow": true}'
            assert result.last_message_time.tzinfo is not None

        def test_replaces_existing(self, repo):
            """Saving the same id again should replace row and messages."""
            repo.save(_make_conv(), _make_messages())
            repo.save(_make_conv(title="Renamed", message_count=1), _make_messages()[:1])
            assert repo.get("h1").title == "Renamed"
            assert len(repo.get_messages("h1")) == 1
            assert len(repo.list_all()) == 1

    class TestGetMessages:
        """SUT: HistoryRepository.get_messages"""

        def test_transcript_order_and_metadata(self, repo):
            repo.save(_make_conv(), list(reversed(_make_messages())))
            messages = repo.get_messages("h1")
            assert [m.message_id for m in messages] == ["u1", "a1"]
            assert messages[1].metadata == {"model": "gpt-4o"}

    class TestListAll:
        """SUT: HistoryRepository.list_all"""

        def test_ordered_by_updated_at_desc(self, repo):
            """Results should be ordered by updated_at DESC."""
            now = datetime.now(timezone.utc)
            repo.save(_make_conv(id="h1", updated_at=now - timedelta(hours=1)), [])
            repo.save(_make_conv(id="h2", updated_at=now), [])
            assert [c.id for c in repo.list_all()] == ["h2", "h1"]

    class TestDelete:
        """SUT: HistoryRepository.delete"""

        def test_removes_row_and_messages(self, repo):
            repo.save(_make_conv(), _make_messages())
            assert repo.delete("h1") is True
            assert repo.get("h1") is None
            assert repo.get_messages("h1") == []

        def test_not_found(self, repo):
            assert repo.delete("missing") is False
