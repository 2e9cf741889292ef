"""Tests for WorkflowProgressTracker."""

import pytest

from chatflow.db.repositories.session_state import InMemorySessionStateRepository, StateKey
from chatflow.models.session import ResolvedIdentity
from chatflow.models.workflow import NodeStatus, WorkflowState
from chatflow.services.identity import IdentityResolver
from chatflow.services.session_store import ConversationSessionStore
from chatflow.services.workflow_tracker import WorkflowProgressTracker


@pytest.fixture
def repo():
    return InMemorySessionStateRepository()


@pytest.fixture
def tracker(repo, test_settings):
    store = ConversationSessionStore(repo, IdentityResolver(repo, test_settings))
    store.load(ResolvedIdentity(participant_id="anonymous-p1"))
    return WorkflowProgressTracker(store)


def _assert_consistent(state: WorkflowState):
    assert state.completed_nodes == sum(1 for n in state.nodes if n.status == NodeStatus.COMPLETED)
    assert state.total_nodes >= len(state.nodes)


class TestWorkflowProgressTracker:
    """Tests for WorkflowProgressTracker."""

    class TestNodeStarted:
        """SUT: WorkflowProgressTracker.node_started"""

        def test_creates_running_node(self, tracker):
            node = tracker.node_started({"node_id": "n1", "title": "Research", "node_type": "llm"})
            assert node.status == NodeStatus.RUNNING
            assert node.node_name == "Research"
            assert node.node_type == "llm"
            assert node.start_time is not None
            state = tracker.state
            assert state.is_workflow is True
            assert state.current_node_id == "n1"
            assert state.total_nodes == 1

        def test_missing_node_id_ignored(self, tracker):
            assert tracker.node_started({"title": "?"}) is None
            assert tracker.state.is_workflow is False

        def test_does_not_reopen_completed_node(self, tracker):
            """A late duplicate start should not move a finished node back to running."""
            tracker.node_started({"node_id": "n1"})
            tracker.node_finished({"node_id": "n1"})
            tracker.node_started({"node_id": "n1"})
            assert tracker.state.get_node("n1").status == NodeStatus.COMPLETED

    class TestNodeFinished:
        """SUT: WorkflowProgressTracker.node_finished"""

        def test_completes_node(self, tracker):
            tracker.node_started({"node_id": "n1"})
            node = tracker.node_finished({"node_id": "n1", "status": "succeeded"})
            assert node.status == NodeStatus.COMPLETED
            assert node.end_time is not None
            assert tracker.state.completed_nodes == 1
            assert tracker.progress() == 1.0

        def test_idempotent(self, tracker):
            """Applying the same finish twice should equal applying it once."""
            tracker.node_started({"node_id": "n1"})
            tracker.node_finished({"node_id": "n1", "title": "Research"})
            once = tracker.state.model_copy(deep=True)
            tracker.node_finished({"node_id": "n1", "title": "Research"})
            assert tracker.state == once

        def test_unknown_node_created_with_declared_status(self, tracker):
            node = tracker.node_finished({"node_id": "n9"})
            assert node.status == NodeStatus.COMPLETED
            assert tracker.state.total_nodes == 1

        def test_failed_status(self, tracker):
            node = tracker.node_finished({"node_id": "n1", "status": "failed", "error": "LLM quota"})
            assert node.status == NodeStatus.FAILED
            assert node.error == "LLM quota"
            assert tracker.state.completed_nodes == 0

    class TestProgressMath:
        """Progress invariants across a sequence of events."""

        def test_counts_and_running_maximum(self, tracker):
            events = [
                ("start", "n1"), ("start", "n2"), ("finish", "n1"),
                ("start", "n3"), ("finish", "n2"), ("finish", "n3"),
            ]
            previous_total = 0
            for kind, node_id in events:
                if kind == "start":
                    tracker.node_started({"node_id": node_id})
                else:
                    tracker.node_finished({"node_id": node_id})
                state = tracker.state
                _assert_consistent(state)
                assert state.total_nodes >= previous_total
                previous_total = state.total_nodes
            assert tracker.state.completed_nodes == 3
            assert tracker.progress() == 1.0

        def test_total_never_decreases_on_restore(self, tracker):
            """A restored state keeps its recorded maximum even with fewer nodes."""
            tracker.restore(WorkflowState(is_workflow=True, total_nodes=5))
            tracker.node_started({"node_id": "n1"})
            assert tracker.state.total_nodes == 5
            assert tracker.progress() == 0.0

        def test_new_run_keeps_maximum(self, tracker, repo):
            """Rerunning the workflow clears nodes without lowering the maximum."""
            for node_id in ("n1", "n2", "n3"):
                tracker.node_started({"node_id": node_id})
                tracker.node_finished({"node_id": node_id})

            tracker.start_new_run()

            state = tracker.state
            assert state.nodes == []
            assert state.current_node_id is None
            assert state.is_workflow is True
            assert state.total_nodes == 3
            assert state.completed_nodes == 0
            assert state.has_active_workflow() is False
            assert WorkflowState.model_validate_json(repo.get(StateKey.WORKFLOW_STATE)).total_nodes == 3

        def test_new_run_of_plain_chat(self, tracker):
            tracker.start_new_run()
            assert tracker.state.is_workflow is False
            assert tracker.state.total_nodes == 0

    class TestPersistence:
        """Every transition should be mirrored to durable storage."""

        def test_state_written(self, tracker, repo):
            tracker.node_started({"node_id": "n1"})
            restored = WorkflowState.model_validate_json(repo.get(StateKey.WORKFLOW_STATE))
            assert restored.get_node("n1").status == NodeStatus.RUNNING
            assert restored.get_node("n1").start_time is not None
