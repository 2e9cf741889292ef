"""Workflow progress tracking from node events."""

from typing import Any, Dict, Optional

from ..models.message import utc_now
from ..models.workflow import NodeStatus, WorkflowNode, WorkflowState
from ..utils.logger import get_app_logger
from .session_store import ConversationSessionStore


FAILED_STATUSES = frozenset({"failed", "error", "exception"})


class WorkflowProgressTracker:
    """
    Maintains per-node state and aggregate progress.

    Node transitions are idempotent upserts keyed by node id. Each
    transition writes the full state back through the session store.
    """

    def __init__(self, store: ConversationSessionStore):
        self.store = store
        self.logger = get_app_logger()

    @property
    def state(self) -> WorkflowState:
        return self.store.workflow

    def progress(self) -> float:
        """Completed nodes / max(total nodes, 1)."""
        return self.state.progress

    def node_started(self, data: Dict[str, Any]) -> Optional[WorkflowNode]:
        """
        Apply a node_started payload.

        Args:
            data: The event's ``data`` object (node_id, title, node_type)

        Returns:
            The updated node, or None when the payload has no node id
        """
        node_id = data.get("node_id")
        if not node_id:
            self.logger.warning(f"node_started without node_id: {data}")
            return None

        state = self.state.model_copy(deep=True)
        node = state.get_node(node_id)
        if node is None:
            node = self._new_node(node_id, data, NodeStatus.RUNNING)
            node.start_time = utc_now()
            state.nodes.append(node)
        else:
            self._update_labels(node, data)
            if node.status == NodeStatus.WAITING:
                node.status = NodeStatus.RUNNING
            if node.start_time is None:
                node.start_time = utc_now()

        state.current_node_id = node_id
        self._commit(state)
        self.logger.debug(f"Node started: {node_id} ({node.node_name})")
        return node

    def node_finished(self, data: Dict[str, Any]) -> Optional[WorkflowNode]:
        """
        Apply a node_finished payload.

        A ``status`` of failed/error marks the node failed and keeps the error text.

        Args:
            data: The event's ``data`` object (node_id, title, status, error)

        Returns:
            The updated node, or None when the payload has no node id
        """
        node_id = data.get("node_id")
        if not node_id:
            self.logger.warning(f"node_finished without node_id: {data}")
            return None

        failed = str(data.get("status") or "").lower() in FAILED_STATUSES
        status = NodeStatus.FAILED if failed else NodeStatus.COMPLETED

        state = self.state.model_copy(deep=True)
        node = state.get_node(node_id)
        if node is None:
            node = self._new_node(node_id, data, status)
            state.nodes.append(node)
        else:
            self._update_labels(node, data)
            node.status = status

        if node.end_time is None:
            node.end_time = utc_now()
        if failed:
            node.error = str(data.get("error") or "Node failed")

        self._commit(state)
        if failed:
            self.logger.warning(f"Node failed: {node_id} ({node.node_name}): {node.error}")
        else:
            self.logger.debug(f"Node finished: {node_id} ({node.node_name})")
        return node

    def restore(self, state: Optional[WorkflowState]) -> None:
        """Replace the tracked state, e.g. with one loaded from history."""
        self._commit(state.model_copy(deep=True) if state else WorkflowState())

    def start_new_run(self) -> None:
        """
        Clear node records before the workflow runs again in this session.

        ``is_workflow`` and the running maximum ``total_nodes`` carry over.
        """
        previous = self.state
        self._commit(WorkflowState(is_workflow=previous.is_workflow, total_nodes=previous.total_nodes))

    def _commit(self, state: WorkflowState) -> None:
        if state.nodes:
            state.is_workflow = True
        state.completed_nodes = sum(1 for n in state.nodes if n.status == NodeStatus.COMPLETED)
        state.total_nodes = max(state.total_nodes, len(state.nodes))
        self.store.set_workflow(state)

    @staticmethod
    def _new_node(node_id: str, data: Dict[str, Any], status: NodeStatus) -> WorkflowNode:
        title = data.get("title")
        return WorkflowNode(
            node_id=node_id,
            node_name=title or node_id,
            node_title=title,
            node_type=data.get("node_type"),
            status=status
        )

    @staticmethod
    def _update_labels(node: WorkflowNode, data: Dict[str, Any]) -> None:
        if data.get("title"):
            node.node_title = data["title"]
            node.node_name = data["title"]
        if data.get("node_type"):
            node.node_type = data["node_type"]
