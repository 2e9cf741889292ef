"""Workflow progress models."""

from datetime import datetime
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class NodeStatus(str, Enum):
    """Lifecycle of one workflow node."""

    WAITING = "waiting"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class WorkflowNode(BaseModel):
    """One processing stage of a remote workflow."""

    # Snapshots written by older clients use camelCase keys
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    node_id: str = Field(description="Node identifier, unique within a workflow")
    node_name: str = Field(description="Display name")
    node_title: Optional[str] = Field(None, description="Node title")
    node_type: Optional[str] = Field(None, description="Node type reported by the service")
    status: NodeStatus = Field(default=NodeStatus.WAITING, description="Current status")
    start_time: Optional[datetime] = Field(None, description="When the node started running")
    end_time: Optional[datetime] = Field(None, description="When the node finished")
    error: Optional[str] = Field(None, description="Failure text")


class WorkflowState(BaseModel):
    """Per-session workflow progress."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    is_workflow: bool = Field(default=False, description="Whether any node event was observed")
    nodes: List[WorkflowNode] = Field(default_factory=list, description="Nodes in first-seen order")
    current_node_id: Optional[str] = Field(None, description="Most recently started node")
    total_nodes: int = Field(default=0, description="Running maximum of observed node count")
    completed_nodes: int = Field(default=0, description="Number of completed nodes")

    def get_node(self, node_id: str) -> Optional[WorkflowNode]:
        """Find a node by id."""
        for node in self.nodes:
            if node.node_id == node_id:
                return node
        return None

    def has_active_workflow(self) -> bool:
        """A workflow with at least one node is in progress."""
        return self.is_workflow and len(self.nodes) > 0

    @property
    def progress(self) -> float:
        """Aggregate progress in [0, 1]."""
        return self.completed_nodes / max(self.total_nodes, 1)
