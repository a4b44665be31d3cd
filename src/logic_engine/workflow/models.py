"""Workflow DSL definitions and the persisted runtime records."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import Field

from logic_engine.core.models import DslModel


def utc_now() -> datetime:
    return datetime.now(tz=UTC)


class NodeType(str, Enum):
    START = "Start"
    END = "End"
    USER_TASK = "UserTask"
    SERVICE_TASK = "ServiceTask"
    GATEWAY = "Gateway"

    @classmethod
    def _missing_(cls, value: object) -> NodeType | None:
        # Legacy BPMN-style names.
        legacy = {"StartEvent": cls.START, "EndEvent": cls.END}
        return legacy.get(value) if isinstance(value, str) else None


class InstanceStatus(str, Enum):
    RUNNING = "Running"
    SUSPENDED = "Suspended"
    FINISHED = "Finished"
    ERROR = "Error"

    @property
    def is_terminal(self) -> bool:
        return self in (InstanceStatus.FINISHED, InstanceStatus.ERROR)


class TaskStatus(str, Enum):
    PENDING = "Pending"
    COMPLETED = "Completed"
    TIMEOUT = "Timeout"


class NodeDef(DslModel):
    id: str
    type: NodeType
    name: str | None = None
    assignee: str | None = None
    # Minutes until the task created for a UserTask is due.
    timeout: float | None = Field(default=None, ge=0)
    props: dict[str, Any] = Field(default_factory=dict)


class EdgeDef(DslModel):
    id: str
    source: str
    target: str
    condition: str | None = None
    label: str | None = None


class WorkflowDefinition(DslModel):
    id: str
    name: str | None = None
    version: int | str | None = None
    nodes: list[NodeDef] = Field(default_factory=list)
    edges: list[EdgeDef] = Field(default_factory=list)
    max_steps: int | None = Field(default=None, gt=0)

    def get_node(self, node_id: str) -> NodeDef | None:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def outgoing(self, node_id: str) -> list[EdgeDef]:
        """Edges leaving ``node_id`` in declared order."""

        return [edge for edge in self.edges if edge.source == node_id]

    def start_nodes(self) -> list[NodeDef]:
        return [node for node in self.nodes if node.type is NodeType.START]


class InstanceError(DslModel):
    kind: str
    message: str
    node_id: str | None = None


class HistoryEntry(DslModel):
    node_id: str
    node_type: NodeType
    step: int
    outcome: str
    timestamp: datetime = Field(default_factory=utc_now)


class WorkflowInstance(DslModel):
    """Runtime state of one workflow execution.

    ``current_node_id`` is ``None`` exactly when the instance is Finished.
    """

    id: str
    definition_id: str
    status: InstanceStatus = InstanceStatus.RUNNING
    current_node_id: str | None = None
    variables: dict[str, Any] = Field(default_factory=dict)
    initiator: str = ""
    step_count: int = 0
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    error: InstanceError | None = None
    history: list[HistoryEntry] = Field(default_factory=list)

    def touch(self) -> None:
        self.updated_at = utc_now()


class Task(DslModel):
    id: str
    instance_id: str
    node_id: str
    node_name: str | None = None
    assignee: str | None = None
    status: TaskStatus = TaskStatus.PENDING
    created_at: datetime = Field(default_factory=utc_now)
    due_at: datetime | None = None
    completed_at: datetime | None = None

    def is_overdue(self, now: datetime | None = None) -> bool:
        if self.status is not TaskStatus.PENDING or self.due_at is None:
            return False
        return (now or utc_now()) >= self.due_at
