"""Workflow definitions, the token-based engine and its persistence hook."""

from .engine import StepOutcome, StepResult, WorkflowEngine
from .models import (
    EdgeDef,
    HistoryEntry,
    InstanceError,
    InstanceStatus,
    NodeDef,
    NodeType,
    Task,
    TaskStatus,
    WorkflowDefinition,
    WorkflowInstance,
)
from .store import InMemoryWorkflowStore, JsonWorkflowStore, WorkflowStore
from .validation import definition_problems, validate_definition

__all__ = [
    "EdgeDef",
    "HistoryEntry",
    "InMemoryWorkflowStore",
    "InstanceError",
    "InstanceStatus",
    "JsonWorkflowStore",
    "NodeDef",
    "NodeType",
    "StepOutcome",
    "StepResult",
    "Task",
    "TaskStatus",
    "WorkflowDefinition",
    "WorkflowEngine",
    "WorkflowInstance",
    "WorkflowStore",
    "definition_problems",
    "validate_definition",
]
