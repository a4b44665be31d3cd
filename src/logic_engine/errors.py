"""Exception hierarchy for the logic engine.

Every error carries structured attributes so an outer layer can render an
actionable message without parsing strings. ``to_json`` exposes them.
"""

from __future__ import annotations

from typing import Any


class LogicEngineError(Exception):
    """Base class for all logic engine errors."""

    def to_json(self) -> dict[str, object]:
        return {"error": type(self).__name__, "message": str(self)}


# ---------------------------------------------------------------------------
# Expressions
# ---------------------------------------------------------------------------


class ExpressionError(LogicEngineError):
    """Raised when an expression cannot be parsed or evaluated."""

    def __init__(self, message: str, *, expression: str | None = None) -> None:
        super().__init__(message)
        self.expression = expression

    def to_json(self) -> dict[str, object]:
        out = super().to_json()
        if self.expression is not None:
            out["expression"] = self.expression
        return out


class ExpressionSyntaxError(ExpressionError):
    def __init__(self, message: str, *, expression: str | None = None, position: int = 0) -> None:
        super().__init__(f"{message} at position {position}", expression=expression)
        self.position = position

    def to_json(self) -> dict[str, object]:
        out = super().to_json()
        out["position"] = self.position
        return out


class UnboundIdentifier(ExpressionError):
    def __init__(self, name: str, *, expression: str | None = None) -> None:
        super().__init__(f'Identifier "{name}" is not defined', expression=expression)
        self.name = name

    def to_json(self) -> dict[str, object]:
        out = super().to_json()
        out["identifier"] = self.name
        return out


class UnsupportedConstruct(ExpressionError):
    def __init__(self, construct: str, *, expression: str | None = None) -> None:
        super().__init__(f"Unsupported construct: {construct}", expression=expression)
        self.construct = construct


class UnknownFunction(ExpressionError):
    def __init__(self, name: str, *, expression: str | None = None) -> None:
        super().__init__(f'Unknown function "{name}"', expression=expression)
        self.name = name


class ExpressionEvaluationError(ExpressionError):
    """Runtime failure inside an otherwise valid expression (type mismatch, divide by zero)."""


# ---------------------------------------------------------------------------
# Computed fields
# ---------------------------------------------------------------------------


class DependencyCycleError(LogicEngineError):
    def __init__(self, fields: list[str], cycles: list[list[str]] | None = None) -> None:
        self.fields = list(fields)
        self.cycles = [list(c) for c in cycles or []]
        if self.cycles:
            paths = "; ".join(" -> ".join(c) for c in self.cycles)
            detail = f"{', '.join(self.fields)} (cycle: {paths})"
        else:
            detail = ", ".join(self.fields)
        super().__init__(f"Circular dependency detected: {detail}")

    def to_json(self) -> dict[str, object]:
        out = super().to_json()
        out["fields"] = self.fields
        out["cycles"] = self.cycles
        return out


class ReadOnlyFieldError(LogicEngineError):
    def __init__(self, field: str) -> None:
        super().__init__(f"Field {field!r} is computed and cannot be written directly")
        self.field = field


# ---------------------------------------------------------------------------
# Workflow
# ---------------------------------------------------------------------------


class WorkflowError(LogicEngineError):
    """Base class for workflow failures.

    ``kind`` is a stable identifier (the class name) persisted on the instance
    when the failure is terminal.
    """

    def __init__(
        self,
        message: str,
        *,
        node_id: str | None = None,
        instance_id: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.node_id = node_id
        self.instance_id = instance_id

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_json(self) -> dict[str, object]:
        out: dict[str, object] = {"error": self.kind, "kind": self.kind, "message": self.message}
        if self.node_id is not None:
            out["node_id"] = self.node_id
        if self.instance_id is not None:
            out["instance_id"] = self.instance_id
        return out


class MissingStartNode(WorkflowError):
    pass


class NodeNotFound(WorkflowError):
    pass


class NoOutgoingEdge(WorkflowError):
    pass


class NoMatchingGatewayCondition(WorkflowError):
    pass


class GatewayConditionError(WorkflowError):
    pass


class ServiceTaskFailed(WorkflowError):
    pass


class MaxStepsExceeded(WorkflowError):
    pass


class InvalidWorkflowDefinition(WorkflowError):
    def __init__(self, problems: list[str]) -> None:
        super().__init__("Invalid workflow definition: " + "; ".join(problems))
        self.problems = list(problems)

    def to_json(self) -> dict[str, object]:
        out = super().to_json()
        out["problems"] = self.problems
        return out


class InstanceTerminated(WorkflowError):
    pass


class TaskNotFound(WorkflowError):
    pass


class TaskNotPending(WorkflowError):
    pass


# ---------------------------------------------------------------------------
# Permissions
# ---------------------------------------------------------------------------


class InvalidPolicyCondition(LogicEngineError):
    """Raised when a policy condition uses something outside the condition grammar.

    Not a ``ValueError``, so it propagates out of pydantic validation as-is.
    """

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field

    def to_json(self) -> dict[str, object]:
        out = super().to_json()
        if self.field is not None:
            out["field"] = self.field
        return out


# ---------------------------------------------------------------------------
# Pipelines
# ---------------------------------------------------------------------------


class UnknownActionType(LogicEngineError):
    def __init__(self, action_type: str) -> None:
        super().__init__(f"Unknown action type: {action_type}")
        self.action_type = action_type

    def to_json(self) -> dict[str, object]:
        out = super().to_json()
        out["action_type"] = self.action_type
        return out


class PipelineActionError(LogicEngineError):
    """An action failed with ``on_error='stop'``; the cause is chained."""

    def __init__(self, action_id: str, action_type: str, cause: BaseException) -> None:
        super().__init__(f"Action {action_id!r} ({action_type}) failed: {cause}")
        self.action_id = action_id
        self.action_type = action_type
        self.cause = cause

    def to_json(self) -> dict[str, Any]:
        out: dict[str, Any] = super().to_json()
        out["action_id"] = self.action_id
        out["action_type"] = self.action_type
        out["cause"] = type(self.cause).__name__
        return out
