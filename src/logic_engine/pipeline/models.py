"""Pipeline definitions and the per-run execution context."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import Field

from logic_engine.core.models import DslModel

OnError = Literal["stop", "skip", "continue"]


class Action(DslModel):
    """One step of a pipeline.

    ``params`` is a template: strings containing ``{{ path }}`` are resolved
    against the execution context before the handler runs.
    """

    id: str
    type: str
    params: dict[str, Any] = Field(default_factory=dict)
    condition: str | None = None
    on_error: OnError = "stop"
    await_: bool = Field(default=True, alias="await")


class Pipeline(DslModel):
    id: str | None = None
    trigger: str = ""
    actions: list[Action] = Field(default_factory=list)


@dataclass
class ExecutionContext:
    """Scopes visible to conditions, templates and handlers during one run.

    Owned by a single pipeline run; never share an instance between
    concurrent runs.
    """

    global_scope: dict[str, Any] = field(default_factory=dict)
    form: dict[str, Any] = field(default_factory=dict)
    component: dict[str, Any] | None = None
    outputs: dict[str, Any] = field(default_factory=dict)
    vars: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ExecutionContext:
        return cls(
            global_scope=dict(data.get("global") or {}),
            form=dict(data.get("form") or {}),
            component=data.get("component"),
            outputs=dict(data.get("outputs") or {}),
            vars=dict(data.get("vars") or {}),
        )

    def as_mapping(self) -> dict[str, Any]:
        """Expose the scopes by name. The inner dicts are live, not copies."""

        return {
            "global": self.global_scope,
            "form": self.form,
            "component": self.component,
            "outputs": self.outputs,
            "vars": self.vars,
        }


@dataclass(frozen=True, slots=True)
class ActionFailure:
    action_id: str
    action_type: str
    error: str
    on_error: OnError

    def to_json(self) -> dict[str, object]:
        return {
            "action_id": self.action_id,
            "action_type": self.action_type,
            "error": self.error,
            "on_error": self.on_error,
        }


@dataclass(frozen=True, slots=True)
class PipelineResult:
    success: bool
    outputs: dict[str, Any]
    skipped: list[str]
    errors: list[ActionFailure]
    duration_ms: float
