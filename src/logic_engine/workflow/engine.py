"""Token-based workflow engine.

An instance holds a single token (``current_node_id``). Each ``step``
executes exactly one node and moves the token along one outgoing edge, so a
long-running workflow is restartable from its persisted instance at any
point.
"""

from __future__ import annotations

import inspect
import logging
import re
import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from pydantic_core import PydanticSerializationError, to_jsonable_python

from logic_engine.core.config import get_settings
from logic_engine.errors import (
    ExpressionError,
    GatewayConditionError,
    InstanceTerminated,
    MaxStepsExceeded,
    MissingStartNode,
    NodeNotFound,
    NoMatchingGatewayCondition,
    NoOutgoingEdge,
    ServiceTaskFailed,
    TaskNotFound,
    TaskNotPending,
    WorkflowError,
)
from logic_engine.expression import ExpressionEvaluator, default_evaluator
from logic_engine.pipeline import ActionRegistry, ExecutionContext, interpolate_object
from logic_engine.pipeline.interpolate import get_value_by_path

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
    utc_now,
)
from .store import InMemoryWorkflowStore, WorkflowStore
from .validation import validate_definition

logger = logging.getLogger(__name__)

_ASSIGNEE_REF = re.compile(r"^\$\{\s*([\w.]+)\s*\}$")


class StepOutcome(str, Enum):
    CONTINUE = "continue"
    SUSPENDED = "suspended"
    FINISHED = "finished"
    ERRORED = "errored"


@dataclass(frozen=True, slots=True)
class StepResult:
    outcome: StepOutcome
    node_id: str | None = None
    task: Task | None = None
    error: WorkflowError | None = None

    def to_json(self) -> dict[str, object]:
        out: dict[str, object] = {"outcome": self.outcome.value}
        if self.node_id is not None:
            out["node_id"] = self.node_id
        if self.task is not None:
            out["task_id"] = self.task.id
        if self.error is not None:
            out["error"] = self.error.to_json()
        return out


class WorkflowEngine:
    """Executes instances of one workflow definition.

    The step loop is not reentrant for a given instance; callers must not
    drive the same instance from two coroutines at once.
    """

    def __init__(
        self,
        definition: WorkflowDefinition | Mapping[str, Any],
        *,
        actions: ActionRegistry | None = None,
        store: WorkflowStore | None = None,
        evaluator: ExpressionEvaluator | None = None,
        max_steps: int | None = None,
    ) -> None:
        self.definition = (
            definition
            if isinstance(definition, WorkflowDefinition)
            else WorkflowDefinition.model_validate(definition)
        )
        self.actions = actions or ActionRegistry()
        self.store: WorkflowStore = store or InMemoryWorkflowStore()
        self._evaluator = evaluator or default_evaluator()
        self.max_steps = (
            self.definition.max_steps or max_steps or get_settings().max_workflow_steps
        )

    def validate(self) -> None:
        """Raise ``InvalidWorkflowDefinition`` if the definition is malformed."""

        validate_definition(self.definition, self._evaluator)

    # -- lifecycle -------------------------------------------------------

    async def start(
        self,
        variables: Mapping[str, Any] | None = None,
        *,
        initiator: str = "",
        instance_id: str | None = None,
    ) -> WorkflowInstance:
        """Create an instance at the Start node and run it until it stops.

        Raises:
            MissingStartNode: The definition does not have exactly one Start
                node. No instance is created.
            WorkflowError: A step failed; the instance is persisted in Error.
        """

        starts = self.definition.start_nodes()
        if len(starts) != 1:
            raise MissingStartNode(
                f"Workflow {self.definition.id!r} must have exactly one Start node "
                f"(found {len(starts)})"
            )

        instance = WorkflowInstance(
            id=instance_id or str(uuid.uuid4()),
            definition_id=self.definition.id,
            status=InstanceStatus.RUNNING,
            current_node_id=starts[0].id,
            variables=dict(variables or {}),
            initiator=initiator,
        )
        self.store.save_instance(instance)
        logger.info(
            "Workflow instance started",
            extra={
                "instance_id": instance.id,
                "definition_id": self.definition.id,
                "initiator": initiator,
            },
        )
        return await self.run(instance)

    async def run(self, instance: WorkflowInstance) -> WorkflowInstance:
        """Step ``instance`` until it suspends, finishes or fails."""

        if instance.status.is_terminal:
            raise InstanceTerminated(
                f"Instance {instance.id} is {instance.status.value}",
                instance_id=instance.id,
            )

        while instance.status is InstanceStatus.RUNNING:
            result = await self.step(instance)
            if result.outcome is StepOutcome.ERRORED and result.error is not None:
                raise result.error
        return instance

    async def complete_task(
        self,
        instance: WorkflowInstance,
        task_id: str,
        variables: Mapping[str, Any] | None = None,
    ) -> WorkflowInstance:
        """Complete a pending user task and resume the instance past its node."""

        task = self.store.load_task(task_id)
        if task is None or task.instance_id != instance.id:
            raise TaskNotFound(
                f"Task {task_id} not found for instance {instance.id}",
                instance_id=instance.id,
            )
        if instance.status.is_terminal:
            raise InstanceTerminated(
                f"Instance {instance.id} is {instance.status.value}",
                node_id=task.node_id,
                instance_id=instance.id,
            )
        if task.status is not TaskStatus.PENDING:
            raise TaskNotPending(
                f"Task {task_id} is {task.status.value}",
                node_id=task.node_id,
                instance_id=instance.id,
            )
        if (
            instance.status is not InstanceStatus.SUSPENDED
            or instance.current_node_id != task.node_id
        ):
            raise TaskNotPending(
                f"Instance {instance.id} is not waiting on task {task_id}",
                node_id=task.node_id,
                instance_id=instance.id,
            )

        task.status = TaskStatus.COMPLETED
        task.completed_at = utc_now()
        self.store.save_task(task)

        instance.variables.update(variables or {})
        node = self._node(instance, task.node_id)
        try:
            edge = self._select_edge(instance, node)
        except WorkflowError as exc:
            self._fail(instance, exc, node.id)
            raise

        instance.current_node_id = edge.target
        instance.status = InstanceStatus.RUNNING
        self._record(instance, node, "completed")
        self._save(instance)
        logger.info(
            "User task completed",
            extra={"instance_id": instance.id, "task_id": task.id, "node_id": node.id},
        )
        return await self.run(instance)

    async def step(self, instance: WorkflowInstance) -> StepResult:
        """Execute exactly one node of a Running instance.

        Failures do not raise: the instance is moved to Error, persisted, and
        the error is returned in an ``ERRORED`` result.
        """

        if instance.status.is_terminal:
            raise InstanceTerminated(
                f"Instance {instance.id} is {instance.status.value}",
                instance_id=instance.id,
            )
        if instance.status is InstanceStatus.SUSPENDED:
            return StepResult(StepOutcome.SUSPENDED, node_id=instance.current_node_id)

        node_id = instance.current_node_id
        try:
            if instance.step_count >= self.max_steps:
                raise MaxStepsExceeded(
                    f"Instance {instance.id} exceeded {self.max_steps} steps",
                    node_id=node_id,
                )
            node = self._node(instance, node_id)
            instance.step_count += 1
            result = await self._execute(instance, node)
        except WorkflowError as exc:
            self._fail(instance, exc, node_id)
            return StepResult(StepOutcome.ERRORED, node_id=node_id, error=exc)

        self._record(instance, node, result.outcome.value)
        self._save(instance)
        return result

    # -- node execution --------------------------------------------------

    async def _execute(self, instance: WorkflowInstance, node: NodeDef) -> StepResult:
        logger.debug(
            "Executing node",
            extra={"instance_id": instance.id, "node_id": node.id, "node_type": node.type.value},
        )

        if node.type is NodeType.END:
            instance.status = InstanceStatus.FINISHED
            instance.current_node_id = None
            logger.info("Workflow instance finished", extra={"instance_id": instance.id})
            return StepResult(StepOutcome.FINISHED, node_id=node.id)

        if node.type is NodeType.USER_TASK:
            task = self._create_task(instance, node)
            instance.status = InstanceStatus.SUSPENDED
            return StepResult(StepOutcome.SUSPENDED, node_id=node.id, task=task)

        if node.type is NodeType.SERVICE_TASK:
            await self._run_service_task(instance, node)

        edge = self._select_edge(instance, node)
        instance.current_node_id = edge.target
        return StepResult(StepOutcome.CONTINUE, node_id=node.id)

    def _create_task(self, instance: WorkflowInstance, node: NodeDef) -> Task:
        created_at = utc_now()
        due_at = created_at + timedelta(minutes=node.timeout) if node.timeout else None
        task = Task(
            id=str(uuid.uuid4()),
            instance_id=instance.id,
            node_id=node.id,
            node_name=node.name,
            assignee=self._resolve_assignee(instance, node.assignee),
            status=TaskStatus.PENDING,
            created_at=created_at,
            due_at=due_at,
        )
        self.store.save_task(task)
        logger.info(
            "User task created",
            extra={
                "instance_id": instance.id,
                "task_id": task.id,
                "node_id": node.id,
                "assignee": task.assignee,
            },
        )
        return task

    def _resolve_assignee(self, instance: WorkflowInstance, assignee: str | None) -> str | None:
        # ${initiator} and ${variable.path} resolve; role:x, user:x and other literals pass through.
        if not assignee:
            return assignee
        match = _ASSIGNEE_REF.match(assignee.strip())
        if match is None:
            return assignee
        path = match.group(1)
        if path == "initiator":
            return instance.initiator or assignee
        value = get_value_by_path(self._scope(instance), path)
        return assignee if value is None else str(value)

    async def _run_service_task(self, instance: WorkflowInstance, node: NodeDef) -> None:
        action_type = node.props.get("action")
        if not action_type:
            logger.info(
                "Service task has no action",
                extra={"instance_id": instance.id, "node_id": node.id},
            )
            return

        handler = self.actions.get(action_type)
        if handler is None:
            raise ServiceTaskFailed(
                f"Unknown action type {action_type!r}",
                node_id=node.id,
                instance_id=instance.id,
            )

        params = interpolate_object(node.props.get("params") or {}, self._scope(instance))
        context = ExecutionContext(
            global_scope={
                "instance_id": instance.id,
                "definition_id": instance.definition_id,
                "initiator": instance.initiator,
                "node_id": node.id,
            },
            vars=instance.variables,
        )
        previous = dict(instance.variables)
        try:
            result = handler(params, context)
            if inspect.isawaitable(result):
                result = await result
        except Exception as exc:
            raise ServiceTaskFailed(
                f"Action {action_type!r} failed: {exc}",
                node_id=node.id,
                instance_id=instance.id,
            ) from exc

        result_variable = node.props.get("result_variable") or node.props.get("resultVariable")
        if result_variable:
            instance.variables[result_variable] = result
        elif isinstance(result, Mapping):
            instance.variables.update(result)

        # Instance variables are persisted, so they must stay JSON data.
        try:
            to_jsonable_python(instance.variables)
        except PydanticSerializationError as exc:
            instance.variables.clear()
            instance.variables.update(previous)
            raise ServiceTaskFailed(
                f"Action {action_type!r} produced variables that cannot be stored: {exc}",
                node_id=node.id,
                instance_id=instance.id,
            ) from exc

    def _select_edge(self, instance: WorkflowInstance, node: NodeDef) -> EdgeDef:
        edges = self.definition.outgoing(node.id)

        if node.type is not NodeType.GATEWAY:
            if len(edges) != 1:
                raise NoOutgoingEdge(
                    f"Node {node.id!r} needs exactly one outgoing edge (found {len(edges)})",
                    node_id=node.id,
                    instance_id=instance.id,
                )
            return edges[0]

        scope = self._scope(instance)
        for edge in edges:
            # Unconditional edges always match; declared order decides.
            if not edge.condition:
                return edge
            try:
                taken = self._evaluator.evaluate_condition(edge.condition, scope)
            except ExpressionError as exc:
                raise GatewayConditionError(
                    f"Condition on edge {edge.id!r} failed: {exc}",
                    node_id=node.id,
                    instance_id=instance.id,
                ) from exc
            if taken:
                logger.debug(
                    "Gateway edge selected",
                    extra={"instance_id": instance.id, "node_id": node.id, "edge_id": edge.id},
                )
                return edge

        raise NoMatchingGatewayCondition(
            f"No outgoing condition of gateway {node.id!r} matched",
            node_id=node.id,
            instance_id=instance.id,
        )

    # -- task utilities --------------------------------------------------

    def load_instance(self, instance_id: str) -> WorkflowInstance | None:
        return self.store.load_instance(instance_id)

    def tasks_for(self, instance_id: str) -> list[Task]:
        return self.store.list_tasks(instance_id=instance_id)

    def pending_tasks(self, assignee: str | None = None) -> list[Task]:
        tasks = self.store.list_tasks(status=TaskStatus.PENDING)
        if assignee is None:
            return tasks
        return [t for t in tasks if t.assignee == assignee]

    def delegate_task(self, task_id: str, assignee: str) -> Task:
        task = self._pending_task(task_id)
        previous = task.assignee
        task.assignee = assignee
        self.store.save_task(task)
        logger.info(
            "Task delegated",
            extra={"task_id": task_id, "from_assignee": previous, "to_assignee": assignee},
        )
        return task

    def mark_task_timed_out(self, task_id: str) -> Task:
        """Mark a pending task as timed out. The owning instance is left untouched."""

        task = self._pending_task(task_id)
        task.status = TaskStatus.TIMEOUT
        self.store.save_task(task)
        logger.warning(
            "Task timed out", extra={"task_id": task_id, "instance_id": task.instance_id}
        )
        return task

    def overdue_tasks(self, now: datetime | None = None) -> list[Task]:
        now = now or utc_now()
        return [t for t in self.store.list_tasks(status=TaskStatus.PENDING) if t.is_overdue(now)]

    # -- helpers ---------------------------------------------------------

    def _pending_task(self, task_id: str) -> Task:
        task = self.store.load_task(task_id)
        if task is None:
            raise TaskNotFound(f"Task {task_id} not found")
        if task.status is not TaskStatus.PENDING:
            raise TaskNotPending(
                f"Task {task_id} is {task.status.value}",
                node_id=task.node_id,
                instance_id=task.instance_id,
            )
        return task

    def _node(self, instance: WorkflowInstance, node_id: str | None) -> NodeDef:
        node = self.definition.get_node(node_id) if node_id is not None else None
        if node is None:
            raise NodeNotFound(
                f"Node {node_id!r} not found in workflow {self.definition.id!r}",
                node_id=node_id,
                instance_id=instance.id,
            )
        return node

    def _scope(self, instance: WorkflowInstance) -> dict[str, Any]:
        return {
            "initiator": instance.initiator,
            "instance_id": instance.id,
            **instance.variables,
        }

    def _record(self, instance: WorkflowInstance, node: NodeDef, outcome: str) -> None:
        instance.history.append(
            HistoryEntry(
                node_id=node.id,
                node_type=node.type,
                step=instance.step_count,
                outcome=outcome,
            )
        )

    def _fail(self, instance: WorkflowInstance, exc: WorkflowError, node_id: str | None) -> None:
        if exc.node_id is None:
            exc.node_id = node_id
        if exc.instance_id is None:
            exc.instance_id = instance.id
        instance.status = InstanceStatus.ERROR
        instance.error = InstanceError(kind=exc.kind, message=exc.message, node_id=exc.node_id)
        self._save(instance)
        logger.error(
            f"Workflow step failed: {exc.message}",
            extra={"instance_id": instance.id, "node_id": exc.node_id, "kind": exc.kind},
        )

    def _save(self, instance: WorkflowInstance) -> None:
        instance.touch()
        self.store.save_instance(instance)
