"""Unit tests for the workflow engine.

Each test drives a small definition end to end and asserts both the returned
instance and what was persisted.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any

import pytest

from logic_engine.core.config import get_settings
from logic_engine.errors import (
    GatewayConditionError,
    InstanceTerminated,
    InvalidWorkflowDefinition,
    MaxStepsExceeded,
    MissingStartNode,
    NodeNotFound,
    NoMatchingGatewayCondition,
    NoOutgoingEdge,
    ServiceTaskFailed,
    TaskNotFound,
    TaskNotPending,
)
from logic_engine.pipeline import ActionRegistry, ExecutionContext
from logic_engine.workflow import (
    InMemoryWorkflowStore,
    InstanceStatus,
    JsonWorkflowStore,
    NodeType,
    StepOutcome,
    TaskStatus,
    WorkflowDefinition,
    WorkflowEngine,
    WorkflowInstance,
    validate_definition,
)


def linear_workflow(*middle: dict[str, Any], workflow_id: str = "wf") -> dict[str, Any]:
    """Start -> middle... -> End as a raw DSL mapping."""

    nodes: list[dict[str, Any]] = [{"id": "start", "type": "Start"}]
    nodes.extend(middle)
    nodes.append({"id": "end", "type": "End"})
    edges = [
        {"id": f"e{i}", "source": nodes[i]["id"], "target": nodes[i + 1]["id"]}
        for i in range(len(nodes) - 1)
    ]
    return {"id": workflow_id, "name": "Test workflow", "nodes": nodes, "edges": edges}


def approval_workflow() -> dict[str, Any]:
    return {
        "id": "approval",
        "nodes": [
            {"id": "start", "type": "Start"},
            {"id": "review", "type": "UserTask", "name": "Review", "assignee": "${initiator}"},
            {"id": "decide", "type": "Gateway"},
            {"id": "approved", "type": "End"},
            {"id": "rejected", "type": "End"},
        ],
        "edges": [
            {"id": "e1", "source": "start", "target": "review"},
            {"id": "e2", "source": "review", "target": "decide"},
            {"id": "e3", "source": "decide", "target": "approved", "condition": "approved"},
            {"id": "e4", "source": "decide", "target": "rejected", "condition": "!approved"},
        ],
    }


@pytest.mark.asyncio
async def test_start_to_end_finishes() -> None:
    engine = WorkflowEngine(linear_workflow())

    instance = await engine.start({"x": 1}, initiator="user:1")

    assert instance.status is InstanceStatus.FINISHED
    assert instance.current_node_id is None
    assert instance.step_count == 2
    assert [h.node_id for h in instance.history] == ["start", "end"]
    assert instance.variables == {"x": 1}

    stored = engine.load_instance(instance.id)
    assert stored is not None
    assert stored.status is InstanceStatus.FINISHED


@pytest.mark.asyncio
async def test_user_task_suspends_and_completion_finishes() -> None:
    engine = WorkflowEngine(
        linear_workflow(
            {"id": "approve", "type": "UserTask", "name": "Approve", "assignee": "role:manager"}
        )
    )

    instance = await engine.start(initiator="user:7")

    assert instance.status is InstanceStatus.SUSPENDED
    assert instance.current_node_id == "approve"
    tasks = engine.tasks_for(instance.id)
    assert len(tasks) == 1
    task = tasks[0]
    assert task.status is TaskStatus.PENDING
    assert task.node_name == "Approve"
    assert task.assignee == "role:manager"

    instance = await engine.complete_task(instance, task.id, {"approved": True})

    assert instance.status is InstanceStatus.FINISHED
    assert instance.current_node_id is None
    assert instance.variables["approved"] is True
    completed = engine.tasks_for(instance.id)[0]
    assert completed.status is TaskStatus.COMPLETED
    assert completed.completed_at is not None
    assert len(engine.tasks_for(instance.id)) == 1


@pytest.mark.asyncio
async def test_initiator_assignee_and_gateway_routing() -> None:
    engine = WorkflowEngine(approval_workflow())

    approved = await engine.start(initiator="user:alice")
    task = engine.tasks_for(approved.id)[0]
    assert task.assignee == "user:alice"
    approved = await engine.complete_task(approved, task.id, {"approved": True})
    assert approved.status is InstanceStatus.FINISHED
    assert approved.history[-1].node_id == "approved"

    rejected = await engine.start(initiator="user:bob")
    task = engine.tasks_for(rejected.id)[0]
    rejected = await engine.complete_task(rejected, task.id, {"approved": False})
    assert rejected.history[-1].node_id == "rejected"


@pytest.mark.asyncio
async def test_initiator_assignee_ignores_a_variable_of_the_same_name() -> None:
    engine = WorkflowEngine(approval_workflow())

    instance = await engine.start({"initiator": "form-field"}, initiator="user:alice")

    assert engine.tasks_for(instance.id)[0].assignee == "user:alice"


@pytest.mark.asyncio
async def test_gateway_first_match_wins_and_unconditional_edge_matches() -> None:
    definition = {
        "id": "gw",
        "nodes": [
            {"id": "start", "type": "Start"},
            {"id": "gw", "type": "Gateway"},
            {"id": "big", "type": "End"},
            {"id": "default", "type": "End"},
        ],
        "edges": [
            {"id": "e1", "source": "start", "target": "gw"},
            {"id": "e2", "source": "gw", "target": "big", "condition": "amount > 1000"},
            {"id": "e3", "source": "gw", "target": "default"},
        ],
    }
    engine = WorkflowEngine(definition)

    big = await engine.start({"amount": 5000})
    small = await engine.start({"amount": 10})

    assert big.history[-1].node_id == "big"
    assert small.history[-1].node_id == "default"


@pytest.mark.asyncio
async def test_gateway_without_match_errors() -> None:
    definition = approval_workflow()
    definition["edges"][3]["condition"] = "approved == 'never'"
    engine = WorkflowEngine(definition)

    instance = await engine.start()
    task = engine.tasks_for(instance.id)[0]

    with pytest.raises(NoMatchingGatewayCondition) as excinfo:
        await engine.complete_task(instance, task.id, {"approved": False})

    assert excinfo.value.node_id == "decide"
    assert instance.status is InstanceStatus.ERROR
    assert instance.error is not None
    assert instance.error.kind == "NoMatchingGatewayCondition"
    assert instance.error.node_id == "decide"


@pytest.mark.asyncio
async def test_gateway_condition_failure_errors() -> None:
    definition = approval_workflow()
    engine = WorkflowEngine(definition)

    instance = await engine.start()
    task = engine.tasks_for(instance.id)[0]

    # "approved" is never set, so the first condition cannot be evaluated.
    with pytest.raises(GatewayConditionError):
        await engine.complete_task(instance, task.id, {})
    assert instance.status is InstanceStatus.ERROR


@pytest.mark.asyncio
async def test_service_task_loop_hits_step_cap() -> None:
    definition = {
        "id": "loop",
        "nodes": [
            {"id": "start", "type": "Start"},
            {"id": "spin", "type": "ServiceTask"},
            {"id": "end", "type": "End"},
        ],
        "edges": [
            {"id": "e1", "source": "start", "target": "spin"},
            {"id": "e2", "source": "spin", "target": "spin"},
        ],
    }
    store = InMemoryWorkflowStore()
    engine = WorkflowEngine(definition, store=store, max_steps=5)

    with pytest.raises(MaxStepsExceeded) as excinfo:
        await engine.start(instance_id="loop-1")

    assert excinfo.value.instance_id == "loop-1"
    stored = store.load_instance("loop-1")
    assert stored is not None
    assert stored.step_count == 5
    assert stored.status is InstanceStatus.ERROR
    assert stored.error is not None
    assert stored.error.kind == "MaxStepsExceeded"
    assert stored.current_node_id == "spin"


def test_step_cap_precedence(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LOGIC_ENGINE_MAX_WORKFLOW_STEPS", "3")
    get_settings.cache_clear()

    assert WorkflowEngine(linear_workflow()).max_steps == 3
    assert WorkflowEngine(linear_workflow(), max_steps=50).max_steps == 50

    definition = linear_workflow()
    definition["maxSteps"] = 7
    assert WorkflowEngine(definition, max_steps=50).max_steps == 7


def test_default_step_cap() -> None:
    assert WorkflowEngine(linear_workflow()).max_steps == 1000


@pytest.mark.asyncio
async def test_service_task_runs_action_and_merges_result() -> None:
    registry = ActionRegistry()
    calls: list[dict[str, Any]] = []

    @registry.action("pricing.quote")
    async def quote(params: dict[str, Any], context: ExecutionContext) -> dict[str, Any]:
        calls.append(params)
        assert context.global_scope["initiator"] == "user:1"
        return {"quote": params["amount"] * 2}

    registry.register("audit.log", lambda params, context: "logged")

    engine = WorkflowEngine(
        linear_workflow(
            {
                "id": "price",
                "type": "ServiceTask",
                "props": {"action": "pricing.quote", "params": {"amount": "{{ amount }}"}},
            },
            {
                "id": "audit",
                "type": "ServiceTask",
                "props": {"action": "audit.log", "resultVariable": "audit"},
            },
        ),
        actions=registry,
    )

    instance = await engine.start({"amount": 21}, initiator="user:1")

    assert calls == [{"amount": 21}]
    assert instance.status is InstanceStatus.FINISHED
    assert instance.variables["quote"] == 42
    assert instance.variables["audit"] == "logged"


@pytest.mark.asyncio
async def test_service_task_without_action_is_noop() -> None:
    engine = WorkflowEngine(linear_workflow({"id": "noop", "type": "ServiceTask"}))
    instance = await engine.start({"a": 1})
    assert instance.status is InstanceStatus.FINISHED
    assert instance.variables == {"a": 1}


@pytest.mark.asyncio
async def test_service_task_failures() -> None:
    registry = ActionRegistry()

    def boom(params: dict[str, Any], context: ExecutionContext) -> None:
        raise RuntimeError("downstream unavailable")

    registry.register("boom", boom)

    failing = WorkflowEngine(
        linear_workflow({"id": "svc", "type": "ServiceTask", "props": {"action": "boom"}}),
        actions=registry,
    )
    with pytest.raises(ServiceTaskFailed) as excinfo:
        await failing.start()
    assert isinstance(excinfo.value.__cause__, RuntimeError)
    assert excinfo.value.node_id == "svc"

    unknown = WorkflowEngine(
        linear_workflow({"id": "svc", "type": "ServiceTask", "props": {"action": "nope"}}),
        actions=registry,
    )
    with pytest.raises(ServiceTaskFailed):
        await unknown.start()


@pytest.mark.asyncio
async def test_unstorable_service_result_errors_the_instance(
    json_store: JsonWorkflowStore,
) -> None:
    registry = ActionRegistry()
    registry.register("opaque", lambda params, context: {"handle": object()})
    engine = WorkflowEngine(
        linear_workflow({"id": "svc", "type": "ServiceTask", "props": {"action": "opaque"}}),
        actions=registry,
        store=json_store,
    )

    with pytest.raises(ServiceTaskFailed) as excinfo:
        await engine.start({"a": 1}, instance_id="i-1")
    assert excinfo.value.node_id == "svc"

    stored = json_store.load_instance("i-1")
    assert stored is not None
    assert stored.status is InstanceStatus.ERROR
    assert stored.error is not None
    assert stored.error.kind == "ServiceTaskFailed"
    assert stored.error.node_id == "svc"
    assert stored.variables == {"a": 1}


@pytest.mark.asyncio
async def test_missing_start_node() -> None:
    engine = WorkflowEngine({"id": "bad", "nodes": [{"id": "end", "type": "End"}], "edges": []})
    with pytest.raises(MissingStartNode):
        await engine.start()


@pytest.mark.asyncio
async def test_node_without_single_outgoing_edge() -> None:
    definition = {
        "id": "fork",
        "nodes": [
            {"id": "start", "type": "Start"},
            {"id": "a", "type": "End"},
            {"id": "b", "type": "End"},
        ],
        "edges": [
            {"id": "e1", "source": "start", "target": "a"},
            {"id": "e2", "source": "start", "target": "b"},
        ],
    }
    with pytest.raises(NoOutgoingEdge):
        await WorkflowEngine(definition).start()


@pytest.mark.asyncio
async def test_edge_to_unknown_node() -> None:
    definition = {
        "id": "ghost",
        "nodes": [{"id": "start", "type": "Start"}],
        "edges": [{"id": "e1", "source": "start", "target": "ghost"}],
    }
    with pytest.raises(NodeNotFound) as excinfo:
        await WorkflowEngine(definition).start()
    assert excinfo.value.node_id == "ghost"


@pytest.mark.asyncio
async def test_complete_task_errors() -> None:
    engine = WorkflowEngine(linear_workflow({"id": "approve", "type": "UserTask"}))
    instance = await engine.start()
    task = engine.tasks_for(instance.id)[0]

    with pytest.raises(TaskNotFound):
        await engine.complete_task(instance, "missing-task")

    other = await engine.start()
    with pytest.raises(TaskNotFound):
        await engine.complete_task(other, task.id)

    instance = await engine.complete_task(instance, task.id)
    assert instance.status is InstanceStatus.FINISHED

    with pytest.raises(InstanceTerminated):
        await engine.complete_task(instance, task.id)


@pytest.mark.asyncio
async def test_timed_out_task_cannot_be_completed() -> None:
    engine = WorkflowEngine(linear_workflow({"id": "approve", "type": "UserTask"}))
    instance = await engine.start()
    task = engine.tasks_for(instance.id)[0]

    timed_out = engine.mark_task_timed_out(task.id)

    assert timed_out.status is TaskStatus.TIMEOUT
    assert instance.status is InstanceStatus.SUSPENDED
    with pytest.raises(TaskNotPending):
        await engine.complete_task(instance, task.id)


@pytest.mark.asyncio
async def test_task_due_dates_delegation_and_queries() -> None:
    engine = WorkflowEngine(
        linear_workflow(
            {"id": "approve", "type": "UserTask", "assignee": "user:a", "timeout": 30},
        )
    )
    instance = await engine.start()
    task = engine.tasks_for(instance.id)[0]

    assert task.due_at == task.created_at + timedelta(minutes=30)
    assert engine.overdue_tasks(task.created_at) == []
    assert [t.id for t in engine.overdue_tasks(task.created_at + timedelta(hours=1))] == [task.id]

    assert [t.id for t in engine.pending_tasks("user:a")] == [task.id]
    delegated = engine.delegate_task(task.id, "user:b")
    assert delegated.assignee == "user:b"
    assert engine.pending_tasks("user:a") == []
    assert [t.id for t in engine.pending_tasks("user:b")] == [task.id]

    await engine.complete_task(instance, task.id)
    with pytest.raises(TaskNotPending):
        engine.delegate_task(task.id, "user:c")


@pytest.mark.asyncio
async def test_step_returns_tagged_results() -> None:
    engine = WorkflowEngine(linear_workflow({"id": "approve", "type": "UserTask"}))
    instance = WorkflowInstance(id="manual", definition_id="wf", current_node_id="start")

    first = await engine.step(instance)
    assert first.outcome is StepOutcome.CONTINUE
    assert instance.current_node_id == "approve"

    second = await engine.step(instance)
    assert second.outcome is StepOutcome.SUSPENDED
    assert second.task is not None
    assert second.to_json()["task_id"] == second.task.id

    again = await engine.step(instance)
    assert again.outcome is StepOutcome.SUSPENDED
    assert instance.step_count == 2

    broken = WorkflowInstance(id="broken", definition_id="wf", current_node_id="nowhere")
    errored = await engine.step(broken)
    assert errored.outcome is StepOutcome.ERRORED
    assert isinstance(errored.error, NodeNotFound)
    assert broken.status is InstanceStatus.ERROR

    with pytest.raises(InstanceTerminated):
        await engine.step(broken)


def test_legacy_node_names_are_accepted() -> None:
    definition = WorkflowDefinition.model_validate(
        {
            "id": "legacy",
            "nodes": [{"id": "s", "type": "StartEvent"}, {"id": "e", "type": "EndEvent"}],
            "edges": [{"id": "e1", "source": "s", "target": "e"}],
        }
    )
    assert [n.type for n in definition.nodes] == [NodeType.START, NodeType.END]


def test_validate_definition_lists_every_problem() -> None:
    definition = WorkflowDefinition.model_validate(
        {
            "id": "broken",
            "nodes": [
                {"id": "a", "type": "UserTask"},
                {"id": "a", "type": "UserTask"},
            ],
            "edges": [
                {"id": "e1", "source": "a", "target": "zzz"},
                {"id": "e2", "source": "a", "target": "a", "condition": "x >"},
            ],
        }
    )

    with pytest.raises(InvalidWorkflowDefinition) as excinfo:
        validate_definition(definition)

    problems = excinfo.value.problems
    assert len(problems) == 5
    assert any("Start" in p for p in problems)
    assert any("End" in p for p in problems)
    assert any("duplicate" in p for p in problems)
    assert any("zzz" in p for p in problems)
    assert any("invalid condition" in p for p in problems)


def test_valid_definition_passes() -> None:
    WorkflowEngine(approval_workflow()).validate()


def test_instance_serializes_with_camel_case_keys() -> None:
    instance = WorkflowInstance(id="i", definition_id="wf", current_node_id="start")
    payload = instance.to_json()

    assert payload["currentNodeId"] == "start"
    assert payload["definitionId"] == "wf"
    assert payload["status"] == "Running"
    assert WorkflowInstance.model_validate(payload).to_json() == payload
