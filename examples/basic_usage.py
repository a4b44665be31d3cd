#!/usr/bin/env python3
"""Programmatic approval workflow example.

This demonstrates using the engine components directly:

* load settings from `.env`
* run an approval workflow that suspends on a user task
* persist instances and tasks to `workflow/state.json`
* complete the task and let a gateway route the result

The approval decision is passed as an argument.
"""

from __future__ import annotations

import argparse
import asyncio
from collections.abc import Sequence
from typing import Any

from logic_engine.core.config import EngineSettings
from logic_engine.expression import evaluate
from logic_engine.pipeline import ActionRegistry, ExecutionContext
from logic_engine.workflow import JsonWorkflowStore, WorkflowEngine

DEFINITION: dict[str, Any] = {
    "id": "purchase-approval",
    "name": "Purchase approval",
    "nodes": [
        {"id": "start", "type": "Start"},
        {
            "id": "quote",
            "type": "ServiceTask",
            "props": {"action": "pricing.quote", "params": {"amount": "{{ amount }}"}},
        },
        {
            "id": "review",
            "type": "UserTask",
            "name": "Review purchase",
            "assignee": "${initiator}",
        },
        {"id": "decide", "type": "Gateway"},
        {"id": "approved", "type": "End", "name": "Approved"},
        {"id": "rejected", "type": "End", "name": "Rejected"},
    ],
    "edges": [
        {"id": "e1", "source": "start", "target": "quote"},
        {"id": "e2", "source": "quote", "target": "review"},
        {"id": "e3", "source": "review", "target": "decide"},
        {"id": "e4", "source": "decide", "target": "approved", "condition": "approved"},
        {"id": "e5", "source": "decide", "target": "rejected"},
    ],
}


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run a purchase approval workflow.")
    parser.add_argument("--amount", type=float, required=True, help="Purchase amount")
    parser.add_argument("--initiator", default="user:demo", help="Who starts the workflow")
    parser.add_argument("--approve", action="store_true", help="Approve the purchase")
    return parser.parse_args(argv)


async def _run(args: argparse.Namespace, settings: EngineSettings) -> int:
    registry = ActionRegistry()

    @registry.action("pricing.quote")
    def quote(params: dict[str, Any], _context: ExecutionContext) -> dict[str, Any]:
        return {"total": evaluate("ROUND(amount * 1.13, 2)", params)}

    engine = WorkflowEngine(
        DEFINITION,
        actions=registry,
        store=JsonWorkflowStore(settings.workflow_state_path),
    )
    engine.validate()

    instance = await engine.start({"amount": args.amount}, initiator=args.initiator)
    task = engine.tasks_for(instance.id)[0]
    print(f"Instance {instance.id} waiting on task {task.id} for {task.assignee}")
    print(f"Quoted total: {instance.variables['total']}")

    instance = await engine.complete_task(instance, task.id, {"approved": args.approve})
    print(f"Instance {instance.id} {instance.status.value} at {instance.history[-1].node_id}")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)

    settings = EngineSettings()
    settings.setup_logging()

    return asyncio.run(_run(args, settings))


if __name__ == "__main__":
    raise SystemExit(main())
