from __future__ import annotations

from collections import Counter

from logic_engine.errors import InvalidWorkflowDefinition
from logic_engine.expression import ExpressionEvaluator, default_evaluator

from .models import NodeType, WorkflowDefinition


def definition_problems(
    definition: WorkflowDefinition,
    evaluator: ExpressionEvaluator | None = None,
) -> list[str]:
    """Return every structural problem found in ``definition``; empty when valid."""

    evaluator = evaluator or default_evaluator()
    problems: list[str] = []

    starts = [n for n in definition.nodes if n.type is NodeType.START]
    if len(starts) != 1:
        problems.append(f"workflow must have exactly one Start node (found {len(starts)})")

    if not any(n.type is NodeType.END for n in definition.nodes):
        problems.append("workflow must have at least one End node")

    counts = Counter(n.id for n in definition.nodes)
    for node_id, count in counts.items():
        if count > 1:
            problems.append(f"duplicate node id {node_id!r}")

    for edge in definition.edges:
        if edge.source not in counts:
            problems.append(f"edge {edge.id!r} references unknown source {edge.source!r}")
        if edge.target not in counts:
            problems.append(f"edge {edge.id!r} references unknown target {edge.target!r}")
        if edge.condition and not evaluator.validate(edge.condition):
            problems.append(f"edge {edge.id!r} has an invalid condition {edge.condition!r}")

    return problems


def validate_definition(
    definition: WorkflowDefinition,
    evaluator: ExpressionEvaluator | None = None,
) -> None:
    """Raise :class:`InvalidWorkflowDefinition` listing every problem, if any."""

    problems = definition_problems(definition, evaluator)
    if problems:
        raise InvalidWorkflowDefinition(problems)
