"""The restricted policy condition grammar.

A condition maps a dotted context path to one of:

- a literal: the context value must equal it
- ``"${path}"``: the context value must equal the value at ``path``
- an operator mapping such as ``{"lt": 1000}`` using ``lt lte gt gte equals``;
  operands may themselves be ``"${path}"`` references

This grammar is deliberately separate from (and smaller than) the expression
language.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

from logic_engine.errors import InvalidPolicyCondition
from logic_engine.pipeline.interpolate import get_value_by_path

OPERATORS = frozenset({"lt", "lte", "gt", "gte", "equals"})

_REFERENCE = re.compile(r"^\$\{\s*([\w.]+)\s*\}$")

Clause = tuple[str, str, Any]


def _strict_equals(left: Any, right: Any) -> bool:
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    return bool(left == right)


_COMPARATORS = {
    "lt": lambda a, b: a < b,
    "lte": lambda a, b: a <= b,
    "gt": lambda a, b: a > b,
    "gte": lambda a, b: a >= b,
    "equals": _strict_equals,
}


def check_condition(condition: Mapping[str, Any]) -> None:
    """Reject anything outside the grammar.

    Raises:
        InvalidPolicyCondition: Unknown operator, empty operator mapping or a
            non-string key.
    """

    for field, value in condition.items():
        if not isinstance(field, str) or not field:
            raise InvalidPolicyCondition(f"Condition key must be a non-empty string: {field!r}")
        if isinstance(value, Mapping):
            if not value:
                raise InvalidPolicyCondition(
                    f"Empty operator mapping for {field!r}", field=field
                )
            unknown = sorted(str(op) for op in value if op not in OPERATORS)
            if unknown:
                raise InvalidPolicyCondition(
                    f"Unknown operator(s) {', '.join(unknown)} for {field!r}; "
                    f"allowed: {', '.join(sorted(OPERATORS))}",
                    field=field,
                )


def resolve_operand(value: Any, context: Mapping[str, Any]) -> Any:
    """Substitute a ``"${path}"`` reference; literals pass through."""

    if isinstance(value, str):
        match = _REFERENCE.match(value)
        if match is not None:
            return get_value_by_path(context, match.group(1))
    return value


def condition_clauses(condition: Mapping[str, Any], context: Mapping[str, Any]) -> list[Clause]:
    """Flatten a condition into ``(field, operator, resolved operand)`` clauses."""

    clauses: list[Clause] = []
    for field, value in condition.items():
        if isinstance(value, Mapping):
            for op, operand in value.items():
                clauses.append((field, op, resolve_operand(operand, context)))
        else:
            clauses.append((field, "equals", resolve_operand(value, context)))
    return clauses


def compare(op: str, actual: Any, expected: Any) -> bool:
    """Apply ``op``; incomparable values (``None < 5``) compare false."""

    try:
        return bool(_COMPARATORS[op](actual, expected))
    except TypeError:
        return False


def condition_holds(condition: Mapping[str, Any], context: Mapping[str, Any]) -> bool:
    for field, op, expected in condition_clauses(condition, context):
        if not compare(op, get_value_by_path(context, field), expected):
            return False
    return True
