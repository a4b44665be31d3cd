"""Safe expression evaluation.

Expressions are parsed into an AST over a closed grammar and interpreted by a
tree walk. The module-level helpers share one default evaluator; the function
table is immutable, so sharing it across callers is safe.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from .evaluator import ExpressionEvaluator
from .functions import BUILTIN_FUNCTIONS
from .parser import parse

_default_evaluator = ExpressionEvaluator()


def default_evaluator() -> ExpressionEvaluator:
    return _default_evaluator


def evaluate(expression: str, context: Mapping[str, Any] | None = None) -> Any:
    """Evaluate ``expression`` against ``context``.

    Example:
        >>> evaluate("price * quantity", {"price": 10, "quantity": 5})
        50
    """

    return _default_evaluator.evaluate(expression, context)


def extract_dependencies(expression: str) -> set[str]:
    return _default_evaluator.extract_dependencies(expression)


__all__ = [
    "BUILTIN_FUNCTIONS",
    "ExpressionEvaluator",
    "default_evaluator",
    "evaluate",
    "extract_dependencies",
    "parse",
]
