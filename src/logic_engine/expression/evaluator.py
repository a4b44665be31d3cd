"""Tree-walking evaluator for parsed expressions.

Evaluation never generates host code. Every node kind, operator and function
is on an explicit allow-list; anything else raises ``UnsupportedConstruct``.
"""

from __future__ import annotations

import logging
import operator
from collections.abc import Callable, Mapping, Sequence
from decimal import Decimal, InvalidOperation
from typing import Any

from logic_engine.errors import (
    ExpressionError,
    ExpressionEvaluationError,
    UnboundIdentifier,
    UnknownFunction,
    UnsupportedConstruct,
)

from .functions import BUILTIN_FUNCTIONS, LAZY_FUNCTIONS, BuiltinFunction
from .nodes import (
    ArrayLiteral,
    Binary,
    Call,
    Conditional,
    Identifier,
    Literal,
    Logical,
    Member,
    Node,
    Unary,
    children,
)
from .parser import parse

logger = logging.getLogger(__name__)


def _strict_equals(left: Any, right: Any) -> bool:
    # True == 1 in Python; strict equality keeps booleans apart from numbers.
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    if isinstance(left, str) != isinstance(right, str):
        return False
    return bool(left == right)


def _to_number(value: Any) -> int | float:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            return float(text)
    if value is None:
        return 0
    raise TypeError(f"cannot convert {type(value).__name__} to a number")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _numeric(op: Callable[[Any, Any], Any]) -> Callable[[Any, Any], Any]:
    def apply(left: Any, right: Any) -> Any:
        if not (_is_number(left) and _is_number(right)):
            raise TypeError("operands must be numbers")
        return op(left, right)

    return apply


def _add(left: Any, right: Any) -> Any:
    if _is_number(left) and _is_number(right):
        return left + right
    if isinstance(left, str) and isinstance(right, str):
        return left + right
    raise TypeError("operands must both be numbers or both be strings")


def _negate(value: Any) -> Any:
    if not _is_number(value):
        raise TypeError("operand must be a number")
    return -value


_BINARY_OPERATORS: dict[str, Any] = {
    "+": _add,
    "-": _numeric(operator.sub),
    "*": _numeric(operator.mul),
    "/": _numeric(operator.truediv),
    "%": _numeric(operator.mod),
    "==": lambda a, b: a == b,
    "!=": lambda a, b: a != b,
    "===": _strict_equals,
    "!==": lambda a, b: not _strict_equals(a, b),
    "<": lambda a, b: a < b,
    "<=": lambda a, b: a <= b,
    ">": lambda a, b: a > b,
    ">=": lambda a, b: a >= b,
}

_UNARY_OPERATORS: dict[str, Any] = {
    "!": lambda a: not a,
    "-": _negate,
    "+": _to_number,
}


class ExpressionEvaluator:
    """Parses, caches and evaluates expressions.

    The AST cache is a plain memoization table keyed by the literal expression
    text. Only the parsed tree is cached; values are always computed against
    the context passed to each call.
    """

    def __init__(self, functions: Mapping[str, BuiltinFunction] | None = None) -> None:
        self._functions: dict[str, BuiltinFunction] = dict(
            BUILTIN_FUNCTIONS if functions is None else functions
        )
        self._ast_cache: dict[str, Node] = {}

    @property
    def function_names(self) -> frozenset[str]:
        return frozenset(self._functions)

    def parse(self, expression: str) -> Node:
        node = self._ast_cache.get(expression)
        if node is None:
            node = parse(expression)
            self._ast_cache[expression] = node
            logger.debug("Parsed expression", extra={"expression": expression})
        return node

    def clear_cache(self) -> None:
        self._ast_cache.clear()

    def evaluate(self, expression: str, context: Mapping[str, Any] | None = None) -> Any:
        """Evaluate ``expression`` against ``context``.

        Raises:
            ExpressionError: On syntax errors, unbound identifiers, unsupported
                constructs or runtime failures. Errors are never coerced.
        """

        node = self.parse(expression)
        return self._eval(node, context or {}, expression)

    def evaluate_condition(self, expression: str, context: Mapping[str, Any] | None = None) -> bool:
        return bool(self.evaluate(expression, context))

    def evaluate_precise(
        self, expression: str, context: Mapping[str, Any] | None = None
    ) -> Decimal:
        """Evaluate and return the result as a ``Decimal`` (via its text form)."""

        result = self.evaluate(expression, context)
        try:
            return Decimal(str(result))
        except InvalidOperation as exc:
            raise ExpressionEvaluationError(
                f"Result {result!r} is not numeric", expression=expression
            ) from exc

    def validate(self, expression: str) -> bool:
        """Return True if the expression parses and only calls known functions."""

        try:
            node = self.parse(expression)
        except ExpressionError:
            return False
        return all(name in self._functions for name in _called_functions(node))

    def extract_dependencies(self, expression: str) -> set[str]:
        """Collect root identifiers referenced anywhere in the expression."""

        deps: set[str] = set()
        _collect_identifiers(self.parse(expression), deps)
        return deps

    # -- evaluation ------------------------------------------------------

    def _eval(self, node: Node, context: Mapping[str, Any], source: str) -> Any:
        if isinstance(node, Literal):
            return node.value

        if isinstance(node, Identifier):
            if node.name not in context:
                raise UnboundIdentifier(node.name, expression=source)
            return context[node.name]

        if isinstance(node, ArrayLiteral):
            return [self._eval(item, context, source) for item in node.elements]

        if isinstance(node, Member):
            obj = self._eval(node.object, context, source)
            prop = self._eval(node.property, context, source)
            return _read_member(obj, prop, source)

        if isinstance(node, Logical):
            left = self._eval(node.left, context, source)
            if node.operator == "&&":
                return self._eval(node.right, context, source) if left else left
            if node.operator == "||":
                return left if left else self._eval(node.right, context, source)
            raise UnsupportedConstruct(f"logical operator {node.operator!r}", expression=source)

        if isinstance(node, Binary):
            op = _BINARY_OPERATORS.get(node.operator)
            if op is None:
                raise UnsupportedConstruct(f"operator {node.operator!r}", expression=source)
            left = self._eval(node.left, context, source)
            right = self._eval(node.right, context, source)
            try:
                return op(left, right)
            except (TypeError, ValueError, ArithmeticError) as exc:
                raise ExpressionEvaluationError(
                    f"Cannot apply {node.operator!r} to {type(left).__name__} and "
                    f"{type(right).__name__}: {exc}",
                    expression=source,
                ) from exc

        if isinstance(node, Unary):
            unary = _UNARY_OPERATORS.get(node.operator)
            if unary is None:
                raise UnsupportedConstruct(f"unary operator {node.operator!r}", expression=source)
            operand = self._eval(node.operand, context, source)
            try:
                return unary(operand)
            except (TypeError, ValueError, ArithmeticError) as exc:
                raise ExpressionEvaluationError(
                    f"Cannot apply unary {node.operator!r} to {type(operand).__name__}: {exc}",
                    expression=source,
                ) from exc

        if isinstance(node, Conditional):
            if self._eval(node.test, context, source):
                return self._eval(node.consequent, context, source)
            return self._eval(node.alternate, context, source)

        if isinstance(node, Call):
            return self._call(node, context, source)

        raise UnsupportedConstruct(f"node {type(node).__name__}", expression=source)

    def _call(self, node: Call, context: Mapping[str, Any], source: str) -> Any:
        if not isinstance(node.callee, Identifier):
            raise UnsupportedConstruct("call on a non-function value", expression=source)
        name = node.callee.name
        func = self._functions.get(name)
        if func is None:
            raise UnknownFunction(name, expression=source)

        if name in LAZY_FUNCTIONS:
            # IF(cond, a, b): only the taken branch is evaluated.
            if not node.arguments:
                raise ExpressionEvaluationError("IF requires a condition", expression=source)
            condition = self._eval(node.arguments[0], context, source)
            branch = 1 if condition else 2
            if branch < len(node.arguments):
                return self._eval(node.arguments[branch], context, source)
            return None

        args = [self._eval(arg, context, source) for arg in node.arguments]
        try:
            return func(*args)
        except (TypeError, ValueError, ArithmeticError) as exc:
            raise ExpressionEvaluationError(f"{name}() failed: {exc}", expression=source) from exc


def _read_member(obj: Any, prop: Any, source: str) -> Any:
    # Only mapping keys and sequence indices are readable; host attributes never are.
    if obj is None:
        return None
    if isinstance(obj, Mapping):
        try:
            return obj.get(prop)
        except TypeError as exc:
            raise ExpressionEvaluationError(
                f"Cannot use {type(prop).__name__} as a key: {exc}", expression=source
            ) from exc
    if isinstance(obj, (str, Sequence)) and not isinstance(obj, (bytes, bytearray)):
        if prop == "length":
            return len(obj)
        if isinstance(prop, int) and not isinstance(prop, bool):
            try:
                return obj[prop]
            except IndexError:
                return None
        return None
    raise UnsupportedConstruct(
        f"member access on {type(obj).__name__} value", expression=source
    )


def _collect_identifiers(node: Node, deps: set[str]) -> None:
    if isinstance(node, Identifier):
        deps.add(node.name)
        return
    for child in children(node):
        _collect_identifiers(child, deps)


def _called_functions(node: Node) -> set[str]:
    names: set[str] = set()
    stack = [node]
    while stack:
        current = stack.pop()
        if isinstance(current, Call) and isinstance(current.callee, Identifier):
            names.add(current.callee.name)
        stack.extend(children(current))
    return names
