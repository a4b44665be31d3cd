"""AST node definitions for the expression grammar.

All nodes are frozen dataclasses so a parsed tree can be cached and shared
between evaluations safely.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union


@dataclass(frozen=True, slots=True)
class Literal:
    """A number, string, boolean or null constant."""

    value: Any


@dataclass(frozen=True, slots=True)
class ArrayLiteral:
    """An inline array: [a, b, c]."""

    elements: tuple[Node, ...]


@dataclass(frozen=True, slots=True)
class Identifier:
    name: str


@dataclass(frozen=True, slots=True)
class Member:
    """Member access: ``obj.name`` (computed=False) or ``obj[expr]`` (computed=True).

    For non-computed access ``property`` is a ``Literal`` holding the name.
    """

    object: Node
    property: Node
    computed: bool


@dataclass(frozen=True, slots=True)
class Unary:
    operator: str
    operand: Node


@dataclass(frozen=True, slots=True)
class Binary:
    operator: str
    left: Node
    right: Node


@dataclass(frozen=True, slots=True)
class Logical:
    """Short-circuit ``&&`` / ``||``."""

    operator: str
    left: Node
    right: Node


@dataclass(frozen=True, slots=True)
class Conditional:
    """Ternary: test ? consequent : alternate."""

    test: Node
    consequent: Node
    alternate: Node


@dataclass(frozen=True, slots=True)
class Call:
    callee: Node
    arguments: tuple[Node, ...]


Node = Union[Literal, ArrayLiteral, Identifier, Member, Unary, Binary, Logical, Conditional, Call]


def children(node: Node) -> tuple[Node, ...]:
    """Direct sub-expressions of ``node``; call targets named by an identifier are skipped."""

    if isinstance(node, ArrayLiteral):
        return node.elements
    if isinstance(node, Member):
        return (node.object, node.property) if node.computed else (node.object,)
    if isinstance(node, (Binary, Logical)):
        return (node.left, node.right)
    if isinstance(node, Unary):
        return (node.operand,)
    if isinstance(node, Conditional):
        return (node.test, node.consequent, node.alternate)
    if isinstance(node, Call):
        callee = () if isinstance(node.callee, Identifier) else (node.callee,)
        return callee + node.arguments
    return ()


def depth(node: Node) -> int:
    deepest = 0
    stack = [(node, 1)]
    while stack:
        current, level = stack.pop()
        deepest = max(deepest, level)
        stack.extend((child, level + 1) for child in children(current))
    return deepest
