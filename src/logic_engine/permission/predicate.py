"""Storage-agnostic row predicates produced from policies.

A data layer translates these trees into its own query language; ``matches``
evaluates one against an in-memory record.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Union

from logic_engine.pipeline.interpolate import get_value_by_path

from .conditions import compare


@dataclass(frozen=True, slots=True)
class FieldPredicate:
    field: str
    operator: str
    value: Any

    def matches(self, record: Mapping[str, Any]) -> bool:
        return compare(self.operator, get_value_by_path(record, self.field), self.value)

    def to_json(self) -> dict[str, object]:
        return {"field": self.field, "op": self.operator, "value": self.value}


@dataclass(frozen=True, slots=True)
class And:
    children: tuple[Predicate, ...]

    def matches(self, record: Mapping[str, Any]) -> bool:
        return all(child.matches(record) for child in self.children)

    def to_json(self) -> dict[str, object]:
        return {"and": [child.to_json() for child in self.children]}


@dataclass(frozen=True, slots=True)
class Or:
    children: tuple[Predicate, ...]

    def matches(self, record: Mapping[str, Any]) -> bool:
        return any(child.matches(record) for child in self.children)

    def to_json(self) -> dict[str, object]:
        return {"or": [child.to_json() for child in self.children]}


@dataclass(frozen=True, slots=True)
class Not:
    child: Predicate

    def matches(self, record: Mapping[str, Any]) -> bool:
        return not self.child.matches(record)

    def to_json(self) -> dict[str, object]:
        return {"not": self.child.to_json()}


@dataclass(frozen=True, slots=True)
class Constant:
    """``ALWAYS`` matches every row, ``NEVER`` matches none."""

    value: bool

    def matches(self, record: Mapping[str, Any]) -> bool:
        return self.value

    def to_json(self) -> dict[str, object]:
        return {"always": True} if self.value else {"never": True}


ALWAYS = Constant(True)
NEVER = Constant(False)

Predicate = Union[FieldPredicate, And, Or, Not, Constant]


def all_of(predicates: Iterable[Predicate]) -> Predicate:
    children = [p for p in predicates if p != ALWAYS]
    if NEVER in children:
        return NEVER
    if not children:
        return ALWAYS
    return children[0] if len(children) == 1 else And(tuple(children))


def any_of(predicates: Iterable[Predicate]) -> Predicate:
    children = [p for p in predicates if p != NEVER]
    if ALWAYS in children:
        return ALWAYS
    if not children:
        return NEVER
    return children[0] if len(children) == 1 else Or(tuple(children))
