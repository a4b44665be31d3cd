"""Computed-field scheduler.

Keeps field values consistent with their expressions. A value change only
recomputes the fields that transitively depend on it, in topological order.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any, Final

from logic_engine.errors import ExpressionError, ReadOnlyFieldError
from logic_engine.expression import ExpressionEvaluator, default_evaluator

from .graph import DependencyGraph

logger = logging.getLogger(__name__)


class _Unavailable:
    """Sentinel for a field whose last recompute failed."""

    _instance: _Unavailable | None = None

    def __new__(cls) -> _Unavailable:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "<unavailable>"

    def __bool__(self) -> bool:
        return False


UNAVAILABLE: Final = _Unavailable()


class ComputedFieldScheduler:
    """Computed-field state on top of a ``DependencyGraph``."""

    def __init__(
        self,
        graph: DependencyGraph | None = None,
        evaluator: ExpressionEvaluator | None = None,
    ) -> None:
        self._evaluator = evaluator or default_evaluator()
        self.graph = graph or DependencyGraph(self._evaluator)
        self._values: dict[str, Any] = {}
        self._order: list[str] | None = None

    def register_field(self, name: str, expression: str | None = None) -> None:
        self.graph.add_field(name, expression)
        self._order = None

    def register_fields(self, fields: Mapping[str, str | None]) -> None:
        for name, expression in fields.items():
            self.register_field(name, expression)

    def initialize(self, initial_values: Mapping[str, Any] | None = None) -> dict[str, Any]:
        """Seed values and compute every computed field in dependency order.

        Raises:
            DependencyCycleError: If the registered fields contain a cycle.
        """

        order = self._topological_order()
        self._values = dict(initial_values or {})
        for name in order:
            self._recompute(name)
        logger.info("Computed fields initialized", extra={"fields": len(order)})
        return self.get_values()

    def set_value(self, field: str, value: Any) -> set[str]:
        """Write an input value and recompute only the affected fields.

        Returns:
            The names of the fields that were recomputed.
        """

        return self.set_values({field: value})

    def set_values(self, changes: Mapping[str, Any]) -> set[str]:
        for field in changes:
            node = self.graph.get_field(field)
            if node is not None and node.is_computed:
                raise ReadOnlyFieldError(field)

        order = self._topological_order()
        self._values.update(changes)

        affected: set[str] = set()
        for field in changes:
            affected |= self.graph.get_affected_fields(field)

        recomputed = [name for name in order if name in affected]
        for name in recomputed:
            self._recompute(name)

        logger.debug(
            "Incremental recompute",
            extra={"changed": sorted(changes), "recomputed": recomputed},
        )
        return set(recomputed)

    def get_value(self, field: str, default: Any = None) -> Any:
        return self._values.get(field, default)

    def get_values(self) -> dict[str, Any]:
        return dict(self._values)

    def unavailable_fields(self) -> list[str]:
        return [name for name, value in self._values.items() if value is UNAVAILABLE]

    def check_cycles(self) -> list[list[str]]:
        return self.graph.detect_cycles()

    def reset(self) -> None:
        self._values = {}

    def _topological_order(self) -> list[str]:
        if self._order is None:
            self._order = self.graph.topological_sort()
        return self._order

    def _recompute(self, name: str) -> None:
        node = self.graph.get_field(name)
        if node is None or not node.is_computed:
            return
        assert node.expression is not None

        blocked = _first_unavailable(node.dependencies, self._values)
        if blocked is not None:
            logger.debug(
                "Field unavailable because a dependency is unavailable",
                extra={"field": name, "dependency": blocked},
            )
            self._values[name] = UNAVAILABLE
            return

        try:
            self._values[name] = self._evaluator.evaluate(node.expression, self._values)
        except ExpressionError as exc:
            logger.error(
                f"Failed to compute field {name}: {exc}",
                extra={"field": name, "expression": node.expression},
            )
            self._values[name] = UNAVAILABLE


def _first_unavailable(names: Iterable[str], values: Mapping[str, Any]) -> str | None:
    for dep in sorted(names):
        if values.get(dep) is UNAVAILABLE:
            return dep
    return None
