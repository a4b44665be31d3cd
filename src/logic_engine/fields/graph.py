"""Field dependency graph with topological ordering and cycle detection."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass

from logic_engine.errors import DependencyCycleError
from logic_engine.expression import ExpressionEvaluator, default_evaluator

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class FieldNode:
    """A field and the names its expression reads.

    Fields without an expression are plain inputs.
    """

    name: str
    expression: str | None = None
    dependencies: frozenset[str] = frozenset()

    @property
    def is_computed(self) -> bool:
        return bool(self.expression and self.expression.strip())


class DependencyGraph:
    """Directed graph of field -> dependency edges.

    Forward edges map a field to the names it depends on. Reverse edges map a
    name to the fields that depend on it. Names referenced by expressions but
    never registered are treated as external inputs: they appear in the
    reverse adjacency but not in the ordering.
    """

    def __init__(self, evaluator: ExpressionEvaluator | None = None) -> None:
        self._evaluator = evaluator or default_evaluator()
        self._fields: dict[str, FieldNode] = {}
        self._forward: dict[str, set[str]] = {}
        self._reverse: dict[str, set[str]] = {}

    def add_field(self, name: str, expression: str | None = None) -> FieldNode:
        """Register (or replace) a field and record its edges.

        Raises:
            ExpressionError: If ``expression`` does not parse.
        """

        deps: frozenset[str] = frozenset()
        if expression and expression.strip():
            deps = frozenset(self._evaluator.extract_dependencies(expression))

        previous = self._forward.get(name, set())
        for dep in previous:
            self._reverse.get(dep, set()).discard(name)

        node = FieldNode(name=name, expression=expression, dependencies=deps)
        self._fields[name] = node
        self._forward[name] = set(deps)
        for dep in deps:
            self._reverse.setdefault(dep, set()).add(name)

        logger.debug(
            "Field registered",
            extra={"field": name, "dependencies": sorted(deps)},
        )
        return node

    def __contains__(self, name: object) -> bool:
        return name in self._fields

    def __len__(self) -> int:
        return len(self._fields)

    @property
    def fields(self) -> list[str]:
        return list(self._fields)

    def get_field(self, name: str) -> FieldNode | None:
        return self._fields.get(name)

    def dependencies_of(self, name: str) -> set[str]:
        return set(self._forward.get(name, set()))

    def dependents_of(self, name: str) -> set[str]:
        return set(self._reverse.get(name, set()))

    def topological_sort(self) -> list[str]:
        """Order fields so every dependency precedes its dependents (Kahn).

        Raises:
            DependencyCycleError: Naming exactly the fields that could not be
                ordered, with the cycle paths found by ``detect_cycles``.
        """

        in_degree: dict[str, int] = {
            name: sum(1 for dep in self._forward[name] if dep in self._fields)
            for name in self._fields
        }
        rank = {name: index for index, name in enumerate(self._fields)}
        queue = deque(name for name, degree in in_degree.items() if degree == 0)
        ordered: list[str] = []

        while queue:
            current = queue.popleft()
            ordered.append(current)
            # Registration order keeps the result stable between runs.
            for dependent in sorted(self._reverse.get(current, ()), key=rank.__getitem__):
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    queue.append(dependent)

        if len(ordered) < len(self._fields):
            resolved = set(ordered)
            unresolved = [name for name in self._fields if name not in resolved]
            raise DependencyCycleError(unresolved, self.detect_cycles())

        return ordered

    def get_affected_fields(self, name: str) -> set[str]:
        """Return every field that transitively depends on ``name``."""

        affected: set[str] = set()
        queue = deque([name])
        while queue:
            current = queue.popleft()
            for dependent in self._reverse.get(current, ()):
                if dependent not in affected:
                    affected.add(dependent)
                    queue.append(dependent)
        affected.discard(name)
        return affected

    def detect_cycles(self) -> list[list[str]]:
        """Find cycles with a DFS over a recursion stack.

        Each cycle is reported as the path from the first repeated field back
        to itself, e.g. ``['a', 'b', 'c', 'a']``.
        """

        visited: set[str] = set()
        on_stack: set[str] = set()
        cycles: list[list[str]] = []

        def dfs(node: str, path: list[str]) -> None:
            visited.add(node)
            on_stack.add(node)
            path.append(node)

            for dep in sorted(self._forward.get(node, ())):
                if dep not in self._fields:
                    continue
                if dep not in visited:
                    dfs(dep, path)
                elif dep in on_stack:
                    start = path.index(dep)
                    cycles.append(path[start:] + [dep])

            path.pop()
            on_stack.discard(node)

        for name in self._fields:
            if name not in visited:
                dfs(name, [])

        return cycles
