"""Test configuration and fixtures."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

from logic_engine.core.config import get_settings
from logic_engine.expression import ExpressionEvaluator
from logic_engine.pipeline import ActionRegistry, ExecutionContext, register_builtin_actions
from logic_engine.workflow import InMemoryWorkflowStore, JsonWorkflowStore


@pytest.fixture(autouse=True)
def _fresh_settings(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Keep cached settings and LOGIC_ENGINE_* env vars from leaking between tests."""
    monkeypatch.delenv("LOGIC_ENGINE_MAX_WORKFLOW_STEPS", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def evaluator() -> ExpressionEvaluator:
    """Provide an evaluator with its own AST cache."""
    return ExpressionEvaluator()


@pytest.fixture
def registry() -> ActionRegistry:
    """Provide a registry with the built-in actions installed."""
    return register_builtin_actions(ActionRegistry())


@pytest.fixture
def memory_store() -> InMemoryWorkflowStore:
    return InMemoryWorkflowStore()


@pytest.fixture
def json_store(tmp_path: Path) -> JsonWorkflowStore:
    """Provide a JSON store under a temporary workflow directory."""
    return JsonWorkflowStore(tmp_path / "workflow" / "state.json")


@pytest.fixture
def context() -> ExecutionContext:
    return ExecutionContext(
        global_scope={"user": {"id": "u-1", "name": "John"}},
        form={"name": "Alice", "email": "alice@example.com"},
    )

