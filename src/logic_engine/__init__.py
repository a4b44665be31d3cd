"""Logic engine.

Evaluates the behaviour layer of low-code application definitions:
- safe formula expressions and computed fields
- token-based workflows with user and service tasks
- policy-based permission checks
- declarative action pipelines with an event bus
"""

__version__ = "0.1.0"

from logic_engine.core.config import EngineSettings
from logic_engine.errors import LogicEngineError
from logic_engine.expression import ExpressionEvaluator, evaluate, extract_dependencies
from logic_engine.fields import UNAVAILABLE, ComputedFieldScheduler, DependencyGraph
from logic_engine.permission import PermissionEvaluator, Policy, can, policy_to_predicate
from logic_engine.pipeline import (
    ActionExecutor,
    ActionRegistry,
    EventBus,
    ExecutionContext,
    register_builtin_actions,
)
from logic_engine.workflow import WorkflowDefinition, WorkflowEngine, WorkflowInstance

__all__ = [
    "__version__",
    "UNAVAILABLE",
    "ActionExecutor",
    "ActionRegistry",
    "ComputedFieldScheduler",
    "DependencyGraph",
    "EngineSettings",
    "EventBus",
    "ExecutionContext",
    "ExpressionEvaluator",
    "LogicEngineError",
    "PermissionEvaluator",
    "Policy",
    "WorkflowDefinition",
    "WorkflowEngine",
    "WorkflowInstance",
    "can",
    "evaluate",
    "extract_dependencies",
    "policy_to_predicate",
    "register_builtin_actions",
]
