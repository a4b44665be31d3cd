"""Declarative action pipelines, template interpolation and the event bus."""

from .events import EventBus
from .executor import ActionExecutor
from .interpolate import get_value_by_path, interpolate, interpolate_object
from .models import Action, ActionFailure, ExecutionContext, Pipeline, PipelineResult
from .registry import BUILTIN_ACTIONS, ActionHandler, ActionRegistry, register_builtin_actions

__all__ = [
    "BUILTIN_ACTIONS",
    "Action",
    "ActionExecutor",
    "ActionFailure",
    "ActionHandler",
    "ActionRegistry",
    "EventBus",
    "ExecutionContext",
    "Pipeline",
    "PipelineResult",
    "get_value_by_path",
    "interpolate",
    "interpolate_object",
    "register_builtin_actions",
]
