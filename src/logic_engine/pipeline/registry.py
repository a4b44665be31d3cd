"""Registry of action handlers.

A registry is an explicit object constructed per tenant or process and
passed to the executors that need it. There is no global instance.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from typing import Any

from logic_engine.errors import UnknownActionType

from .models import ExecutionContext

logger = logging.getLogger(__name__)

# handler(params, context) -> result, awaitable or raises
ActionHandler = Callable[[dict[str, Any], ExecutionContext], Any]


class ActionRegistry:
    """Maps an action ``type`` to its handler."""

    def __init__(self, handlers: Mapping[str, ActionHandler] | None = None) -> None:
        self._handlers: dict[str, ActionHandler] = dict(handlers or {})

    def register(self, action_type: str, handler: ActionHandler) -> None:
        """Register ``handler`` under ``action_type``, replacing any previous one."""

        if action_type in self._handlers:
            logger.debug("Replacing action handler", extra={"action_type": action_type})
        self._handlers[action_type] = handler

    def action(self, action_type: str) -> Callable[[ActionHandler], ActionHandler]:
        """Decorator form of ``register``."""

        def decorator(handler: ActionHandler) -> ActionHandler:
            self.register(action_type, handler)
            return handler

        return decorator

    def unregister(self, action_type: str) -> None:
        self._handlers.pop(action_type, None)

    def get(self, action_type: str) -> ActionHandler | None:
        return self._handlers.get(action_type)

    def require(self, action_type: str) -> ActionHandler:
        handler = self._handlers.get(action_type)
        if handler is None:
            raise UnknownActionType(action_type)
        return handler

    def types(self) -> list[str]:
        return sorted(self._handlers)

    def __contains__(self, action_type: object) -> bool:
        return action_type in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)


def _set_value(params: dict[str, Any], context: ExecutionContext) -> dict[str, Any]:
    key = params.get("key")
    if not isinstance(key, str) or not key:
        raise ValueError("state.setValue requires a non-empty 'key'")
    value = params.get("value")
    context.vars[key] = value
    return {"success": True, "value": value}


def _reset_form(_params: dict[str, Any], context: ExecutionContext) -> dict[str, Any]:
    for key in list(context.form):
        context.form[key] = None
    return {"success": True}


def _logic_if(params: dict[str, Any], _context: ExecutionContext) -> Any:
    return params.get("then") if params.get("condition") else params.get("else")


async def _sleep(params: dict[str, Any], _context: ExecutionContext) -> dict[str, Any]:
    duration_ms = float(params.get("duration", 1000))
    await asyncio.sleep(duration_ms / 1000)
    return {"success": True}


BUILTIN_ACTIONS: dict[str, ActionHandler] = {
    "state.setValue": _set_value,
    "state.resetForm": _reset_form,
    "logic.if": _logic_if,
    "logic.sleep": _sleep,
}


def register_builtin_actions(registry: ActionRegistry) -> ActionRegistry:
    """Install the side-effect-free built-in actions; network and UI handlers are external."""

    for action_type, handler in BUILTIN_ACTIONS.items():
        registry.register(action_type, handler)
    return registry
