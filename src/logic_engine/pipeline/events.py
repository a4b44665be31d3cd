"""In-process publish/subscribe event bus."""

from __future__ import annotations

import functools
import inspect
import logging
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

Listener = Callable[..., Any]


class EventBus:
    """Notifies subscribers of named events.

    ``emit`` isolates failures per handler: one subscriber raising never stops
    the others from running.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = {}

    def on(self, event: str, handler: Listener) -> Callable[[], None]:
        """Subscribe ``handler``; returns a callable that unsubscribes it."""

        self._listeners.setdefault(event, []).append(handler)
        return lambda: self.off(event, handler)

    def once(self, event: str, handler: Listener) -> Callable[[], None]:
        @functools.wraps(handler)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            self.off(event, wrapper)
            return handler(*args, **kwargs)

        return self.on(event, wrapper)

    def off(self, event: str, handler: Listener) -> None:
        handlers = self._listeners.get(event)
        if not handlers:
            return
        for idx, registered in enumerate(handlers):
            if registered is handler or getattr(registered, "__wrapped__", None) is handler:
                del handlers[idx]
                break
        if not handlers:
            del self._listeners[event]

    async def emit(self, event: str, *args: Any, **kwargs: Any) -> int:
        """Invoke every handler for ``event`` in subscription order.

        Awaitable results are awaited. Returns the number of handlers invoked.
        """

        handlers = list(self._listeners.get(event, ()))
        for handler in handlers:
            try:
                result = handler(*args, **kwargs)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Error in event handler", extra={"event": event})
        return len(handlers)

    def clear(self, event: str | None = None) -> None:
        if event is None:
            self._listeners.clear()
        else:
            self._listeners.pop(event, None)

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, ()))
