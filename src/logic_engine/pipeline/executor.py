from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import Mapping, Sequence
from typing import Any

from logic_engine.errors import PipelineActionError
from logic_engine.expression import ExpressionEvaluator, default_evaluator

from .events import EventBus
from .interpolate import interpolate_object
from .models import Action, ActionFailure, ExecutionContext, Pipeline, PipelineResult
from .registry import ActionRegistry

logger = logging.getLogger(__name__)

_SKIPPED = object()


class ActionExecutor:
    """Runs action pipelines against an :class:`ActionRegistry`.

    Actions run strictly in order. Each result is stored in
    ``context.outputs[action.id]`` before the next action starts, so later
    params can reference ``{{ outputs.<id> }}``.

    One executor may serve many runs, but each run needs its own
    ``ExecutionContext``.
    """

    def __init__(
        self,
        registry: ActionRegistry,
        *,
        evaluator: ExpressionEvaluator | None = None,
        events: EventBus | None = None,
    ) -> None:
        self._registry = registry
        self._evaluator = evaluator or default_evaluator()
        self.events = events or EventBus()
        self._background: set[asyncio.Future[Any]] = set()

    async def execute_pipeline(
        self,
        pipeline: Pipeline | Sequence[Action | Mapping[str, Any]],
        context: ExecutionContext | Mapping[str, Any] | None = None,
    ) -> PipelineResult:
        """Execute every action and return the collected outputs.

        Raises:
            PipelineActionError: An action with ``on_error='stop'`` failed.
        """

        actions = _coerce_actions(pipeline)
        ctx = _coerce_context(context)
        pipeline_id = pipeline.id if isinstance(pipeline, Pipeline) else None

        started = time.perf_counter()
        skipped: list[str] = []
        errors: list[ActionFailure] = []

        logger.info(
            "Pipeline started",
            extra={"pipeline_id": pipeline_id, "actions": len(actions)},
        )
        await self.events.emit("pipeline:start", {"pipeline_id": pipeline_id, "context": ctx})

        for action in actions:
            try:
                result = await self._run_action(action, ctx)
            except Exception as exc:
                await self.events.emit("action:error", {"action": action, "error": exc})
                if action.on_error == "stop":
                    logger.error(
                        "Action failed, stopping pipeline",
                        extra={"action_id": action.id, "action_type": action.type},
                    )
                    await self.events.emit(
                        "pipeline:error", {"pipeline_id": pipeline_id, "error": exc}
                    )
                    raise PipelineActionError(action.id, action.type, exc) from exc

                logger.warning(
                    f"Action {action.id} failed, continuing: {exc}",
                    extra={
                        "action_id": action.id,
                        "action_type": action.type,
                        "on_error": action.on_error,
                    },
                )
                errors.append(
                    ActionFailure(
                        action_id=action.id,
                        action_type=action.type,
                        error=str(exc),
                        on_error=action.on_error,
                    )
                )
                continue

            if result is _SKIPPED:
                skipped.append(action.id)
                await self.events.emit("action:skipped", {"action": action})
                continue

            ctx.outputs[action.id] = result
            await self.events.emit("action:success", {"action": action, "result": result})

        duration_ms = (time.perf_counter() - started) * 1000
        outcome = PipelineResult(
            success=not errors,
            outputs=dict(ctx.outputs),
            skipped=skipped,
            errors=errors,
            duration_ms=duration_ms,
        )
        logger.info(
            "Pipeline complete",
            extra={
                "pipeline_id": pipeline_id,
                "duration_ms": round(duration_ms, 3),
                "skipped": len(skipped),
                "errors": len(errors),
            },
        )
        await self.events.emit("pipeline:complete", {"pipeline_id": pipeline_id, "result": outcome})
        return outcome

    async def execute_action(
        self,
        action: Action | Mapping[str, Any],
        context: ExecutionContext | Mapping[str, Any] | None = None,
    ) -> Any:
        """Execute a single action outside a pipeline.

        Returns ``None`` when the action's condition is falsy. Errors propagate
        unwrapped; ``on_error`` only applies inside a pipeline.
        """

        model = action if isinstance(action, Action) else Action.model_validate(action)
        ctx = _coerce_context(context)
        result = await self._run_action(model, ctx)
        return None if result is _SKIPPED else result

    async def drain(self) -> None:
        """Wait for every background (``await: false``) action to settle."""

        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def _run_action(self, action: Action, ctx: ExecutionContext) -> Any:
        scope = ctx.as_mapping()

        if action.condition:
            if not self._evaluator.evaluate_condition(action.condition, scope):
                logger.debug("Action skipped", extra={"action_id": action.id})
                return _SKIPPED

        handler = self._registry.require(action.type)
        params = interpolate_object(action.params, scope)

        await self.events.emit("action:start", {"action": action, "params": params})
        logger.debug(
            "Executing action", extra={"action_id": action.id, "action_type": action.type}
        )

        result = handler(params, ctx)
        if inspect.isawaitable(result):
            if not action.await_:
                self._schedule(action, result)
                return None
            result = await result
        return result

    def _schedule(self, action: Action, awaitable: Any) -> None:
        future = asyncio.ensure_future(awaitable)
        self._background.add(future)

        def _done(fut: asyncio.Future[Any]) -> None:
            self._background.discard(fut)
            if fut.cancelled():
                return
            exc = fut.exception()
            if exc is not None:
                logger.error(
                    f"Background action {action.id} failed: {exc}",
                    extra={"action_id": action.id, "action_type": action.type},
                )

        future.add_done_callback(_done)


def _coerce_actions(
    pipeline: Pipeline | Sequence[Action | Mapping[str, Any]],
) -> list[Action]:
    if isinstance(pipeline, Pipeline):
        return list(pipeline.actions)
    return [a if isinstance(a, Action) else Action.model_validate(a) for a in pipeline]


def _coerce_context(context: ExecutionContext | Mapping[str, Any] | None) -> ExecutionContext:
    if context is None:
        return ExecutionContext()
    if isinstance(context, ExecutionContext):
        return context
    return ExecutionContext.from_mapping(context)
