from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from .conditions import condition_clauses, condition_holds
from .policy import Effect, Policy
from .predicate import ALWAYS, NEVER, FieldPredicate, Not, Predicate, all_of, any_of

logger = logging.getLogger(__name__)

PolicyInput = Policy | Mapping[str, Any]


def _coerce(policies: Iterable[PolicyInput]) -> list[Policy]:
    return [p if isinstance(p, Policy) else Policy.model_validate(p) for p in policies]


def can(
    policies: Iterable[PolicyInput],
    resource: str,
    action: str,
    context: Mapping[str, Any] | None = None,
) -> bool:
    """Decide whether ``action`` on ``resource`` is allowed.

    Deny wins: the first applicable Deny returns False. Otherwise any
    applicable Allow grants. With nothing applicable the answer is False.
    """

    context = context or {}
    allowed = False
    for policy in _coerce(policies):
        if not policy.applies_to(resource, action):
            continue
        if policy.condition and not condition_holds(policy.condition, context):
            continue
        if policy.effect is Effect.DENY:
            return False
        allowed = True
    return allowed


def condition_predicate(condition: Mapping[str, Any], context: Mapping[str, Any]) -> Predicate:
    return all_of(
        FieldPredicate(field, op, value)
        for field, op, value in condition_clauses(condition, context)
    )


def policy_to_predicate(
    policies: Iterable[PolicyInput],
    resource: str,
    action: str,
    context: Mapping[str, Any] | None = None,
) -> Predicate:
    """Build a row predicate selecting the records ``action`` may touch.

    Matching Allow conditions are OR-ed; matching conditional Denies are
    AND-NOT-ed onto the result. An unconditional Deny, or no Allow at all,
    yields ``NEVER``.
    """

    context = context or {}
    allows: list[Predicate] = []
    denies: list[Predicate] = []
    for policy in _coerce(policies):
        if not policy.applies_to(resource, action):
            continue
        if policy.effect is Effect.DENY:
            if not policy.condition:
                return NEVER
            denies.append(Not(condition_predicate(policy.condition, context)))
        elif policy.condition:
            allows.append(condition_predicate(policy.condition, context))
        else:
            allows.append(ALWAYS)

    if not allows:
        return NEVER
    return all_of([any_of(allows), *denies])


class PermissionEvaluator:
    """Evaluates a fixed policy set and logs each decision."""

    def __init__(self, policies: Iterable[PolicyInput] = ()) -> None:
        self.policies = _coerce(policies)

    def can(self, resource: str, action: str, context: Mapping[str, Any] | None = None) -> bool:
        allowed = can(self.policies, resource, action, context)
        logger.debug(
            "Permission decision",
            extra={"resource": resource, "action": action, "allowed": allowed},
        )
        return allowed

    def policy_to_predicate(
        self, resource: str, action: str, context: Mapping[str, Any] | None = None
    ) -> Predicate:
        predicate = policy_to_predicate(self.policies, resource, action, context)
        if predicate == NEVER:
            logger.info(
                "No policy grants access", extra={"resource": resource, "action": action}
            )
        return predicate
