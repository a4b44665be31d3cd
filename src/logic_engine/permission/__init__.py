"""Policy-based permission checks and row-predicate generation."""

from .conditions import OPERATORS, condition_holds
from .evaluator import PermissionEvaluator, can, condition_predicate, policy_to_predicate
from .policy import WILDCARD, Effect, Policy
from .predicate import ALWAYS, NEVER, And, Constant, FieldPredicate, Not, Or, Predicate

__all__ = [
    "ALWAYS",
    "NEVER",
    "OPERATORS",
    "WILDCARD",
    "And",
    "Constant",
    "Effect",
    "FieldPredicate",
    "Not",
    "Or",
    "PermissionEvaluator",
    "Policy",
    "Predicate",
    "can",
    "condition_holds",
    "condition_predicate",
    "policy_to_predicate",
]
