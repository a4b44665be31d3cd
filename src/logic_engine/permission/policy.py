from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import Field, field_validator

from logic_engine.core.models import DslModel

from .conditions import check_condition

WILDCARD = "*"


class Effect(str, Enum):
    ALLOW = "Allow"
    DENY = "Deny"

    @classmethod
    def _missing_(cls, value: object) -> Effect | None:
        if isinstance(value, str):
            for member in cls:
                if member.value.lower() == value.lower():
                    return member
        return None


class Policy(DslModel):
    """An Allow or Deny rule over a resource and a set of actions.

    ``resource`` and entries of ``actions`` may be ``*``. The condition is
    checked against the restricted condition grammar when the policy is
    built, so a malformed policy never reaches evaluation.
    """

    id: str
    effect: Effect
    resource: str = WILDCARD
    actions: list[str] = Field(default_factory=lambda: [WILDCARD])
    condition: dict[str, Any] | None = None
    description: str | None = None

    @field_validator("condition")
    @classmethod
    def _check_condition(cls, value: dict[str, Any] | None) -> dict[str, Any] | None:
        if not value:
            return None
        check_condition(value)
        return value

    def applies_to(self, resource: str, action: str) -> bool:
        """Resource and action match; the condition is not considered."""

        if self.resource != WILDCARD and self.resource != resource:
            return False
        return WILDCARD in self.actions or action in self.actions
