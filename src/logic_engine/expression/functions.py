"""Built-in function table for expressions.

The table is fixed and explicit. Expressions can only call names listed here.
``IF`` is listed for completeness but the evaluator treats it as a special
form so only the taken branch is evaluated.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

BuiltinFunction = Callable[..., Any]


def _flatten(values: Iterable[Any]) -> list[Any]:
    # SUM(1, 2) and SUM([1, 2]) behave the same.
    out: list[Any] = []
    for value in values:
        if isinstance(value, (list, tuple)):
            out.extend(value)
        else:
            out.append(value)
    return out


def to_text(value: Any) -> str:
    """Render a value the way string functions see it."""

    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _sum(*values: Any) -> Any:
    return sum(_flatten(values), 0)


def _avg(*values: Any) -> Any:
    items = _flatten(values)
    if not items:
        raise ValueError("AVG requires at least one value")
    return sum(items, 0) / len(items)


def _max(*values: Any) -> Any:
    return max(_flatten(values))


def _min(*values: Any) -> Any:
    return min(_flatten(values))


def _round(value: Any, decimals: int = 0) -> Any:
    # Half-up rounding, not Python's banker's rounding.
    quantum = Decimal(1).scaleb(-int(decimals))
    rounded = Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP)
    return int(rounded) if int(decimals) <= 0 else float(rounded)


def _if(condition: Any, when_true: Any = None, when_false: Any = None) -> Any:
    return when_true if condition else when_false


def _concat(*parts: Any) -> str:
    return "".join(to_text(p) for p in _flatten(parts))


def _contains(haystack: Any, needle: Any) -> bool:
    if haystack is None:
        return False
    if isinstance(haystack, str):
        return to_text(needle) in haystack
    return needle in haystack


def _in(value: Any, *candidates: Any) -> bool:
    if len(candidates) == 1 and isinstance(candidates[0], (list, tuple, set, frozenset)):
        return value in candidates[0]
    return value in candidates


def _now() -> datetime:
    return datetime.now(UTC)


def _today() -> str:
    return datetime.now(UTC).date().isoformat()


BUILTIN_FUNCTIONS: dict[str, BuiltinFunction] = {
    # math
    "SUM": _sum,
    "AVG": _avg,
    "MAX": _max,
    "MIN": _min,
    "ROUND": _round,
    "ABS": abs,
    # logic
    "IF": _if,
    "AND": lambda *args: all(args),
    "OR": lambda *args: any(args),
    "NOT": lambda value: not value,
    # string
    "CONCAT": _concat,
    "UPPER": lambda value: to_text(value).upper(),
    "LOWER": lambda value: to_text(value).lower(),
    "TRIM": lambda value: to_text(value).strip(),
    "LEN": lambda value: len(value) if value is not None else 0,
    "CONTAINS": _contains,
    "STARTS_WITH": lambda value, prefix: to_text(value).startswith(to_text(prefix)),
    "ENDS_WITH": lambda value, suffix: to_text(value).endswith(to_text(suffix)),
    "REPLACE": lambda value, old, new: to_text(value).replace(to_text(old), to_text(new)),
    # set membership
    "IN": _in,
    # date
    "NOW": _now,
    "TODAY": _today,
}

# Functions whose arguments are evaluated lazily by the evaluator.
LAZY_FUNCTIONS: frozenset[str] = frozenset({"IF"})
