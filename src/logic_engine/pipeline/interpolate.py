"""``{{ path }}`` template interpolation.

Unresolved paths are left as literal text, so rendering an unresolved
template is lossless.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from typing import Any

TEMPLATE_PATTERN = re.compile(r"\{\{\s*([\w.]+)\s*\}\}")

_MISSING = object()


def get_value_by_path(data: Any, path: str, default: Any = None) -> Any:
    """Resolve a dotted path through mappings and sequences.

    Example:
        >>> get_value_by_path({"user": {"name": "John"}}, "user.name")
        'John'
    """

    value = data
    for key in path.split("."):
        if value is None:
            return default
        if isinstance(value, Mapping):
            if key not in value:
                return default
            value = value[key]
        elif isinstance(value, Sequence) and not isinstance(value, str) and key.isdigit():
            index = int(key)
            if index >= len(value):
                return default
            value = value[index]
        else:
            return default
    return value


def interpolate(template: Any, context: Mapping[str, Any]) -> Any:
    """Substitute ``{{ path }}`` references inside a string.

    A string that is exactly one template resolves to the raw value, so
    ``"{{ outputs.fetch }}"`` can pass a dict through unchanged. Non-strings
    are returned as-is.
    """

    if not isinstance(template, str):
        return template

    whole = TEMPLATE_PATTERN.fullmatch(template.strip())
    if whole is not None:
        value = get_value_by_path(context, whole.group(1), _MISSING)
        return template if value is _MISSING else value

    def _replace(match: re.Match[str]) -> str:
        value = get_value_by_path(context, match.group(1), _MISSING)
        if value is _MISSING:
            return match.group(0)
        return "" if value is None else str(value)

    return TEMPLATE_PATTERN.sub(_replace, template)


def interpolate_object(value: Any, context: Mapping[str, Any]) -> Any:
    """Recursively interpolate strings inside dicts and lists."""

    if isinstance(value, str):
        return interpolate(value, context)
    if isinstance(value, list):
        return [interpolate_object(item, context) for item in value]
    if isinstance(value, tuple):
        return tuple(interpolate_object(item, context) for item in value)
    if isinstance(value, Mapping):
        return {key: interpolate_object(item, context) for key, item in value.items()}
    return value
