"""Dotted-path lookup and ``{{path}}`` prompt interpolation."""

from __future__ import annotations

import json
import re
from typing import Any, Dict

_PLACEHOLDER = re.compile(r"\{\{\s*([a-zA-Z_][\w.]*)\s*\}\}")

_MISSING = object()


def resolve_path(data: Any, path: str, default: Any = None) -> Any:
    """Safely get a nested value using dot notation.

    Integer segments index into lists (``topics.0.name``).

    Args:
        data: The object to traverse
        path: Dot-separated path (e.g., "current_topic.estimated_questions")
        default: Returned when any segment is missing

    Returns:
        The value at the path, or ``default``
    """
    current = data
    for part in path.split("."):
        if isinstance(current, dict):
            current = current.get(part, _MISSING)
        elif isinstance(current, (list, tuple)) and part.isdigit():
            index = int(part)
            current = current[index] if index < len(current) else _MISSING
        else:
            return default
        if current is _MISSING:
            return default
    return current


def _stringify(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, indent=2)
    return str(value)


def render_template(template: str, context: Dict[str, Any]) -> str:
    """Replace every ``{{path}}`` with the context value; unknown paths become ''."""

    def _sub(match: re.Match) -> str:
        value = resolve_path(context, match.group(1))
        return "" if value is None else _stringify(value)

    return _PLACEHOLDER.sub(_sub, template)
