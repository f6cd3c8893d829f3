"""General-purpose control handlers."""

from __future__ import annotations

from typing import Any, Dict

from ..nodes.base import LOOP_BREAK_KEY
from .registry import register_handler


@register_handler("set_values", category="control")
def set_values(context: Dict[str, Any], params: Dict[str, Any]) -> Dict[str, Any]:
    """Copy the step input into the context."""
    return dict(params)


@register_handler("break_loop", category="control")
def break_loop(context: Dict[str, Any], params: Dict[str, Any]) -> Dict[str, Any]:
    """End the enclosing loop after this step."""
    return {LOOP_BREAK_KEY: True}


@register_handler("increment", category="control")
def increment(context: Dict[str, Any], params: Dict[str, Any]) -> Dict[str, Any]:
    """Add ``by`` (default 1) to the integer at ``key``."""
    key = params["key"]
    return {key: int(context.get(key) or 0) + int(params.get("by", 1))}


@register_handler("set_phase", category="control")
def set_phase(context: Dict[str, Any], params: Dict[str, Any]) -> Dict[str, Any]:
    """Record the phase used to pick the resume node."""
    return {"current_phase": params["phase"]}
