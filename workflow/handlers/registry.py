"""Code Handler Registry

Code steps reference handlers by name. Handlers register themselves at import
time with ``@register_handler``; ``build_handler_registry`` then freezes the
table into a read-only ``HandlerRegistry`` that the engine is constructed with.
No string is ever evaluated as code.

Handler signature::

    def handler(context: dict, params: dict) -> dict      # or async def

``context`` is a private copy of the execution context and ``params`` is the
step's static input. The returned dict is merged into the context.
"""

from __future__ import annotations

import copy
import inspect
import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Dict, Iterator, List, Mapping, Optional, Union

from ..engine.errors import WorkflowConfigError

logger = logging.getLogger(__name__)

HandlerResult = Optional[Dict[str, Any]]
HandlerFunc = Callable[[Dict[str, Any], Dict[str, Any]], Union[HandlerResult, Awaitable[HandlerResult]]]


@dataclass(frozen=True)
class HandlerDefinition:
    """Metadata for a registered handler.

    Attributes:
        name: Unique handler name referenced by Code steps
        func: The callable
        description: Brief description for listings
        category: Grouping (e.g., "control", "qa", "planning")
    """

    name: str
    func: HandlerFunc
    description: str = ""
    category: str = "general"

    def __post_init__(self):
        if not self.name:
            raise ValueError("handler name cannot be empty")
        if not callable(self.func):
            raise ValueError(f"handler '{self.name}' is not callable")


# Filled by @register_handler as handler modules are imported
_BUILTIN_HANDLERS: Dict[str, HandlerDefinition] = {}


def register_handler(
    name: str,
    description: str = "",
    category: str = "general",
) -> Callable[[HandlerFunc], HandlerFunc]:
    """Decorator to register a built-in Code step handler.

    Example:
        @register_handler("save_answer", category="qa")
        def save_answer(context, params):
            return {"answer_count": context.get("answer_count", 0) + 1}
    """

    def decorator(func: HandlerFunc) -> HandlerFunc:
        if name in _BUILTIN_HANDLERS and _BUILTIN_HANDLERS[name].func is not func:
            raise ValueError(f"handler '{name}' already registered")
        _BUILTIN_HANDLERS[name] = HandlerDefinition(
            name=name, func=func, description=description or (func.__doc__ or "").strip(), category=category
        )
        logger.debug(f"Registered handler: {name} ({category})")
        return func

    return decorator


class HandlerRegistry(Mapping[str, HandlerDefinition]):
    """Read-only name → handler table."""

    def __init__(self, handlers: Dict[str, HandlerDefinition]):
        self._handlers = MappingProxyType(dict(handlers))

    def __getitem__(self, name: str) -> HandlerDefinition:
        return self._handlers[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._handlers)

    def __len__(self) -> int:
        return len(self._handlers)

    def resolve(self, name: str) -> HandlerDefinition:
        if name not in self._handlers:
            raise WorkflowConfigError(
                f"Unknown handler: {name}. Available handlers: {sorted(self._handlers)}"
            )
        return self._handlers[name]

    def list_by_category(self, category: str) -> List[HandlerDefinition]:
        return [h for h in self._handlers.values() if h.category == category]

    async def invoke(self, name: str, context: Dict[str, Any], params: Dict[str, Any]) -> Dict[str, Any]:
        handler = self.resolve(name)
        result = handler.func(copy.deepcopy(context), dict(params))
        if inspect.isawaitable(result):
            result = await result
        if result is None:
            return {}
        if not isinstance(result, dict):
            raise TypeError(f"handler '{name}' returned {type(result).__name__}, expected dict")
        return result


def build_handler_registry(extra: Optional[Dict[str, HandlerFunc]] = None) -> HandlerRegistry:
    """Freeze built-in handlers plus ``extra`` into a HandlerRegistry.

    Extra handlers override built-ins of the same name.
    """
    # Importing the handler modules triggers registration
    from . import common, planning, qa  # noqa: F401

    handlers = dict(_BUILTIN_HANDLERS)
    for name, func in (extra or {}).items():
        handlers[name] = HandlerDefinition(name=name, func=func, category="custom")
    return HandlerRegistry(handlers)
