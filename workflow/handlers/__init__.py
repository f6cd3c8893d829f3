"""Named Code step handlers and their read-only registry."""

from .registry import HandlerDefinition, HandlerRegistry, build_handler_registry, register_handler

__all__ = ["HandlerDefinition", "HandlerRegistry", "build_handler_registry", "register_handler"]
